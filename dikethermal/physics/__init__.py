"""Physics kernels: phase closure, heat diffusion, dike emplacement and tracers."""
from . import diffusion, intrusion, phase, tracers

__all__ = ["diffusion", "intrusion", "phase", "tracers"]
