"""Custom exceptions for the :mod:`dikethermal` package."""
from __future__ import annotations


class DikeThermalError(Exception):
    """Base exception for dike intrusion thermal simulation errors."""


class ConfigurationError(DikeThermalError, ValueError):
    """Invalid configuration file entry or parameter combination."""


class NumericalError(DikeThermalError, RuntimeError):
    """Numerical failure such as a violated stability constraint."""


class StabilityViolation(NumericalError):
    """Explicit time step exceeds the stability bound of the diffusion scheme."""


class GeometryError(DikeThermalError, ValueError):
    """Dike placement that cannot be mapped onto the computational domain."""


__all__ = [
    "DikeThermalError",
    "ConfigurationError",
    "NumericalError",
    "StabilityViolation",
    "GeometryError",
]
