"""Thermal evolution of crust repeatedly intruded by dikes."""
from . import constants, grid
from .errors import ConfigurationError, DikeThermalError, GeometryError, StabilityViolation

__version__ = "0.1.0"

__all__ = [
    "constants",
    "grid",
    "DikeThermalError",
    "ConfigurationError",
    "StabilityViolation",
    "GeometryError",
    "__version__",
]
