"""Structured warning classes for the :mod:`dikethermal` package."""
from __future__ import annotations


class DikeThermalWarning(UserWarning):
    """Base warning class for dikethermal."""


class NumericalWarning(DikeThermalWarning):
    """Numerical backend or accuracy warnings."""


class GeometryWarning(DikeThermalWarning):
    """Dike placement produced a degenerate or clipped footprint."""


__all__ = [
    "DikeThermalWarning",
    "NumericalWarning",
    "GeometryWarning",
]
