"""Regular 2D grid for the crustal cross-section.

The grid is cell-centred and uniform: ``x`` runs from 0 at the left edge to
``width`` at the right edge and ``z`` from ``-height`` at the base to 0 at
the surface.  Arrays defined on the grid are indexed ``[ix, iz]`` so that
``field[:, 0]`` is the bottom row and ``field[:, -1]`` the top row.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

import numpy as np

from . import constants
from .errors import ConfigurationError


@dataclass(frozen=True, eq=False)
class Grid:
    """Immutable uniform grid.

    Parameters
    ----------
    x:
        Horizontal coordinates of the grid points (m), length ``nx``.
    z:
        Vertical coordinates of the grid points (m), length ``nz``.
    dx, dz:
        Grid spacing (m).
    """

    x: np.ndarray
    z: np.ndarray
    dx: float
    dz: float
    nx: int = field(init=False)
    nz: int = field(init=False)

    def __post_init__(self) -> None:
        x = np.array(self.x, dtype=float)
        z = np.array(self.z, dtype=float)
        if x.ndim != 1 or z.ndim != 1:
            raise ConfigurationError("grid coordinates must be one dimensional")
        if x.size < constants.MIN_GRID_POINTS or z.size < constants.MIN_GRID_POINTS:
            raise ConfigurationError(
                f"grid dimensions must be at least {constants.MIN_GRID_POINTS} per axis "
                f"(got {x.size}x{z.size})"
            )
        if not (self.dx > 0.0 and self.dz > 0.0):
            raise ConfigurationError(f"grid spacing must be positive (dx={self.dx}, dz={self.dz})")
        x.setflags(write=False)
        z.setflags(write=False)
        object.__setattr__(self, "x", x)
        object.__setattr__(self, "z", z)
        object.__setattr__(self, "dx", float(self.dx))
        object.__setattr__(self, "dz", float(self.dz))
        object.__setattr__(self, "nx", int(x.size))
        object.__setattr__(self, "nz", int(z.size))

    @classmethod
    def from_extent(cls, width: float, height: float, nx: int, nz: int) -> "Grid":
        """Construct a grid spanning ``[0, width] x [-height, 0]``."""

        if nx < constants.MIN_GRID_POINTS or nz < constants.MIN_GRID_POINTS:
            raise ConfigurationError(
                f"grid dimensions must be at least {constants.MIN_GRID_POINTS} per axis (got {nx}x{nz})"
            )
        if not (width > 0.0 and height > 0.0):
            raise ConfigurationError(f"domain extent must be positive (width={width}, height={height})")
        dx = width / (nx - 1)
        dz = height / (nz - 1)
        x = np.linspace(0.0, width, nx)
        z = np.linspace(-height, 0.0, nz)
        return cls(x=x, z=z, dx=dx, dz=dz)

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.nx, self.nz)

    @property
    def cell_area(self) -> float:
        """Area represented by one grid point (m^2)."""
        return self.dx * self.dz

    @property
    def width(self) -> float:
        return float(self.x[-1] - self.x[0])

    @property
    def height(self) -> float:
        return float(self.z[-1] - self.z[0])

    @property
    def center(self) -> Tuple[float, float]:
        return (0.5 * float(self.x[0] + self.x[-1]), 0.5 * float(self.z[0] + self.z[-1]))

    def meshgrid(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(X, Z)`` coordinate arrays of shape ``(nx, nz)``."""
        return np.meshgrid(self.x, self.z, indexing="ij")

    def contains(self, x: float, z: float) -> bool:
        """Return True when ``(x, z)`` lies inside the closed domain."""
        return bool(self.x[0] <= x <= self.x[-1] and self.z[0] <= z <= self.z[-1])

    def nearest_index(self, x: np.ndarray, z: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Return the indices of the grid points nearest to ``(x, z)``.

        Positions outside the domain are clamped to the closest boundary point.
        """
        ix = np.rint((np.asarray(x, dtype=float) - self.x[0]) / self.dx).astype(np.int64)
        iz = np.rint((np.asarray(z, dtype=float) - self.z[0]) / self.dz).astype(np.int64)
        np.clip(ix, 0, self.nx - 1, out=ix)
        np.clip(iz, 0, self.nz - 1, out=iz)
        return ix, iz
