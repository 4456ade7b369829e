"""Per-cell state arrays of a simulation run.

:class:`FieldStore` owns the temperature double buffer, the material
property arrays, the phase-fraction state and the face-centred work arrays
used by the diffusion stencil.  All arrays are allocated once from a
:class:`~dikethermal.grid.Grid` and mutated in place during the run.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from . import constants
from .grid import Grid

logger = logging.getLogger(__name__)


@dataclass
class FieldStore:
    """Mutable field arrays for one run.

    Attributes
    ----------
    T, T_new:
        Current and scratch temperature, shape ``(nx, nz)``.  The stencil
        reads ``T`` and writes ``T_new``; :meth:`swap` exchanges them.
    rho, cp:
        Density [kg m^-3] and heat capacity [J kg^-1 K^-1].
    phi, phi_prev, dphi_dt:
        Solid fraction, its value at the previous update and the backward
        difference rate [s^-1].
    K:
        Effective cell conductivity [W m^-1 K^-1].
    Kx, qx:
        Conductivity and heat flux on x-faces, shape ``(nx-1, nz)``.
    Kz, qz:
        Conductivity and heat flux on z-faces, shape ``(nx, nz-1)``.
    """

    grid: Grid
    T: np.ndarray
    T_new: np.ndarray
    rho: np.ndarray
    cp: np.ndarray
    phi: np.ndarray
    phi_prev: np.ndarray
    dphi_dt: np.ndarray
    K: np.ndarray
    Kx: np.ndarray
    Kz: np.ndarray
    qx: np.ndarray
    qz: np.ndarray

    @classmethod
    def allocate(cls, grid: Grid) -> "FieldStore":
        """Return a zero-initialised store sized for ``grid``."""

        nx, nz = grid.shape
        cell = (nx, nz)
        x_face = (nx - 1, nz)
        z_face = (nx, nz - 1)
        store = cls(
            grid=grid,
            T=np.zeros(cell),
            T_new=np.zeros(cell),
            rho=np.zeros(cell),
            cp=np.zeros(cell),
            phi=np.zeros(cell),
            phi_prev=np.zeros(cell),
            dphi_dt=np.zeros(cell),
            K=np.zeros(cell),
            Kx=np.zeros(x_face),
            Kz=np.zeros(z_face),
            qx=np.zeros(x_face),
            qz=np.zeros(z_face),
        )
        logger.debug("allocated field store for %dx%d grid", nx, nz)
        return store

    def swap(self) -> None:
        """Exchange the current and scratch temperature buffers (no copy)."""
        self.T, self.T_new = self.T_new, self.T

    def set_material(self, rho: float, cp: float) -> None:
        self.rho.fill(rho)
        self.cp.fill(cp)

    def set_uniform(self, value: float) -> None:
        self.T.fill(value)
        self.T_new.fill(value)

    def set_geotherm(self, gradient_K_per_km: float, T_top: float = 0.0) -> None:
        """Write the linear initial profile ``T = T_top - z/1e3 * gradient``."""

        _, Z = self.grid.meshgrid()
        self.T[...] = T_top - Z / 1.0e3 * gradient_K_per_km
        self.T_new[...] = self.T

    def thermal_energy(self, *, interior_only: bool = True) -> float:
        """Return ``sum(rho * cp * T) * dx * dz`` [J per metre out of plane].

        With ``interior_only`` the boundary rows and columns, which are
        rewritten by the boundary post-pass, are excluded.
        """
        density = self.rho * self.cp * self.T
        if interior_only:
            density = density[1:-1, 1:-1]
        return float(np.sum(density) * self.grid.cell_area)

    def snapshot(self, time_s: float = 0.0) -> "FieldSnapshot":
        """Return copies of the temperature and phase fields at ``time_s``."""

        return FieldSnapshot(
            x=self.grid.x.copy(),
            z=self.grid.z.copy(),
            T=self.T.copy(),
            phi=self.phi.copy(),
            melt_fraction=1.0 - self.phi,
            time=float(time_s),
            time_kyr=float(time_s) / constants.SECONDS_PER_KYR,
        )


@dataclass(frozen=True)
class FieldSnapshot:
    """Detached copy of the state fields at one instant."""

    x: np.ndarray
    z: np.ndarray
    T: np.ndarray
    phi: np.ndarray
    melt_fraction: np.ndarray
    time: float
    time_kyr: float
