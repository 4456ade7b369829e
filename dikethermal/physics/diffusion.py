"""Explicit finite-difference heat diffusion with latent heat.

One step solves

    rho cp dT/dt = -div(q) + L rho dphi/dt,    q = -K grad(T),

on the interior of the grid with forward Euler in time.  ``K`` blends the
rock and magma conductivities by solid fraction, face conductivities are
arithmetic means of the adjacent cells, and fluxes use centred differences
between neighbouring points.  The new temperature is written into a scratch
buffer, never in place; boundary values are imposed afterwards by
:func:`apply_boundary_conditions`.

The scheme is only stable for ``dt <= stability_bound(...)``.  The step
functions take this as a precondition and do not check it; the driver
validates ``dt`` once at startup.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Optional

import numpy as np

from .. import constants
from ..errors import StabilityViolation
from ..fields import FieldStore
from ..grid import Grid
from ._numba_kernels import diffusion_step_numba, neumann_lateral_numba

logger = logging.getLogger(__name__)

__all__ = [
    "BoundaryConditions",
    "effective_conductivity",
    "face_conductivities",
    "diffusion_step_numpy",
    "diffusion_step",
    "apply_boundary_conditions",
    "thermal_diffusivity",
    "stability_bound",
    "check_stability",
]


@dataclass(frozen=True)
class BoundaryConditions:
    """Top/bottom boundary treatment; lateral sides are always flux-free."""

    T_top: float = 0.0
    T_bottom: float = 0.0
    top: Literal["dirichlet", "neumann"] = "dirichlet"
    bottom: Literal["dirichlet", "neumann"] = "dirichlet"


def effective_conductivity(
    phi: np.ndarray,
    k_rock: float,
    k_magma: float,
    *,
    out: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Return ``K = phi * k_rock + (1 - phi) * k_magma``."""

    if out is None:
        out = np.empty_like(phi, dtype=float)
    np.multiply(phi, k_rock - k_magma, out=out)
    out += k_magma
    return out


def face_conductivities(K: np.ndarray, Kx: np.ndarray, Kz: np.ndarray) -> None:
    """Fill ``Kx`` and ``Kz`` with arithmetic means of adjacent cells."""

    np.add(K[1:, :], K[:-1, :], out=Kx)
    Kx *= 0.5
    np.add(K[:, 1:], K[:, :-1], out=Kz)
    Kz *= 0.5


def diffusion_step_numpy(
    T_new: np.ndarray,
    T: np.ndarray,
    qx: np.ndarray,
    qz: np.ndarray,
    K: np.ndarray,
    Kx: np.ndarray,
    Kz: np.ndarray,
    rho: np.ndarray,
    cp: np.ndarray,
    dphi_dt: np.ndarray,
    dt: float,
    dx: float,
    dz: float,
    latent_heat: float,
) -> None:
    """Vectorised interior update of ``T`` into ``T_new``.

    Only ``T_new[1:-1, 1:-1]`` is written; ``Kx``, ``Kz``, ``qx`` and ``qz``
    are overwritten as work arrays.
    """
    if T_new is T:
        raise ValueError("diffusion step must not write into its input buffer")

    face_conductivities(K, Kx, Kz)
    np.subtract(T[1:, :], T[:-1, :], out=qx)
    qx *= -Kx / dx
    np.subtract(T[:, 1:], T[:, :-1], out=qz)
    qz *= -Kz / dz

    inner = (slice(1, -1), slice(1, -1))
    div_q = (qx[1:, 1:-1] - qx[:-1, 1:-1]) / dx + (qz[1:-1, 1:] - qz[1:-1, :-1]) / dz
    source = latent_heat * rho[inner] * dphi_dt[inner]
    T_new[inner] = T[inner] - dt / (rho[inner] * cp[inner]) * (div_q - source)


def diffusion_step(
    fields: FieldStore,
    dt: float,
    latent_heat: float,
    *,
    backend: str = "numpy",
) -> np.ndarray:
    """Run one stencil pass from ``fields.T`` into ``fields.T_new``.

    ``fields.K`` must already hold the effective conductivity of this step.
    Returns the scratch buffer.
    """

    args = (
        fields.T_new,
        fields.T,
        fields.qx,
        fields.qz,
        fields.K,
        fields.Kx,
        fields.Kz,
        fields.rho,
        fields.cp,
        fields.dphi_dt,
        float(dt),
        fields.grid.dx,
        fields.grid.dz,
        float(latent_heat),
    )
    if backend == "numba":
        diffusion_step_numba(*args)
    elif backend == "numpy":
        diffusion_step_numpy(*args)
    else:
        raise ValueError(f"Unknown stencil backend {backend!r}")
    return fields.T_new


def apply_boundary_conditions(T: np.ndarray, bc: BoundaryConditions, *, backend: str = "numpy") -> None:
    """Overwrite the boundary rows and columns of ``T`` in place.

    Lateral sides get zero gradient first; top and bottom rows are then set
    to their fixed values or copied from the adjacent interior row.
    """

    if backend == "numba":
        neumann_lateral_numba(T)
    else:
        T[0, :] = T[1, :]
        T[-1, :] = T[-2, :]
    if bc.bottom == "dirichlet":
        T[:, 0] = bc.T_bottom
    else:
        T[:, 0] = T[:, 1]
    if bc.top == "dirichlet":
        T[:, -1] = bc.T_top
    else:
        T[:, -1] = T[:, -2]


def thermal_diffusivity(k: float, rho: float, cp: float) -> float:
    """Return ``kappa = k / (rho * cp)`` [m^2 s^-1]."""
    return float(k) / (float(rho) * float(cp))


def stability_bound(
    grid: Grid,
    k_rock: float,
    rho: float,
    cp: float,
    safety_factor: float = constants.STABILITY_SAFETY,
    *,
    k_magma: Optional[float] = None,
) -> float:
    """Return the largest admissible explicit step ``min(dx^2, dz^2)/kappa/safety``.

    ``kappa`` uses the larger of ``k_rock`` and ``k_magma`` so the bound
    holds for every solid fraction.
    """

    k_max = float(k_rock) if k_magma is None else max(float(k_rock), float(k_magma))
    kappa = thermal_diffusivity(k_max, rho, cp)
    return min(grid.dx**2, grid.dz**2) / kappa / float(safety_factor)


def check_stability(dt: float, bound: float) -> None:
    """Raise :class:`StabilityViolation` when ``dt`` exceeds ``bound``."""

    if dt > bound:
        raise StabilityViolation(
            f"time step dt={dt:.6g} s exceeds the explicit stability bound {bound:.6g} s"
        )
