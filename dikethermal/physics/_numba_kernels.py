"""Numba-accelerated kernels for the explicit diffusion stencil.

The kernels mirror :func:`dikethermal.physics.diffusion.diffusion_step_numpy`
loop by loop.  Every output cell depends only on its 5-point neighbourhood
in the *previous* temperature, so the outer loops run in parallel with
``prange``; the inputs are read-only and each iteration writes a disjoint
row of the output arrays.

Notes
-----
* All kernels use ``cache=True`` to persist compiled bytecode across runs.
* ``parallel=True`` enables automatic threading; the number of threads
  respects ``NUMBA_NUM_THREADS``.
"""
from __future__ import annotations

import numpy as np
from numba import njit, prange

__all__ = [
    "diffusion_step_numba",
    "neumann_lateral_numba",
]


@njit(cache=True, parallel=True)
def diffusion_step_numba(
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
    """Advance the interior of ``T`` by one explicit step into ``T_new``."""
    nx = T.shape[0]
    nz = T.shape[1]

    for i in prange(nx - 1):
        for j in range(nz):
            Kx[i, j] = 0.5 * (K[i, j] + K[i + 1, j])
            qx[i, j] = -Kx[i, j] * (T[i + 1, j] - T[i, j]) / dx

    for i in prange(nx):
        for j in range(nz - 1):
            Kz[i, j] = 0.5 * (K[i, j] + K[i, j + 1])
            qz[i, j] = -Kz[i, j] * (T[i, j + 1] - T[i, j]) / dz

    for i in prange(1, nx - 1):
        for j in range(1, nz - 1):
            div_q = (qx[i, j] - qx[i - 1, j]) / dx + (qz[i, j] - qz[i, j - 1]) / dz
            source = latent_heat * rho[i, j] * dphi_dt[i, j]
            T_new[i, j] = T[i, j] - dt / (rho[i, j] * cp[i, j]) * (div_q - source)


@njit(cache=True, parallel=True)
def neumann_lateral_numba(T: np.ndarray) -> None:
    """Copy the first interior column onto each lateral boundary column."""
    nx = T.shape[0]
    nz = T.shape[1]
    for j in prange(nz):
        T[0, j] = T[1, j]
        T[nx - 1, j] = T[nx - 2, j]
