"""Lagrangian marker particles recording local thermal history.

Tracers are stored in a struct-of-arrays arena.  Slots are assigned
monotonically and never reused or moved between columns, so a slot index
handed out by :meth:`TracerArena.insert_batch` refers to the same tracer for
the whole run even when the underlying arrays grow.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import numpy as np
import pandas as pd

from ..grid import Grid
from .intrusion import Dike, sample_footprint
from .phase import solid_fraction

logger = logging.getLogger(__name__)

__all__ = ["TracerArena", "TracerSnapshot", "sample_nearest", "sample_bilinear"]

_FLOAT_COLUMNS = ("x", "z", "T", "phi", "T_max", "time_emplaced")
_INT_COLUMNS = ("dike_index",)


@dataclass(frozen=True)
class TracerSnapshot:
    """Read-only copy of the active tracers."""

    slot: np.ndarray
    x: np.ndarray
    z: np.ndarray
    T: np.ndarray
    phi: np.ndarray
    T_max: np.ndarray
    dike_index: np.ndarray
    time_emplaced: np.ndarray

    def __len__(self) -> int:
        return int(self.slot.size)

    @property
    def melt_fraction(self) -> np.ndarray:
        return 1.0 - self.phi

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "slot": self.slot,
                "x": self.x,
                "z": self.z,
                "T": self.T,
                "phi": self.phi,
                "melt_fraction": self.melt_fraction,
                "T_max": self.T_max,
                "dike_index": self.dike_index,
                "time_emplaced": self.time_emplaced,
            }
        )


def sample_nearest(field: np.ndarray, grid: Grid, x: np.ndarray, z: np.ndarray) -> np.ndarray:
    """Value of ``field`` at the grid point nearest to each position."""
    ix, iz = grid.nearest_index(x, z)
    return field[ix, iz]


def sample_bilinear(field: np.ndarray, grid: Grid, x: np.ndarray, z: np.ndarray) -> np.ndarray:
    """Bilinear interpolation of ``field`` at ``(x, z)``, clamped to the domain."""

    fx = np.clip((np.asarray(x, dtype=float) - grid.x[0]) / grid.dx, 0.0, grid.nx - 1)
    fz = np.clip((np.asarray(z, dtype=float) - grid.z[0]) / grid.dz, 0.0, grid.nz - 1)
    i0 = np.minimum(np.floor(fx).astype(np.int64), grid.nx - 2)
    j0 = np.minimum(np.floor(fz).astype(np.int64), grid.nz - 2)
    wx = fx - i0
    wz = fz - j0
    return (
        field[i0, j0] * (1.0 - wx) * (1.0 - wz)
        + field[i0 + 1, j0] * wx * (1.0 - wz)
        + field[i0, j0 + 1] * (1.0 - wx) * wz
        + field[i0 + 1, j0 + 1] * wx * wz
    )


_SAMPLERS = {
    "nearest": sample_nearest,
    "bilinear": sample_bilinear,
}


class TracerArena:
    """Growable, index-stable tracer storage.

    Parameters
    ----------
    capacity:
        Initial number of slots; the arena doubles its capacity when full.
    sampling:
        ``"nearest"`` or ``"bilinear"`` field sampling for :meth:`update`.
    """

    def __init__(self, capacity: int = 1024, *, sampling: str = "nearest") -> None:
        if sampling not in _SAMPLERS:
            raise ValueError(f"Unknown tracer sampling {sampling!r}; expected one of {sorted(_SAMPLERS)}")
        capacity = max(int(capacity), 1)
        self.sampling = sampling
        self._size = 0
        self._columns: Dict[str, np.ndarray] = {name: np.zeros(capacity) for name in _FLOAT_COLUMNS}
        self._columns.update({name: np.zeros(capacity, dtype=np.int64) for name in _INT_COLUMNS})
        self._active = np.zeros(capacity, dtype=bool)

    @property
    def capacity(self) -> int:
        return int(self._active.size)

    @property
    def size(self) -> int:
        """Number of slots handed out so far."""
        return self._size

    def __len__(self) -> int:
        return int(np.count_nonzero(self._active[: self._size]))

    def _reserve(self, extra: int) -> None:
        needed = self._size + extra
        if needed <= self.capacity:
            return
        new_capacity = self.capacity
        while new_capacity < needed:
            new_capacity *= 2
        for name, values in self._columns.items():
            grown = np.zeros(new_capacity, dtype=values.dtype)
            grown[: self._size] = values[: self._size]
            self._columns[name] = grown
        active = np.zeros(new_capacity, dtype=bool)
        active[: self._size] = self._active[: self._size]
        self._active = active
        logger.debug("tracer arena grown to %d slots", new_capacity)

    def append(
        self,
        x: Iterable[float],
        z: Iterable[float],
        T: Iterable[float] | float,
        *,
        dike_index: int = 0,
        time: float = 0.0,
        phi: Optional[Iterable[float]] = None,
    ) -> np.ndarray:
        """Append tracers at explicit positions and return their slot indices."""

        x_arr = np.atleast_1d(np.asarray(x, dtype=float))
        z_arr = np.atleast_1d(np.asarray(z, dtype=float))
        if x_arr.shape != z_arr.shape:
            raise ValueError("x and z must have the same length")
        count = x_arr.size
        T_arr = np.broadcast_to(np.asarray(T, dtype=float), x_arr.shape)
        phi_arr = solid_fraction(T_arr) if phi is None else np.broadcast_to(np.asarray(phi, dtype=float), x_arr.shape)
        self._reserve(count)
        start, stop = self._size, self._size + count
        cols = self._columns
        cols["x"][start:stop] = x_arr
        cols["z"][start:stop] = z_arr
        cols["T"][start:stop] = T_arr
        cols["T_max"][start:stop] = T_arr
        cols["phi"][start:stop] = phi_arr
        cols["time_emplaced"][start:stop] = time
        cols["dike_index"][start:stop] = dike_index
        self._active[start:stop] = True
        self._size = stop
        return np.arange(start, stop)

    def insert_batch(
        self,
        dike: Dike,
        count: int,
        rng: np.random.Generator,
        grid: Optional[Grid] = None,
        *,
        time: Optional[float] = None,
        T_mid: Optional[float] = None,
        T_width: Optional[float] = None,
    ) -> np.ndarray:
        """Seed ``count`` tracers inside ``dike`` at the intrusion temperature.

        Positions are drawn uniformly in the footprint (clipped to ``grid``)
        from ``rng``.  Returns the slot indices of the new tracers.
        """

        if count <= 0:
            return np.arange(self._size, self._size)
        x, z = sample_footprint(dike, count, rng, grid)
        kwargs = {}
        if T_mid is not None:
            kwargs["T_mid"] = T_mid
        if T_width is not None:
            kwargs["T_width"] = T_width
        phi = solid_fraction(np.full(count, dike.temperature), **kwargs)
        return self.append(
            x,
            z,
            dike.temperature,
            dike_index=dike.index,
            time=dike.time if time is None else time,
            phi=phi,
        )

    def update(self, T: np.ndarray, phi: np.ndarray, grid: Grid, method: Optional[str] = None) -> None:
        """Refresh temperature and solid fraction of every active tracer.

        ``method`` overrides the arena's sampling mode for this call.
        """

        n = self._size
        if n == 0:
            return
        name = self.sampling if method is None else method
        if name not in _SAMPLERS:
            raise ValueError(f"Unknown tracer sampling {name!r}; expected one of {sorted(_SAMPLERS)}")
        active = self._active[:n]
        sampler = _SAMPLERS[name]
        cols = self._columns
        x = cols["x"][:n][active]
        z = cols["z"][:n][active]
        T_sampled = sampler(T, grid, x, z)
        cols["T"][:n][active] = T_sampled
        cols["phi"][:n][active] = sampler(phi, grid, x, z)
        cols["T_max"][:n][active] = np.maximum(cols["T_max"][:n][active], T_sampled)

    def column(self, name: str) -> np.ndarray:
        """Return a read-only view of one column over the used slots."""

        if name == "active":
            view = self._active[: self._size]
        else:
            view = self._columns[name][: self._size]
        view = view.view()
        view.setflags(write=False)
        return view

    def snapshot(self) -> TracerSnapshot:
        """Return copies of the active tracers."""

        n = self._size
        active = self._active[:n]
        cols = self._columns
        return TracerSnapshot(
            slot=np.flatnonzero(active),
            x=cols["x"][:n][active].copy(),
            z=cols["z"][:n][active].copy(),
            T=cols["T"][:n][active].copy(),
            phi=cols["phi"][:n][active].copy(),
            T_max=cols["T_max"][:n][active].copy(),
            dike_index=cols["dike_index"][:n][active].copy(),
            time_emplaced=cols["time_emplaced"][:n][active].copy(),
        )
