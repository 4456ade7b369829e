"""Dike generation, rasterization and thermal emplacement.

A dike is a sheet of magma of given width (along-strike length in the
section), thickness (opening), centre, rotation and temperature.  Two shapes
are supported:

``SquareDike``
    Rectangle ``|xi| <= W/2, |eta| <= H/2`` in the dike frame.
``ElasticDike``
    Lens whose opening follows the elliptical profile of a pressurised
    elastic crack, ``(2 xi/W)^2 + (2 eta/H)^2 <= 1``.

Emplacement is purely thermal: every cell whose centre lies in the
footprint takes the intrusion temperature.  Parts of a dike that fall
outside the domain are clipped.
"""
from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np

from ..errors import ConfigurationError, GeometryError
from ..fields import FieldStore
from ..grid import Grid
from ..schema import Intrusion
from ..warnings import GeometryWarning

logger = logging.getLogger(__name__)

__all__ = [
    "DikeShape",
    "Dike",
    "InjectionResult",
    "IntrusionScheduler",
    "footprint_mask",
    "rasterize",
    "dike_area",
    "inject",
    "sample_footprint",
]

# Upper bound on rejection sampling rounds when placing points in a footprint
MAX_SAMPLING_ROUNDS = 64


class DikeShape(str, Enum):
    """Closed set of supported dike geometries."""

    SQUARE = "SquareDike"
    ELASTIC = "ElasticDike"


@dataclass(frozen=True)
class Dike:
    """One intrusion event.

    Attributes
    ----------
    width:
        Along-strike length [m].
    thickness:
        Opening [m].
    center:
        ``(x, z)`` of the dike centre [m].
    angle:
        Counter-clockwise rotation from the +x axis [deg].
    temperature:
        Intrusion temperature.
    shape:
        Geometry variant.
    index:
        1-based event number within the run (0 for ad-hoc dikes).
    time:
        Emplacement time [s].
    """

    width: float
    thickness: float
    center: Tuple[float, float]
    angle: float = 0.0
    temperature: float = 900.0
    shape: DikeShape = DikeShape.ELASTIC
    index: int = 0
    time: float = 0.0

    def __post_init__(self) -> None:
        if not (self.width > 0.0 and self.thickness > 0.0):
            raise ConfigurationError(
                f"dike width and thickness must be positive (got {self.width}, {self.thickness})"
            )
        object.__setattr__(self, "shape", DikeShape(self.shape))
        object.__setattr__(self, "center", (float(self.center[0]), float(self.center[1])))

    def to_local(self, x: np.ndarray, z: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Rotate global coordinates into the dike frame ``(xi, eta)``."""
        theta = math.radians(self.angle)
        cos_t, sin_t = math.cos(theta), math.sin(theta)
        dx = np.asarray(x, dtype=float) - self.center[0]
        dz = np.asarray(z, dtype=float) - self.center[1]
        xi = dx * cos_t + dz * sin_t
        eta = -dx * sin_t + dz * cos_t
        return xi, eta

    def to_global(self, xi: np.ndarray, eta: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Inverse of :meth:`to_local`."""
        theta = math.radians(self.angle)
        cos_t, sin_t = math.cos(theta), math.sin(theta)
        x = self.center[0] + xi * cos_t - eta * sin_t
        z = self.center[1] + xi * sin_t + eta * cos_t
        return x, z

    def to_record(self) -> Dict[str, Any]:
        return {
            "dike_index": self.index,
            "dike_time_s": self.time,
            "dike_x_m": self.center[0],
            "dike_z_m": self.center[1],
            "dike_angle_deg": self.angle,
            "dike_width_m": self.width,
            "dike_thickness_m": self.thickness,
            "dike_temperature": self.temperature,
            "dike_shape": self.shape.value,
        }


def _inside_square(dike: Dike, xi: np.ndarray, eta: np.ndarray) -> np.ndarray:
    return (np.abs(xi) <= 0.5 * dike.width) & (np.abs(eta) <= 0.5 * dike.thickness)


def _inside_elastic(dike: Dike, xi: np.ndarray, eta: np.ndarray) -> np.ndarray:
    return (2.0 * xi / dike.width) ** 2 + (2.0 * eta / dike.thickness) ** 2 <= 1.0


_SHAPE_TESTS: Dict[DikeShape, Callable[[Dike, np.ndarray, np.ndarray], np.ndarray]] = {
    DikeShape.SQUARE: _inside_square,
    DikeShape.ELASTIC: _inside_elastic,
}

_SHAPE_AREAS: Dict[DikeShape, Callable[[Dike], float]] = {
    DikeShape.SQUARE: lambda dike: dike.width * dike.thickness,
    DikeShape.ELASTIC: lambda dike: 0.25 * math.pi * dike.width * dike.thickness,
}


def footprint_mask(dike: Dike, x: np.ndarray, z: np.ndarray) -> np.ndarray:
    """Return a boolean mask of the points ``(x, z)`` inside the dike."""

    xi, eta = dike.to_local(x, z)
    return _SHAPE_TESTS[dike.shape](dike, xi, eta)


def rasterize(dike: Dike, grid: Grid) -> np.ndarray:
    """Return the ``(nx, nz)`` mask of grid points covered by ``dike``."""

    X, Z = grid.meshgrid()
    return footprint_mask(dike, X, Z)


def dike_area(dike: Dike) -> float:
    """Analytic cross-sectional area of the dike [m^2]."""
    return float(_SHAPE_AREAS[dike.shape](dike))


@dataclass
class InjectionResult:
    """Outcome of one emplacement."""

    dike: Dike
    volume: float
    n_cells: int
    mask: np.ndarray = field(repr=False)


def inject(fields: FieldStore, grid: Grid, dike: Dike, *, depth: float = 1.0) -> InjectionResult:
    """Overwrite the temperature inside the dike footprint.

    Returns the replaced volume ``n_cells * dx * dz * depth`` where ``depth``
    is the out-of-plane thickness of the section.

    Raises
    ------
    GeometryError
        If the dike centre lies outside the domain and no cell is covered.
    """

    mask = rasterize(dike, grid)
    n_cells = int(np.count_nonzero(mask))
    if n_cells == 0:
        if not grid.contains(*dike.center):
            raise GeometryError(
                f"dike centred at ({dike.center[0]:.6g}, {dike.center[1]:.6g}) m lies wholly outside the domain"
            )
        message = (
            f"dike {dike.index} ({dike.width:.6g} x {dike.thickness:.6g} m) covers no grid point; "
            "refine the grid to resolve it"
        )
        logger.warning(message)
        warnings.warn(message, GeometryWarning, stacklevel=2)
    fields.T[mask] = dike.temperature
    volume = n_cells * grid.cell_area * float(depth)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "inject: dike=%d cells=%d volume=%e m^3 (analytic area %e m^2)",
            dike.index,
            n_cells,
            volume,
            dike_area(dike),
        )
    return InjectionResult(dike=dike, volume=volume, n_cells=n_cells, mask=mask)


def sample_footprint(
    dike: Dike,
    count: int,
    rng: np.random.Generator,
    grid: Optional[Grid] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Draw ``count`` points uniformly inside the dike footprint.

    Candidates are drawn in the dike's bounding box, rejected outside the
    shape (and outside ``grid`` when given) and rotated into global
    coordinates.  The draw order depends only on ``rng``.

    When a clipped footprint leaves too little area inside ``grid`` for
    rejection sampling, the remaining points are placed at the covered grid
    points jittered by up to half a cell, or reuse accepted points when the
    sliver covers no grid point at all.

    Raises
    ------
    GeometryError
        If the footprint has no overlap with the domain.
    """

    if count <= 0:
        return np.empty(0), np.empty(0)
    xs: list[np.ndarray] = []
    zs: list[np.ndarray] = []
    found = 0
    for _ in range(MAX_SAMPLING_ROUNDS):
        batch = max(2 * (count - found), 16)
        xi = (rng.random(batch) - 0.5) * dike.width
        eta = (rng.random(batch) - 0.5) * dike.thickness
        keep = _SHAPE_TESTS[dike.shape](dike, xi, eta)
        x, z = dike.to_global(xi[keep], eta[keep])
        if grid is not None:
            inside = (x >= grid.x[0]) & (x <= grid.x[-1]) & (z >= grid.z[0]) & (z <= grid.z[-1])
            x, z = x[inside], z[inside]
        xs.append(x)
        zs.append(z)
        found += x.size
        if found >= count:
            break
    x_all = np.concatenate(xs)
    z_all = np.concatenate(zs)
    if found < count:
        missing = count - found
        ix, iz = np.nonzero(rasterize(dike, grid)) if grid is not None else (np.empty(0, int), np.empty(0, int))
        if ix.size:
            pick = rng.integers(0, ix.size, size=missing)
            x_fill = grid.x[ix[pick]] + (rng.random(missing) - 0.5) * grid.dx
            z_fill = grid.z[iz[pick]] + (rng.random(missing) - 0.5) * grid.dz
            x_fill = np.clip(x_fill, grid.x[0], grid.x[-1])
            z_fill = np.clip(z_fill, grid.z[0], grid.z[-1])
        elif found:
            pick = rng.integers(0, found, size=missing)
            x_fill, z_fill = x_all[pick], z_all[pick]
        else:
            raise GeometryError(
                f"dike {dike.index} centred at ({dike.center[0]:.6g}, {dike.center[1]:.6g}) m "
                "does not overlap the domain"
            )
        logger.debug(
            "sample_footprint: dike=%d placed %d of %d points on covered cells",
            dike.index,
            missing,
            count,
        )
        x_all = np.concatenate([x_all, x_fill])
        z_all = np.concatenate([z_all, z_fill])
    return x_all[:count], z_all[:count]


class IntrusionScheduler:
    """Decide when dikes fire and draw their random placement.

    One dike fires whenever ``floor(time_kyr / interval_kyr)`` exceeds the
    clock's ``intrusion_index``; the index is then advanced to the current
    interval so that no more than one dike fires per interval, however small
    the time step.
    """

    def __init__(
        self,
        rng: np.random.Generator,
        *,
        interval_kyr: float,
        width: float,
        thickness: float,
        temperature: float,
        shape: DikeShape | str = DikeShape.ELASTIC,
        reference_center: Tuple[float, float] = (0.0, 0.0),
        placement_range: Tuple[float, float] = (0.0, 0.0),
        angle_range_deg: float = 0.0,
        enabled: bool = True,
    ) -> None:
        if not interval_kyr > 0.0:
            raise ConfigurationError("injection interval must be positive")
        self.rng = rng
        self.interval_kyr = float(interval_kyr)
        self.width = float(width)
        self.thickness = float(thickness)
        self.temperature = float(temperature)
        self.shape = DikeShape(shape)
        self.reference_center = (float(reference_center[0]), float(reference_center[1]))
        self.placement_range = (float(placement_range[0]), float(placement_range[1]))
        self.angle_range_deg = float(angle_range_deg)
        self.enabled = bool(enabled)
        self.n_fired = 0

    @classmethod
    def from_config(cls, cfg: Intrusion, grid: Grid, rng: np.random.Generator) -> "IntrusionScheduler":
        """Construct a scheduler from the ``intrusion`` configuration block."""

        cx, cz = grid.center
        center = (
            cx if cfg.center_x_m is None else cfg.center_x_m,
            cz if cfg.center_z_m is None else cfg.center_z_m,
        )
        span = (
            grid.width / 4.0 if cfg.range_x_m is None else cfg.range_x_m,
            grid.height / 4.0 if cfg.range_z_m is None else cfg.range_z_m,
        )
        return cls(
            rng,
            interval_kyr=cfg.interval_kyr,
            width=cfg.width_m,
            thickness=cfg.thickness_m,
            temperature=cfg.temperature,
            shape=cfg.shape,
            reference_center=center,
            placement_range=span,
            angle_range_deg=cfg.angle_range_deg,
            enabled=cfg.enabled,
        )

    def maybe_inject(self, clock: Any) -> Optional[Dike]:
        """Return a new dike if one is due at ``clock``, else ``None``.

        ``clock`` must expose ``time_s``, ``time_kyr`` and a writable
        ``intrusion_index``.
        """

        if not self.enabled:
            return None
        due = math.floor(clock.time_kyr / self.interval_kyr)
        if due <= clock.intrusion_index:
            return None
        clock.intrusion_index = due
        self.n_fired += 1
        return self._draw(index=self.n_fired, time_s=clock.time_s)

    def _draw(self, *, index: int, time_s: float) -> Dike:
        offset = (self.rng.random(2) - 0.5) * np.asarray(self.placement_range)
        angle = (float(self.rng.random()) - 0.5) * self.angle_range_deg
        center = (
            self.reference_center[0] + float(offset[0]),
            self.reference_center[1] + float(offset[1]),
        )
        return Dike(
            width=self.width,
            thickness=self.thickness,
            center=center,
            angle=angle,
            temperature=self.temperature,
            shape=self.shape,
            index=index,
            time=time_s,
        )
