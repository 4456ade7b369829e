"""Orchestrator layer for dike intrusion simulations.

This module resolves everything a run needs before the first step: the
grid, the boundary conditions, the stable time step and the seeded random
generator.  It separates this setup from the per-step physics and from
I/O.

Module Dependencies
-------------------
```
orchestrator.py
├── run.py (main entry point, Simulation driver)
├── physics_step.py (per-step physics)
└── io/writer.py (output)
```
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from . import constants
from .errors import ConfigurationError
from .grid import Grid
from .physics.diffusion import BoundaryConditions, check_stability, stability_bound
from .runtime.numba_config import numba_disabled_env, numba_status, resolve_backend
from .schema import Config

logger = logging.getLogger(__name__)

# ===========================================================================
# Constants
# ===========================================================================
SECONDS_PER_KYR = constants.SECONDS_PER_KYR
MAX_STEPS = 50_000_000


# ===========================================================================
# Data Classes for State Management
# ===========================================================================

@dataclass
class SimulationClock:
    """Mutable simulation time.

    Attributes
    ----------
    time_s : float
        Current simulated time [s].
    step : int
        Number of completed steps.
    intrusion_index : int
        Number of injection intervals already consumed; written by the
        intrusion scheduler.
    """
    time_s: float = 0.0
    step: int = 0
    intrusion_index: int = 0

    @property
    def time_kyr(self) -> float:
        return self.time_s / SECONDS_PER_KYR

    def advance(self, dt: float) -> None:
        self.time_s += dt
        self.step += 1


@dataclass
class TimeGridInfo:
    """Information about the simulation time grid.

    Attributes
    ----------
    t_end_s : float
        Total simulation duration [s].
    dt_s : float
        Fixed step size [s].
    dt_bound_s : float
        Explicit stability bound for the grid and material [s].
    n_steps : int
        Number of steps, ``max(1, floor(t_end / dt))``.
    dt_mode : str
        ``"auto"`` when ``dt`` equals the stability bound, else ``"explicit"``.
    """
    t_end_s: float
    dt_s: float
    dt_bound_s: float
    n_steps: int
    dt_mode: str
    t_end_kyr: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "t_end_s": self.t_end_s,
            "t_end_kyr": self.t_end_kyr,
            "dt_s": self.dt_s,
            "dt_bound_s": self.dt_bound_s,
            "n_steps": self.n_steps,
            "dt_mode": self.dt_mode,
        }


@dataclass
class SimulationContext:
    """Resolved, immutable-by-convention setup for one run.

    The random generator is owned here and is the only source of
    randomness in the run.
    """
    cfg: Config
    grid: Grid
    time_grid: TimeGridInfo
    boundary: BoundaryConditions
    rng: np.random.Generator
    seed: int
    backend: str
    outdir: Path
    backend_info: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_config(
        cls,
        cfg: Config,
        *,
        seed: Optional[int] = None,
        outdir: Optional[Path] = None,
    ) -> "SimulationContext":
        grid = build_grid(cfg)
        time_grid = resolve_time_grid(cfg, grid)
        seed_value = cfg.resolved_seed() if seed is None else int(seed)
        requested = cfg.numerics.backend
        backend = resolve_backend(requested)
        ctx = cls(
            cfg=cfg,
            grid=grid,
            time_grid=time_grid,
            boundary=build_boundary_conditions(cfg),
            rng=np.random.default_rng(seed_value),
            seed=seed_value,
            backend=backend,
            outdir=Path(cfg.io.outdir if outdir is None else outdir),
            backend_info=numba_status(requested, backend, numba_disabled_env()),
        )
        logger.info(
            "grid %dx%d (dx=%.4g m, dz=%.4g m); dt=%.4g s (%s), %d steps to %.4g kyr; seed=%d backend=%s",
            grid.nx,
            grid.nz,
            grid.dx,
            grid.dz,
            time_grid.dt_s,
            time_grid.dt_mode,
            time_grid.n_steps,
            time_grid.t_end_kyr,
            seed_value,
            backend,
        )
        return ctx


# ===========================================================================
# Configuration Resolution Helpers
# ===========================================================================

def build_grid(cfg: Config) -> Grid:
    """Return the grid described by the ``domain`` block."""

    dom = cfg.domain
    return Grid.from_extent(dom.width_m, dom.height_m, dom.nx, dom.nz)


def build_boundary_conditions(cfg: Config) -> BoundaryConditions:
    """Return the top/bottom boundary treatment from the ``boundary`` block."""

    return BoundaryConditions(
        T_top=float(cfg.boundary.T_top),
        T_bottom=cfg.resolved_T_bottom(),
        top=cfg.boundary.top,
        bottom=cfg.boundary.bottom,
    )


# ===========================================================================
# Time Grid Resolution
# ===========================================================================

def resolve_time_grid(cfg: Config, grid: Grid) -> TimeGridInfo:
    """Resolve the fixed time step and step count.

    ``numerics.dt == "auto"`` uses the explicit stability bound itself; an
    explicit ``dt`` is validated against it.

    Raises
    ------
    ConfigurationError
        If the duration is negative or not finite, or the step count
        exceeds ``MAX_STEPS``.
    StabilityViolation
        If an explicit ``dt`` exceeds the stability bound.
    """
    num = cfg.numerics
    mat = cfg.material
    t_end_kyr = float(num.t_end_kyr)
    if not math.isfinite(t_end_kyr) or t_end_kyr < 0.0:
        raise ConfigurationError(f"simulated duration must be finite and non-negative (got {t_end_kyr} kyr)")
    t_end = t_end_kyr * SECONDS_PER_KYR

    bound = stability_bound(grid, mat.k_rock, mat.rho, mat.cp, num.safety_factor, k_magma=mat.k_magma)
    if isinstance(num.dt, str):
        dt = bound
        dt_mode = "auto"
    else:
        dt = float(num.dt)
        check_stability(dt, bound)
        dt_mode = "explicit"

    n_steps = max(1, int(math.floor(t_end / dt)))
    if n_steps > MAX_STEPS:
        raise ConfigurationError(
            f"run would need {n_steps} steps (limit {MAX_STEPS}); coarsen the grid or shorten t_end_kyr"
        )
    return TimeGridInfo(
        t_end_s=t_end,
        dt_s=dt,
        dt_bound_s=bound,
        n_steps=n_steps,
        dt_mode=dt_mode,
        t_end_kyr=t_end_kyr,
    )


# ===========================================================================
# Utility Functions
# ===========================================================================

def series_stats(values: List[float]) -> tuple[float, float, float]:
    """Compute min, median, max of a list of values.

    Returns ``(nan, nan, nan)`` when no finite value is present.
    """
    arr = np.asarray([v for v in values if v is not None], dtype=float)
    arr = arr[np.isfinite(arr)]
    if arr.size == 0:
        nan = float("nan")
        return nan, nan, nan
    return float(np.min(arr)), float(np.median(arr)), float(np.max(arr))


__all__ = [
    "SECONDS_PER_KYR",
    "MAX_STEPS",
    "SimulationClock",
    "TimeGridInfo",
    "SimulationContext",
    "build_grid",
    "build_boundary_conditions",
    "resolve_time_grid",
    "series_stats",
]
