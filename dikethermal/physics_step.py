"""Per-step physics calculations for dike intrusion simulations.

The functions here perform the work of one time step in a fixed coupling
order:

    intrusion -> solid fraction & dphi/dt -> K -> stencil -> boundaries
    -> tracers -> buffer swap -> clock

They receive the state objects explicitly and return structured results;
the driver in :mod:`dikethermal.run` owns the state and the history.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np

from .fields import FieldStore
from .grid import Grid
from .orchestrator import SimulationClock
from .physics.diffusion import (
    BoundaryConditions,
    apply_boundary_conditions,
    diffusion_step,
    effective_conductivity,
)
from .physics.intrusion import Dike, InjectionResult, IntrusionScheduler, inject
from .physics.phase import update_phase
from .physics.tracers import TracerArena
from .schema import Config

logger = logging.getLogger(__name__)


@dataclass
class IntrusionOutcome:
    """Results of the intrusion stage.

    Attributes
    ----------
    injection : InjectionResult
        Rasterization and replaced volume of the new dike.
    tracer_slots : np.ndarray
        Slot indices of the tracers seeded inside it.
    """
    injection: InjectionResult
    tracer_slots: np.ndarray = field(repr=False)

    @property
    def dike(self) -> Dike:
        return self.injection.dike


@dataclass
class StepRecord:
    """Row of the per-step history.

    ``dike`` is set only on steps where an intrusion fired.
    """
    step: int
    time: float
    time_kyr: float
    dt: float
    dike: Optional[IntrusionOutcome]
    injected_volume_total: float
    n_tracers: int
    T_max: float = float("nan")
    T_mean: float = float("nan")
    melt_fraction_mean: float = float("nan")
    thermal_energy: float = float("nan")

    def to_record(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "step": self.step,
            "time": self.time,
            "time_kyr": self.time_kyr,
            "dt": self.dt,
        }
        if self.dike is not None:
            row.update(self.dike.dike.to_record())
            row["dike_cells"] = self.dike.injection.n_cells
            row["dike_volume_m3"] = self.dike.injection.volume
        row.update(
            {
                "injected_volume_total": self.injected_volume_total,
                "n_tracers": self.n_tracers,
                "T_max": self.T_max,
                "T_mean": self.T_mean,
                "melt_fraction_mean": self.melt_fraction_mean,
                "thermal_energy": self.thermal_energy,
            }
        )
        return row


def initialise_fields(fields: FieldStore, cfg: Config, bc: BoundaryConditions, dt: float, *, backend: str = "numpy") -> None:
    """Prepare the state before the first step.

    Sets material properties and the initial temperature, imposes the
    boundary values and evaluates the solid fraction once so that the first
    ``dphi_dt`` only reflects changes made during the run.
    """
    fields.set_material(cfg.material.rho, cfg.material.cp)
    if cfg.initial.mode == "uniform":
        fields.set_uniform(cfg.initial.T_uniform)
    else:
        fields.set_geotherm(cfg.boundary.geothermal_gradient_K_per_km, T_top=cfg.boundary.T_top)
    apply_boundary_conditions(fields.T, bc, backend=backend)
    fields.T_new[...] = fields.T
    update_phase(
        fields.T,
        fields.phi_prev,
        dt,
        T_mid=cfg.phase.T_mid,
        T_width=cfg.phase.T_width,
        phi_out=fields.phi,
        dphi_dt_out=fields.dphi_dt,
    )
    effective_conductivity(fields.phi, cfg.material.k_rock, cfg.material.k_magma, out=fields.K)


def intrusion_stage(
    fields: FieldStore,
    grid: Grid,
    scheduler: IntrusionScheduler,
    clock: SimulationClock,
    tracers: TracerArena,
    rng: np.random.Generator,
    cfg: Config,
    *,
    injected_volume_total: float = 0.0,
) -> Optional[IntrusionOutcome]:
    """Fire at most one dike, emplace it and seed its tracers.

    ``injected_volume_total`` is the volume intruded before this step; it
    only feeds the per-dike report.
    """

    dike = scheduler.maybe_inject(clock)
    if dike is None:
        return None
    injection = inject(fields, grid, dike, depth=cfg.intrusion.depth_m)
    slots = tracers.insert_batch(
        dike,
        cfg.tracers.per_dike,
        rng,
        grid,
        time=clock.time_s,
        T_mid=cfg.phase.T_mid,
        T_width=cfg.phase.T_width,
    )
    total = injected_volume_total + injection.volume
    rate = total / clock.time_s if clock.time_s > 0.0 else 0.0
    logger.info(
        "dike %d at t=%.4g kyr: centre=(%.4g, %.4g) m angle=%.1f deg cells=%d volume=%.4g m^3; "
        "total injected %.4g km^3, rate Q=%.4g m^3/s",
        dike.index,
        clock.time_kyr,
        dike.center[0],
        dike.center[1],
        dike.angle,
        injection.n_cells,
        injection.volume,
        total / 1.0e9,
        rate,
    )
    return IntrusionOutcome(injection=injection, tracer_slots=slots)


def thermal_stage(
    fields: FieldStore,
    cfg: Config,
    bc: BoundaryConditions,
    dt: float,
    *,
    backend: str = "numpy",
) -> np.ndarray:
    """Phase update, conductivity, stencil and boundaries.

    Returns the scratch buffer holding the new temperature; the caller
    swaps it in after the tracers have sampled it.
    """
    update_phase(
        fields.T,
        fields.phi_prev,
        dt,
        T_mid=cfg.phase.T_mid,
        T_width=cfg.phase.T_width,
        phi_out=fields.phi,
        dphi_dt_out=fields.dphi_dt,
    )
    effective_conductivity(fields.phi, cfg.material.k_rock, cfg.material.k_magma, out=fields.K)
    T_new = diffusion_step(fields, dt, cfg.material.latent_heat, backend=backend)
    apply_boundary_conditions(T_new, bc, backend=backend)
    return T_new


def tracer_stage(tracers: TracerArena, T_new: np.ndarray, fields: FieldStore) -> None:
    """Sample the new temperature and current solid fraction at every tracer."""

    tracers.update(T_new, fields.phi, fields.grid)


__all__ = [
    "IntrusionOutcome",
    "StepRecord",
    "initialise_fields",
    "intrusion_stage",
    "thermal_stage",
    "tracer_stage",
]
