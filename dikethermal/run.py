"""Time-integration driver and command line entry point.

:class:`Simulation` advances a crustal section through a fixed number of
explicit steps, emplacing dikes on schedule and tracking marker particles.
:func:`run_simulation` wraps a complete run including the progress bar and
output files; :func:`main` exposes it on the command line::

    python -m dikethermal.run --config configs/example.yml --override numerics.t_end_kyr=1
"""
from __future__ import annotations

import argparse
import logging
import math
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from . import config_utils, physics_step
from .fields import FieldSnapshot, FieldStore
from .io import writer
from .orchestrator import SimulationClock, SimulationContext, series_stats
from .physics.intrusion import Dike, IntrusionScheduler
from .physics.tracers import TracerArena, TracerSnapshot
from .runtime.history import StepHistory
from .runtime.progress import ProgressReporter
from .schema import Config

logger = logging.getLogger(__name__)

SERIES_FILENAME = "series.parquet"
TRACERS_FILENAME = "tracers.parquet"
SUMMARY_FILENAME = "summary.json"
RUN_CONFIG_FILENAME = "run_config.json"
SNAPSHOT_DIRNAME = "snapshots"


@dataclass
class RunResult:
    """Outcome of :meth:`Simulation.run`."""

    n_steps: int
    time_s: float
    time_kyr: float
    n_dikes: int
    injected_volume: float
    n_tracers: int
    wall_time_s: float
    dikes: List[Dike] = field(default_factory=list, repr=False)

    def to_summary(self) -> Dict[str, Any]:
        return {
            "n_steps": self.n_steps,
            "time_s": self.time_s,
            "time_kyr": self.time_kyr,
            "n_dikes": self.n_dikes,
            "injected_volume_m3": self.injected_volume,
            "n_tracers": self.n_tracers,
            "wall_time_s": self.wall_time_s,
        }


class Simulation:
    """Stepping state machine for one configured run.

    Construction resolves the grid and time step, initialises the fields to
    the configured temperature profile and evaluates the solid fraction
    once.  Each :meth:`step` then runs the fixed coupling sequence of
    :mod:`dikethermal.physics_step`; after ``n_steps`` steps the simulation
    is finished.
    """

    def __init__(self, cfg: Config, *, seed: Optional[int] = None, outdir: Optional[Path] = None) -> None:
        self.cfg = cfg
        self.context = SimulationContext.from_config(cfg, seed=seed, outdir=outdir)
        self.grid = self.context.grid
        self.time_grid = self.context.time_grid
        self.dt = self.time_grid.dt_s
        self.n_steps = self.time_grid.n_steps
        self.fields = FieldStore.allocate(self.grid)
        self.scheduler = IntrusionScheduler.from_config(cfg.intrusion, self.grid, self.context.rng)
        self.tracers = TracerArena(cfg.tracers.initial_capacity, sampling=cfg.tracers.sampling)
        self.clock = SimulationClock()
        self.history = StepHistory()
        self.dikes: List[Dike] = []
        self.injected_volume = 0.0
        physics_step.initialise_fields(
            self.fields,
            cfg,
            self.context.boundary,
            self.dt,
            backend=self.context.backend,
        )

    @property
    def finished(self) -> bool:
        return self.clock.step >= self.n_steps

    @property
    def rng(self) -> np.random.Generator:
        return self.context.rng

    def step(self) -> physics_step.StepRecord:
        """Advance the state by one time step and return its record."""

        if self.finished:
            raise RuntimeError(f"simulation already finished after {self.n_steps} steps")
        cfg = self.cfg
        outcome = physics_step.intrusion_stage(
            self.fields,
            self.grid,
            self.scheduler,
            self.clock,
            self.tracers,
            self.rng,
            cfg,
            injected_volume_total=self.injected_volume,
        )
        if outcome is not None:
            self.dikes.append(outcome.dike)
            self.injected_volume += outcome.injection.volume
        T_new = physics_step.thermal_stage(
            self.fields,
            cfg,
            self.context.boundary,
            self.dt,
            backend=self.context.backend,
        )
        physics_step.tracer_stage(self.tracers, T_new, self.fields)
        self.fields.swap()
        step_no = self.clock.step
        self.clock.advance(self.dt)

        T = self.fields.T
        record = physics_step.StepRecord(
            step=step_no,
            time=self.clock.time_s,
            time_kyr=self.clock.time_kyr,
            dt=self.dt,
            dike=outcome,
            injected_volume_total=self.injected_volume,
            n_tracers=len(self.tracers),
            T_max=float(np.max(T)),
            T_mean=float(np.mean(T)),
            melt_fraction_mean=float(1.0 - np.mean(self.fields.phi)),
            thermal_energy=self.fields.thermal_energy(),
        )
        every = cfg.io.record_every
        if outcome is not None or step_no % every == 0 or self.finished:
            self.history.append(record.to_record())
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "step %d: t=%.4g kyr T_max=%.4g melt=%.4g tracers=%d",
                step_no,
                record.time_kyr,
                record.T_max,
                record.melt_fraction_mean,
                record.n_tracers,
            )
        return record

    def run(self, progress: Optional[ProgressReporter] = None) -> RunResult:
        """Step until finished and return the run totals."""

        wall_start = time.perf_counter()
        snapshot_every = self.cfg.io.snapshot_every
        while not self.finished:
            record = self.step()
            if progress is not None:
                progress.update(record.step, record.time, n_dikes=len(self.dikes))
            if snapshot_every and self.clock.step % snapshot_every == 0:
                self.write_snapshot()
        if progress is not None:
            progress.finish(self.clock.step - 1, self.clock.time_s, n_dikes=len(self.dikes))
        return RunResult(
            n_steps=self.clock.step,
            time_s=self.clock.time_s,
            time_kyr=self.clock.time_kyr,
            n_dikes=len(self.dikes),
            injected_volume=self.injected_volume,
            n_tracers=len(self.tracers),
            wall_time_s=time.perf_counter() - wall_start,
            dikes=list(self.dikes),
        )

    def field_snapshot(self) -> FieldSnapshot:
        return self.fields.snapshot(self.clock.time_s)

    def tracer_snapshot(self) -> TracerSnapshot:
        return self.tracers.snapshot()

    def injection_rate(self) -> float:
        """Mean intruded volume per unit time [m^3 s^-1]; 0 before any time has elapsed."""

        if self.clock.time_s <= 0.0:
            return 0.0
        return self.injected_volume / self.clock.time_s

    def write_snapshot(self, path: Optional[Path] = None) -> Path:
        """Persist the current fields as ``snapshots/snapshot_<step>.npz``."""

        if path is None:
            path = self.context.outdir / SNAPSHOT_DIRNAME / f"snapshot_{self.clock.step:06d}.npz"
        snap = self.field_snapshot()
        writer.write_snapshot(path, x=snap.x, z=snap.z, T=snap.T, phi=snap.phi, time=snap.time)
        return path

    def summary(self, result: Optional[RunResult] = None) -> Dict[str, Any]:
        """Return a JSON-serialisable description of the run."""

        t_min, t_median, t_max = series_stats(self.history.column("T_max"))
        payload: Dict[str, Any] = {
            "seed": self.context.seed,
            "backend": self.context.backend_info,
            "grid": {
                "nx": self.grid.nx,
                "nz": self.grid.nz,
                "dx_m": self.grid.dx,
                "dz_m": self.grid.dz,
            },
            "time_grid": self.time_grid.as_dict(),
            "injected_volume_m3": self.injected_volume,
            "injection_rate_m3_s": self.injection_rate(),
            "n_dikes": len(self.dikes),
            "n_tracers": len(self.tracers),
            "T_max_series": {"min": t_min, "median": t_median, "max": t_max},
        }
        if result is not None:
            payload.update(result.to_summary())
        return payload

    def write_outputs(self, result: Optional[RunResult] = None) -> Path:
        """Write the step series, tracers, summary and resolved config to ``outdir``."""

        outdir = self.context.outdir
        writer.write_parquet(self.history.to_table(writer.SERIES_UNITS), outdir / SERIES_FILENAME)
        writer.write_tracers(self.tracer_snapshot().to_frame(), outdir / TRACERS_FILENAME)
        writer.write_summary(self.summary(result), outdir / SUMMARY_FILENAME)
        writer.write_run_config(self.cfg.model_dump(mode="json"), outdir / RUN_CONFIG_FILENAME)
        logger.info("outputs written to %s", outdir)
        return outdir


# ---------------------------------------------------------------------------
# Configuration loading and CLI run
# ---------------------------------------------------------------------------


def load_config(path: Path, overrides: Optional[Sequence[str]] = None) -> Config:
    """Load a YAML configuration file into a :class:`Config` instance."""

    from ruamel.yaml import YAML

    yaml = YAML(typ="safe")
    source_path = Path(path).resolve()
    with source_path.open("r", encoding="utf-8") as fh:
        data = yaml.load(fh)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise TypeError("Configuration file must contain a mapping at the root")
    if overrides:
        data = config_utils.apply_overrides_dict(data, overrides)
    return Config(**data)


def run_simulation(
    cfg: Config,
    *,
    seed: Optional[int] = None,
    outdir: Optional[Path] = None,
) -> Simulation:
    """Run ``cfg`` to completion, writing outputs when ``io.write_outputs`` is set."""

    sim = Simulation(cfg, seed=seed, outdir=outdir)
    progress_cfg = cfg.io.progress
    progress = ProgressReporter(
        sim.n_steps,
        sim.time_grid.n_steps * sim.dt,
        refresh_seconds=progress_cfg.refresh_seconds,
        enabled=progress_cfg.enable,
    )
    result = sim.run(progress)
    logger.info(
        "run finished: %d steps, %.4g kyr, %d dikes, %.4g m^3 intruded, %d tracers in %.2f s",
        result.n_steps,
        result.time_kyr,
        result.n_dikes,
        result.injected_volume,
        result.n_tracers,
        result.wall_time_s,
    )
    if not math.isfinite(float(np.max(sim.fields.T))):
        logger.warning("temperature field contains non-finite values")
    if cfg.io.write_outputs:
        sim.write_outputs(result)
    return sim


def main(argv: Optional[List[str]] = None) -> None:
    """Command line entry point."""

    parser = argparse.ArgumentParser(description="Simulate the thermal evolution of crust intruded by dikes")
    parser.add_argument("--config", type=Path, required=True, help="Path to YAML configuration")
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Show a console progress bar with ETA for the main integration loop.",
    )
    parser.add_argument(
        "--quiet",
        action=argparse.BooleanOptionalAction,
        default=None,
        help=(
            "Suppress INFO logs and Python warnings for a cleaner CLI "
            "(defaults to enabled when not set in config; use --no-quiet to show logs)."
        ),
    )
    parser.add_argument(
        "--override",
        action="append",
        nargs="+",
        metavar="PATH=VALUE",
        help=(
            "Apply configuration overrides using dotted paths; e.g. "
            "--override intrusion.shape=SquareDike"
        ),
    )
    parser.add_argument(
        "--overrides-file",
        action="append",
        type=Path,
        help="Load overrides from a file (one PATH=VALUE per line).",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for dike placement (overrides numerics.seed).")
    parser.add_argument("--outdir", type=Path, default=None, help="Output directory (overrides io.outdir).")
    args = parser.parse_args(argv)

    override_list: List[str] = []
    if args.overrides_file:
        for override_path in args.overrides_file:
            override_list.extend(config_utils.read_overrides_file(override_path))
    if args.override:
        for group in args.override:
            override_list.extend(group)
    cfg = load_config(args.config, overrides=override_list)
    if args.quiet is not None:
        cfg.io.quiet = bool(args.quiet)
    elif "quiet" not in cfg.io.model_fields_set:
        cfg.io.quiet = True
    if args.progress:
        cfg.io.progress.enable = True
    if args.seed is not None:
        cfg.numerics.seed = args.seed
    quiet_effective = bool(cfg.io.quiet)
    config_utils.configure_logging(
        logging.WARNING if quiet_effective else logging.INFO,
        suppress_warnings=quiet_effective,
    )
    run_simulation(cfg, outdir=args.outdir)


__all__ = [
    "RunResult",
    "Simulation",
    "load_config",
    "run_simulation",
    "main",
]


if __name__ == "__main__":  # pragma: no cover - standard CLI entrypoint
    main()
