from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np
import pandas as pd
import pyarrow.parquet as pq
import pytest

from dikethermal import run
from dikethermal.errors import StabilityViolation
from dikethermal.orchestrator import SECONDS_PER_KYR
from dikethermal.warnings import NumericalWarning


def test_simulation_injects_and_seeds_tracers(make_config) -> None:
    cfg = make_config()
    sim = run.Simulation(cfg)
    result = sim.run()

    assert sim.finished
    assert result.n_steps == sim.n_steps
    assert result.n_dikes == sim.scheduler.n_fired >= 1
    assert [d.index for d in result.dikes] == list(range(1, result.n_dikes + 1))
    assert len(sim.tracers) == result.n_dikes * cfg.tracers.per_dike
    assert result.injected_volume > 0.0
    assert sim.injection_rate() == pytest.approx(sim.injected_volume / sim.clock.time_s)
    assert result.time_kyr == pytest.approx(sim.n_steps * sim.dt / SECONDS_PER_KYR)

    snap = sim.tracer_snapshot()
    assert np.all(snap.T_max >= snap.T)
    assert np.all(np.isfinite(sim.fields.T))


def test_step_records_mark_intrusions(make_config) -> None:
    sim = run.Simulation(make_config())
    first = sim.step()
    assert first.step == 0
    assert first.dike is None
    sim.run()
    records = sim.history.to_records()
    assert len(records) == sim.n_steps
    fired = [row for row in records if row.get("dike_index") is not None]
    assert len(fired) == len(sim.dikes)
    totals = [row["injected_volume_total"] for row in records]
    assert totals == sorted(totals)
    assert totals[-1] == pytest.approx(sim.injected_volume)


def test_dike_log_reports_running_total_and_rate(make_config, caplog: pytest.LogCaptureFixture) -> None:
    sim = run.Simulation(make_config())
    with caplog.at_level(logging.INFO, logger="dikethermal.physics_step"):
        sim.run()
    messages = [r.getMessage() for r in caplog.records if r.getMessage().startswith("dike ")]
    assert len(messages) == len(sim.dikes)
    expected_km3 = sim.injected_volume / 1.0e9
    assert f"total injected {expected_km3:.4g} km^3" in messages[-1]
    assert "rate Q=" in messages[-1]


def test_runs_are_reproducible_for_seed(make_config) -> None:
    a = run.Simulation(make_config())
    b = run.Simulation(make_config())
    c = run.Simulation(make_config("numerics.seed=8"))
    for sim in (a, b, c):
        sim.run()
    np.testing.assert_array_equal(a.fields.T, b.fields.T)
    np.testing.assert_array_equal(a.tracer_snapshot().x, b.tracer_snapshot().x)
    assert [d.center for d in a.dikes] == [d.center for d in b.dikes]
    assert [d.center for d in a.dikes] != [d.center for d in c.dikes]


def test_seed_argument_overrides_config(make_config) -> None:
    a = run.Simulation(make_config(), seed=99)
    b = run.Simulation(make_config("numerics.seed=99"))
    a.run()
    b.run()
    assert [d.center for d in a.dikes] == [d.center for d in b.dikes]


def test_step_after_finish_raises(make_config) -> None:
    sim = run.Simulation(make_config("numerics.t_end_kyr=0.0"))
    assert sim.n_steps == 1
    sim.step()
    with pytest.raises(RuntimeError):
        sim.step()


def test_unstable_explicit_dt_rejected_at_startup(make_config) -> None:
    with pytest.raises(StabilityViolation):
        run.Simulation(make_config("numerics.dt=1.0e12"))


def test_energy_conserved_without_intrusions(make_config) -> None:
    cfg = make_config(
        "intrusion.enabled=false",
        "boundary.top=neumann",
        "boundary.bottom=neumann",
        "material.latent_heat=0.0",
        "numerics.t_end_kyr=20.0",
    )
    sim = run.Simulation(cfg)
    energy0 = sim.fields.thermal_energy()
    sim.run()
    assert sim.dikes == []
    assert sim.injection_rate() == 0.0
    assert sim.fields.thermal_energy() == pytest.approx(energy0, rel=1e-10)


def test_field_snapshot_reports_melt_fraction(make_config) -> None:
    sim = run.Simulation(make_config())
    sim.run()
    snap = sim.field_snapshot()
    np.testing.assert_allclose(snap.melt_fraction, 1.0 - snap.phi)
    assert snap.time == pytest.approx(sim.clock.time_s)
    assert snap.T.shape == (61, 61)


def test_numba_backend_matches_numpy_run(make_config) -> None:
    a = run.Simulation(make_config("numerics.backend=numpy"))
    b = run.Simulation(make_config("numerics.backend=numba"))
    assert b.context.backend == "numba"
    a.run()
    b.run()
    np.testing.assert_allclose(b.fields.T, a.fields.T, rtol=1e-10, atol=1e-8)


def test_numba_backend_falls_back_when_disabled(make_config, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DIKETHERMAL_NUMBA_DISABLE", "1")
    with pytest.warns(NumericalWarning):
        sim = run.Simulation(make_config("numerics.backend=numba"))
    assert sim.context.backend == "numpy"
    assert sim.context.backend_info["disabled_env"] is True


def test_run_simulation_writes_outputs(make_config, tmp_path: Path) -> None:
    outdir = tmp_path / "results"
    cfg = make_config("io.snapshot_every=3")
    sim = run.run_simulation(cfg, outdir=outdir)

    series = pd.read_parquet(outdir / run.SERIES_FILENAME)
    assert len(series) == sim.n_steps
    assert series["n_tracers"].iloc[-1] == len(sim.tracers)
    metadata = pq.read_schema(outdir / run.SERIES_FILENAME).metadata
    units = json.loads(metadata[b"units"])
    assert units["time"] == "s"
    assert units["injected_volume_total"] == "m^3"

    tracers = pd.read_parquet(outdir / run.TRACERS_FILENAME)
    assert len(tracers) == len(sim.tracers)

    summary = json.loads((outdir / run.SUMMARY_FILENAME).read_text())
    assert summary["n_dikes"] == len(sim.dikes)
    assert summary["seed"] == 7
    assert summary["injected_volume_m3"] == pytest.approx(sim.injected_volume)

    config_dump = json.loads((outdir / run.RUN_CONFIG_FILENAME).read_text())
    assert config_dump["domain"]["nx"] == 61

    snapshots = sorted((outdir / run.SNAPSHOT_DIRNAME).glob("snapshot_*.npz"))
    assert len(snapshots) == sim.n_steps // 3
    with np.load(snapshots[-1]) as data:
        assert data["T"].shape == (61, 61)


def test_run_simulation_renders_progress(make_config, capsys: pytest.CaptureFixture[str]) -> None:
    cfg = make_config("io.progress.enable=true", "io.write_outputs=false")
    sim = run.run_simulation(cfg)
    lines = capsys.readouterr().out.strip().splitlines()
    assert lines
    assert "100.0%" in lines[-1]
    assert f"step {sim.n_steps}/{sim.n_steps}" in lines[-1]
    assert "kyr" in lines[-1]


def test_cli_main(tmp_path: Path) -> None:
    config_path = tmp_path / "cli.yml"
    config_path.write_text(
        "domain:\n  nx: 31\n  nz: 31\nnumerics:\n  t_end_kyr: 15.0\nintrusion:\n  thickness_m: 2000.0\n",
        encoding="utf-8",
    )
    overrides_path = tmp_path / "overrides.txt"
    overrides_path.write_text("tracers.per_dike=5\n", encoding="utf-8")
    outdir = tmp_path / "cli_out"
    run.main(
        [
            "--config",
            str(config_path),
            "--override",
            "intrusion.shape=SquareDike",
            "--overrides-file",
            str(overrides_path),
            "--seed",
            "4",
            "--outdir",
            str(outdir),
            "--quiet",
        ]
    )
    summary = json.loads((outdir / run.SUMMARY_FILENAME).read_text())
    assert summary["seed"] == 4
    assert summary["n_dikes"] >= 1
    assert summary["n_tracers"] == 5 * summary["n_dikes"]
    config_dump = json.loads((outdir / run.RUN_CONFIG_FILENAME).read_text())
    assert config_dump["intrusion"]["shape"] == "SquareDike"
