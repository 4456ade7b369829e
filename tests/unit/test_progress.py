"""Tests for the terminal progress bar and its ETA smoothing."""

from __future__ import annotations

import math

from dikethermal.runtime import progress as progress_mod


def _fake_monotonic(times):
    iterator = iter(times)

    def _next():
        return next(iterator)

    return _next


def test_progress_eta_prefers_recent_steps(monkeypatch, capsys):
    times = [0.0, 1.0, 2.0, 3.0, 4.0]
    monkeypatch.setattr(progress_mod.time, "monotonic", _fake_monotonic(times))
    reporter = progress_mod.ProgressReporter(
        total_steps=6, total_time_s=6.0 * progress_mod.SECONDS_PER_KYR, enabled=True
    )

    for step_no in range(4):
        reporter.update(step_no, sim_time_s=step_no * progress_mod.SECONDS_PER_KYR, force=True)

    out = capsys.readouterr().out.strip().splitlines()
    assert out, "Expected progress output for ETA"
    assert "ETA 2s" in out[-1]
    assert "t=3 kyr" in out[-1]


def test_progress_completes_at_full_percentage(monkeypatch, capsys):
    monkeypatch.setattr(progress_mod.time, "monotonic", _fake_monotonic([float(t) for t in range(10)]))
    reporter = progress_mod.ProgressReporter(
        total_steps=4, total_time_s=4.0 * progress_mod.SECONDS_PER_KYR, enabled=True
    )

    for step_no in range(4):
        reporter.update(step_no, (step_no + 1) * progress_mod.SECONDS_PER_KYR, n_dikes=step_no + 1)
    reporter.finish(3, 4.0 * progress_mod.SECONDS_PER_KYR, n_dikes=4)

    out = capsys.readouterr().out.strip().splitlines()
    assert len(out) == 4
    last = out[-1]
    assert "100.0%" in last
    assert "step 4/4" in last
    assert "t=4 kyr" in last
    assert "dikes=4" in last


def test_disabled_progress_is_silent(capsys):
    reporter = progress_mod.ProgressReporter(total_steps=3, total_time_s=1.0, enabled=False)
    for step_no in range(3):
        reporter.update(step_no, 0.0, force=True)
    reporter.finish(2, 0.0)
    assert capsys.readouterr().out == ""


def test_format_eta_units():
    assert progress_mod._format_eta(30.0) == "ETA 30s"
    assert progress_mod._format_eta(90.0) == "ETA 1.5m"
    assert progress_mod._format_eta(7200.0) == "ETA 2.0h"
    assert progress_mod._format_eta(math.nan) == "ETA ?"
