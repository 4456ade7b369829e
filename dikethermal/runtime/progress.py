"""Lightweight terminal progress reporting."""

from __future__ import annotations

import math
import sys
import time

# Keep a local constant to avoid importing the package constants at startup.
SECONDS_PER_KYR = 1.0e3 * 365.25 * 24 * 3600.0
ETA_EWMA_ALPHA = 0.1
ETA_MIN_SAMPLES = 3


class ProgressReporter:
    """Terminal progress bar with ETA feedback, simulated time shown in kyr."""

    def __init__(
        self,
        total_steps: int,
        total_time_s: float,
        *,
        refresh_seconds: float = 1.0,
        enabled: bool = False,
    ) -> None:
        self.enabled = bool(enabled and total_steps > 0)
        self.total_steps = max(int(total_steps), 1)
        self.total_time_s = max(float(total_time_s), 0.0)
        self.refresh_seconds = max(float(refresh_seconds), 0.1)
        self.start = time.monotonic()
        self.last = self.start
        self._finished = False
        self._isatty = sys.stdout.isatty()
        self._last_percent_int: int = -1
        self._eta_ewma_s: float | None = None
        self._eta_samples: int = 0
        self._last_step_wall: float | None = None
        self._last_step_no: int | None = None

    def update(self, step_no: int, sim_time_s: float, *, n_dikes: int = 0, force: bool = False) -> None:
        """Render the bar when the percentage moves by 0.1% and the refresh interval elapsed."""

        if not self.enabled or self._finished:
            return
        now = time.monotonic()
        self._update_eta(step_no, now)
        is_last = (step_no + 1) >= self.total_steps
        frac = min(max((step_no + 1) / self.total_steps, 0.0), 1.0)
        percent_tenth = int(frac * 1000)
        if not force and not is_last:
            if percent_tenth == self._last_percent_int or (now - self.last) < self.refresh_seconds:
                return
        self._last_percent_int = percent_tenth
        self.last = now
        bar_width = 28
        filled = int(bar_width * frac)
        bar = "#" * filled + "-" * (bar_width - filled)
        sim_kyr = sim_time_s / SECONDS_PER_KYR if math.isfinite(sim_time_s) else float("nan")
        remaining_steps = max(self.total_steps - (step_no + 1), 0)
        eta_seconds = float("nan")
        if (
            self._eta_ewma_s is not None
            and math.isfinite(self._eta_ewma_s)
            and self._eta_samples >= ETA_MIN_SAMPLES
        ):
            eta_seconds = self._eta_ewma_s * remaining_steps

        line = (
            f"[{bar}] {frac * 100:5.1f}% step {step_no + 1}/{self.total_steps} "
            f"t={sim_kyr:.4g} kyr dikes={n_dikes} {_format_eta(eta_seconds)}"
        )
        if self._isatty:
            sys.stdout.write(f"\r\033[2K{line}")
            if is_last:
                sys.stdout.write("\n")
        else:
            sys.stdout.write(f"{line}\n")
        if is_last:
            self._finished = True
        sys.stdout.flush()

    def finish(self, step_no: int, sim_time_s: float, *, n_dikes: int = 0) -> None:
        """Force a final render to end the line cleanly."""

        if not self.enabled:
            return
        self.update(step_no, sim_time_s, n_dikes=n_dikes, force=True)

    def _update_eta(self, step_no: int, now: float) -> None:
        """Update the ETA EWMA using the latest step wall time."""

        if self._last_step_wall is not None and self._last_step_no is not None:
            step_delta = step_no - self._last_step_no
            if step_delta > 0:
                step_seconds = (now - self._last_step_wall) / step_delta
                if math.isfinite(step_seconds) and step_seconds > 0.0:
                    if self._eta_ewma_s is None:
                        self._eta_ewma_s = step_seconds
                    else:
                        self._eta_ewma_s = (
                            ETA_EWMA_ALPHA * step_seconds + (1.0 - ETA_EWMA_ALPHA) * self._eta_ewma_s
                        )
                    self._eta_samples += 1
        self._last_step_wall = now
        self._last_step_no = step_no


def _format_eta(seconds: float) -> str:
    if not math.isfinite(seconds) or seconds < 0.0:
        return "ETA ?"
    if seconds >= 3600.0:
        return f"ETA {seconds/3600.0:.1f}h"
    if seconds >= 60.0:
        return f"ETA {seconds/60.0:.1f}m"
    return f"ETA {seconds:.0f}s"
