"""Runtime helpers used by the simulation driver."""

from .progress import ProgressReporter
from .history import StepHistory
from .numba_config import numba_disabled_env, numba_status, resolve_backend

__all__ = [
    "ProgressReporter",
    "StepHistory",
    "numba_disabled_env",
    "numba_status",
    "resolve_backend",
]
