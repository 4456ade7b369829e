"""Shared configuration helpers for Numba enable/disable switches."""
from __future__ import annotations

import logging
import os
import warnings
from typing import Mapping, Optional

from ..warnings import NumericalWarning

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on", "enable", "enabled"}
_FALSY = {"0", "false", "no", "off", "disable", "disabled"}

_DISABLE_ENV_VARS = (
    "DIKETHERMAL_NUMBA_DISABLE",
    "DIKETHERMAL_DISABLE_NUMBA",
)


def _env_flag(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    text = value.strip().lower()
    if text in _TRUTHY:
        return True
    if text in _FALSY:
        return False
    return None


def numba_disabled_env(env: Optional[Mapping[str, str]] = None) -> bool:
    """Return True when Numba is explicitly disabled via environment variables."""

    env_map = os.environ if env is None else env
    for key in _DISABLE_ENV_VARS:
        flag = _env_flag(env_map.get(key))
        if flag is not None:
            return flag
    return False


def resolve_backend(requested: str, env: Optional[Mapping[str, str]] = None) -> str:
    """Return the stencil backend actually used for ``requested``.

    A request for ``"numba"`` degrades to ``"numpy"`` when the environment
    disables JIT compilation.
    """

    backend = str(requested).strip().lower()
    if backend not in {"numpy", "numba"}:
        raise ValueError(f"Unknown stencil backend {requested!r}; expected 'numpy' or 'numba'")
    if backend == "numba" and numba_disabled_env(env):
        message = "numba backend disabled via environment; using numpy stencil"
        logger.warning(message)
        warnings.warn(message, NumericalWarning, stacklevel=2)
        return "numpy"
    return backend


def numba_status(requested: str, resolved: str, disabled_env: bool) -> dict[str, object]:
    """Standardise the backend status payload stored in run summaries."""

    return {
        "requested": str(requested),
        "resolved": str(resolved),
        "disabled_env": bool(disabled_env),
    }


__all__ = [
    "numba_disabled_env",
    "resolve_backend",
    "numba_status",
]
