from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Dict

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dikethermal import schema  # noqa: E402
from dikethermal.config_utils import apply_overrides_dict  # noqa: E402


def _small_payload(outdir: Path) -> Dict[str, Any]:
    return {
        "domain": {"width_m": 30.0e3, "height_m": 30.0e3, "nx": 61, "nz": 61},
        "intrusion": {"interval_kyr": 0.1, "width_m": 5.0e3, "thickness_m": 1.5e3},
        "tracers": {"per_dike": 20, "initial_capacity": 16},
        "numerics": {"t_end_kyr": 5.0, "seed": 7},
        "io": {"outdir": str(outdir), "quiet": True},
    }


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., schema.Config]:
    """Factory for a coarse, fast configuration; positional arguments are PATH=VALUE overrides."""

    def _factory(*overrides: str) -> schema.Config:
        payload = _small_payload(tmp_path / "out")
        payload = apply_overrides_dict(payload, list(overrides))
        return schema.Config(**payload)

    return _factory


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(20240611)


@pytest.fixture(autouse=True)
def _numba_env_clean(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep backend selection independent of the caller's environment."""

    monkeypatch.delenv("DIKETHERMAL_NUMBA_DISABLE", raising=False)
    monkeypatch.delenv("DIKETHERMAL_DISABLE_NUMBA", raising=False)
