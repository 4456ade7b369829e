"""Output helper utilities.

The routines in this module provide thin wrappers around :mod:`pandas` and
:mod:`pyarrow` to serialise simulation results.  Parquet is used for the
step series and tracer tables, JSON for run summaries and compressed
``.npz`` archives for field snapshots.  All functions create destination
directories when necessary.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import numpy as np
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

SERIES_UNITS: Dict[str, str] = {
    "step": "count",
    "time": "s",
    "time_kyr": "kyr",
    "dt": "s",
    "dike_index": "count",
    "dike_time_s": "s",
    "dike_x_m": "m",
    "dike_z_m": "m",
    "dike_angle_deg": "deg",
    "dike_width_m": "m",
    "dike_thickness_m": "m",
    "dike_temperature": "degC",
    "dike_shape": "category",
    "dike_cells": "count",
    "dike_volume_m3": "m^3",
    "injected_volume_total": "m^3",
    "n_tracers": "count",
    "T_max": "degC",
    "T_mean": "degC",
    "melt_fraction_mean": "dimensionless",
    "thermal_energy": "J m^-1",
}

SERIES_DEFINITIONS: Dict[str, str] = {
    "step": "Index of the completed step (0-based).",
    "time": "Simulated time at the end of the step [s].",
    "time_kyr": "Simulated time at the end of the step [kyr].",
    "dt": "Time step used for the step [s].",
    "dike_index": "1-based number of the dike emplaced during the step; null when none fired.",
    "dike_cells": "Grid points overwritten by the dike.",
    "dike_volume_m3": "Volume replaced by the dike, cells * dx * dz * depth [m^3].",
    "injected_volume_total": "Cumulative intruded volume since the start of the run [m^3].",
    "n_tracers": "Number of active tracers after the step.",
    "T_max": "Maximum temperature over the grid after the step.",
    "T_mean": "Mean temperature over the grid after the step.",
    "melt_fraction_mean": "Grid-averaged melt fraction 1 - phi after the step.",
    "thermal_energy": "Interior thermal energy sum(rho cp T) dx dz per metre out of plane [J m^-1].",
}

TRACER_UNITS: Dict[str, str] = {
    "slot": "count",
    "x": "m",
    "z": "m",
    "T": "degC",
    "phi": "dimensionless",
    "melt_fraction": "dimensionless",
    "T_max": "degC",
    "dike_index": "count",
    "time_emplaced": "s",
}


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _with_metadata(table: pa.Table, units: Mapping[str, str], definitions: Mapping[str, str]) -> pa.Table:
    metadata = dict(table.schema.metadata or {})
    metadata.update(
        {
            b"units": json.dumps(dict(units), sort_keys=True).encode("utf-8"),
            b"definitions": json.dumps(dict(definitions), sort_keys=True).encode("utf-8"),
        }
    )
    return table.replace_schema_metadata(metadata)


def write_parquet(df: pd.DataFrame | pa.Table, path: Path, *, compression: str = "snappy") -> None:
    """Write the step series to a Parquet file using ``pyarrow``.

    Parameters
    ----------
    df:
        Table to serialise, either a DataFrame or a ``pyarrow.Table``.
    path:
        Destination file path.
    compression:
        Parquet codec; ``"none"`` disables compression.
    """
    _ensure_parent(path)
    if isinstance(df, pa.Table):
        table = df
    else:
        table = pa.Table.from_pandas(df, preserve_index=False)
    units = {name: SERIES_UNITS[name] for name in table.column_names if name in SERIES_UNITS}
    definitions = {name: SERIES_DEFINITIONS[name] for name in table.column_names if name in SERIES_DEFINITIONS}
    table = _with_metadata(table, units, definitions)
    compression_arg = None if compression == "none" else compression
    pq.write_table(table, path, compression=compression_arg)


def write_tracers(df: pd.DataFrame, path: Path, *, compression: str = "snappy") -> None:
    """Write a tracer table (see :meth:`TracerSnapshot.to_frame`) to Parquet."""

    _ensure_parent(path)
    table = pa.Table.from_pandas(df, preserve_index=False)
    units = {name: TRACER_UNITS[name] for name in table.column_names if name in TRACER_UNITS}
    table = _with_metadata(table, units, {})
    compression_arg = None if compression == "none" else compression
    pq.write_table(table, path, compression=compression_arg)


def write_summary(summary: Mapping[str, Any], path: Path) -> None:
    """Write a summary dictionary to ``summary.json``.

    The JSON file is formatted with a small indentation for human
    readability.
    """
    _ensure_parent(path)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(summary, fh, indent=2, sort_keys=True, default=str)


def write_run_config(config: Mapping[str, Any], path: Path) -> None:
    """Persist the resolved run configuration."""

    _ensure_parent(path)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(config, fh, indent=2, sort_keys=True, default=str)


def write_snapshot(
    path: Path,
    *,
    x: np.ndarray,
    z: np.ndarray,
    T: np.ndarray,
    phi: np.ndarray,
    time: float,
    extra: Optional[Mapping[str, np.ndarray]] = None,
) -> None:
    """Store a field snapshot as a compressed ``.npz`` archive."""

    _ensure_parent(path)
    arrays = {
        "x": np.asarray(x),
        "z": np.asarray(z),
        "T": np.asarray(T),
        "phi": np.asarray(phi),
        "time": np.asarray(float(time)),
    }
    if extra:
        arrays.update({key: np.asarray(value) for key, value in extra.items()})
    np.savez_compressed(path, **arrays)


__all__ = [
    "SERIES_UNITS",
    "SERIES_DEFINITIONS",
    "TRACER_UNITS",
    "write_parquet",
    "write_tracers",
    "write_summary",
    "write_run_config",
    "write_snapshot",
]
