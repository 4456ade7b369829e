from __future__ import annotations

from dikethermal.io.writer import SERIES_UNITS
from dikethermal.runtime.history import StepHistory


def test_dike_columns_are_backfilled_for_quiet_steps() -> None:
    history = StepHistory(["step"])
    history.append({"step": 0, "time": 0.0})
    history.append({"step": 1, "time": 1.0, "dike_index": 1})
    assert len(history) == 2
    assert history.names == ["step", "time", "dike_index"]
    assert history.to_records()[0]["dike_index"] is None
    assert history.column("dike_index") == [None, 1]
    assert history.column("T_max") == [None, None]


def test_table_keeps_series_layout_without_intrusions() -> None:
    history = StepHistory()
    history.append({"step": 0, "time": 10.0, "n_tracers": 0})
    history.append({"step": 1, "time": 20.0, "n_tracers": 0})
    table = history.to_table(SERIES_UNITS)
    assert table.column_names == list(SERIES_UNITS)
    assert table.column("dike_index").null_count == 2
    assert table.column("time").to_pylist() == [10.0, 20.0]
