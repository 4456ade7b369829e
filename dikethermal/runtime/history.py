"""Per-step history kept by the simulation driver."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping

import pyarrow as pa


class StepHistory:
    """Column-oriented store of step records.

    Only steps with an intrusion carry the ``dike_*`` fields.  A column first
    seen on a later row is back-filled with ``None`` so every column holds
    one entry per kept step.
    """

    def __init__(self, columns: Iterable[str] = ()) -> None:
        self._data: Dict[str, List[Any]] = {name: [] for name in columns}
        self._n_rows = 0

    def __len__(self) -> int:
        return self._n_rows

    @property
    def names(self) -> List[str]:
        return list(self._data)

    def append(self, record: Mapping[str, Any]) -> None:
        for key in record:
            if key not in self._data:
                self._data[key] = [None] * self._n_rows
        for name, values in self._data.items():
            values.append(record.get(name))
        self._n_rows += 1

    def column(self, name: str) -> List[Any]:
        return list(self._data.get(name, [None] * self._n_rows))

    def to_records(self) -> List[Dict[str, Any]]:
        return [{name: values[i] for name, values in self._data.items()} for i in range(self._n_rows)]

    def to_table(self, leading: Iterable[str] = ()) -> pa.Table:
        """Return an Arrow table whose first columns follow ``leading``.

        Names in ``leading`` that were never recorded (``dike_*`` in a run
        without intrusions) become all-null columns.
        """

        order = list(dict.fromkeys(leading))
        order += [name for name in self._data if name not in order]
        return pa.Table.from_pydict({name: self.column(name) for name in order})
