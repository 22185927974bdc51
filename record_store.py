"""In-memory employee record table."""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, replace
from typing import Any


class RecordStoreError(ValueError):
    """Raised when a store mutation conflicts with existing records."""


@dataclass(slots=True, frozen=True)
class EmployeeRecord:
    id: int
    name: str
    age: int | None = None
    position: str | None = None
    department: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class RecordStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[int, EmployeeRecord] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def get(self, record_id: int) -> EmployeeRecord | None:
        with self._lock:
            return self._records.get(record_id)

    def insert(self, record: EmployeeRecord) -> EmployeeRecord:
        with self._lock:
            if record.id in self._records:
                raise RecordStoreError("record_id_exists")
            self._records[record.id] = record
            return record

    def update(self, record_id: int, changes: dict[str, Any]) -> EmployeeRecord | None:
        changes = {key: value for key, value in changes.items() if key != "id"}
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                return None
            updated = replace(current, **changes)
            self._records[record_id] = updated
            return updated

    def delete(self, record_id: int) -> bool:
        with self._lock:
            return self._records.pop(record_id, None) is not None

    def find(self, filters: dict[str, Any] | None = None) -> list[EmployeeRecord]:
        """Return records matching every filter, ordered by id.

        String filters compare case-insensitively.
        """
        with self._lock:
            records = sorted(self._records.values(), key=lambda record: record.id)
        if not filters:
            return records
        return [record for record in records if _matches(record, filters)]


def _matches(record: EmployeeRecord, filters: dict[str, Any]) -> bool:
    for key, expected in filters.items():
        actual = getattr(record, key)
        if isinstance(expected, str) and isinstance(actual, str):
            if actual.casefold() != expected.casefold():
                return False
        elif actual != expected:
            return False
    return True
