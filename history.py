"""Bounded, timestamped history of terminal commands."""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any


class CommandHistory:
    def __init__(self, *, size: int) -> None:
        self._size = max(1, size)
        self._lock = threading.Lock()
        self._entries: deque[dict[str, Any]] = deque(maxlen=self._size)
        self._next_id = 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def record(self, line: str) -> dict[str, Any]:
        with self._lock:
            entry = {
                "id": self._next_id,
                "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
                "line": line,
            }
            self._next_id += 1
            self._entries.append(entry)
            return dict(entry)

    def snapshot(self, *, limit: int = 0) -> list[dict[str, Any]]:
        with self._lock:
            entries = [dict(entry) for entry in self._entries]
        if limit > 0 and len(entries) > limit:
            entries = entries[-limit:]
        return entries

    def lines(self) -> list[str]:
        with self._lock:
            return [entry["line"] for entry in self._entries]
