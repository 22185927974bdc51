"""Thread-safe in-memory metrics for the record server."""

from __future__ import annotations

import threading
from collections import Counter

LATENCY_BUCKETS_MS = (1, 5, 10, 25, 50, 100, 250, 500, 1000)


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._connections_accepted = 0
        self._connections_rejected = 0
        self._connections_closed = 0
        self._active_connections = 0
        self._total_requests = 0
        self._local_requests = 0
        self._remote_requests = 0
        self._outcome_counts: Counter[str] = Counter()
        self._command_counts: Counter[str] = Counter()
        self._latency_buckets: Counter[str] = Counter()
        self._bytes_sent_total = 0
        self._read_errors_by_type: Counter[str] = Counter()
        self._write_errors_by_type: Counter[str] = Counter()
        self._accept_errors_by_type: Counter[str] = Counter()

    def connection_opened(self) -> None:
        with self._lock:
            self._connections_accepted += 1
            self._active_connections += 1

    def connection_closed(self) -> None:
        with self._lock:
            self._connections_closed += 1
            self._active_connections = max(0, self._active_connections - 1)

    def connection_rejected(self) -> None:
        with self._lock:
            self._connections_rejected += 1

    def record_request(
        self,
        *,
        outcome: str,
        duration_ms: float,
        bytes_sent: int,
        local: bool,
        command: str | None = None,
    ) -> None:
        with self._lock:
            self._total_requests += 1
            if local:
                self._local_requests += 1
            else:
                self._remote_requests += 1
            self._outcome_counts[outcome] += 1
            if command is not None:
                self._command_counts[command] += 1
            self._bytes_sent_total += bytes_sent
            self._latency_buckets[self._bucket_label(duration_ms)] += 1

    def record_read_error(self, error_type: str) -> None:
        with self._lock:
            self._read_errors_by_type[error_type] += 1

    def record_write_error(self, error_type: str) -> None:
        with self._lock:
            self._write_errors_by_type[error_type] += 1

    def record_accept_error(self, error_type: str) -> None:
        with self._lock:
            self._accept_errors_by_type[error_type] += 1

    def snapshot(self) -> dict[str, object]:
        with self._lock:
            return {
                "connections_accepted": self._connections_accepted,
                "connections_rejected": self._connections_rejected,
                "connections_closed": self._connections_closed,
                "active_connections": self._active_connections,
                "total_requests": self._total_requests,
                "local_requests": self._local_requests,
                "remote_requests": self._remote_requests,
                "outcome_counts": dict(self._outcome_counts),
                "command_counts": dict(self._command_counts),
                "latency_buckets_ms": dict(self._latency_buckets),
                "bytes_sent_total": self._bytes_sent_total,
                "read_errors_by_type": dict(self._read_errors_by_type),
                "write_errors_by_type": dict(self._write_errors_by_type),
                "accept_errors_by_type": dict(self._accept_errors_by_type),
            }

    def _bucket_label(self, duration_ms: float) -> str:
        for limit in LATENCY_BUCKETS_MS:
            if duration_ms <= limit:
                return f"<= {limit}ms"
        return f"> {LATENCY_BUCKETS_MS[-1]}ms"
