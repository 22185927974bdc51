"""Unit tests for server counters."""

from metrics import MetricsRegistry


def test_connection_counters_track_active_connections() -> None:
    metrics = MetricsRegistry()
    metrics.connection_opened()
    metrics.connection_opened()
    metrics.connection_closed()
    metrics.connection_rejected()

    snapshot = metrics.snapshot()

    assert snapshot["connections_accepted"] == 2
    assert snapshot["connections_closed"] == 1
    assert snapshot["connections_rejected"] == 1
    assert snapshot["active_connections"] == 1


def test_request_counters_split_by_origin_and_outcome() -> None:
    metrics = MetricsRegistry()
    metrics.record_request(outcome="ok", duration_ms=0.4, bytes_sent=10, local=False, command="query")
    metrics.record_request(outcome="parse_error", duration_ms=7.0, bytes_sent=0, local=True)
    metrics.record_request(outcome="ok", duration_ms=5000.0, bytes_sent=5, local=False, command="add")

    snapshot = metrics.snapshot()

    assert snapshot["total_requests"] == 3
    assert snapshot["local_requests"] == 1
    assert snapshot["remote_requests"] == 2
    assert snapshot["outcome_counts"] == {"ok": 2, "parse_error": 1}
    assert snapshot["command_counts"] == {"query": 1, "add": 1}
    assert snapshot["bytes_sent_total"] == 15
    assert snapshot["latency_buckets_ms"] == {"<= 1ms": 1, "<= 10ms": 1, "> 1000ms": 1}


def test_io_errors_are_counted_by_type() -> None:
    metrics = MetricsRegistry()
    metrics.record_read_error("ConnectionResetError")
    metrics.record_read_error("ConnectionResetError")
    metrics.record_write_error("BrokenPipeError")
    metrics.record_accept_error("OSError")

    snapshot = metrics.snapshot()

    assert snapshot["read_errors_by_type"] == {"ConnectionResetError": 2}
    assert snapshot["write_errors_by_type"] == {"BrokenPipeError": 1}
    assert snapshot["accept_errors_by_type"] == {"OSError": 1}
