"""Tests for request dispatch and response routing without a running loop."""

from __future__ import annotations

import io
import json
import logging
import socket
import time

import pytest

from client_slots import ClientConnection
from commands import CommandTable
from config import EXECUTION_FAILURE_MESSAGE, PARSE_FAILURE_MESSAGE
from multiplexer import ReadySet
from query import Query
from record_store import RecordStore
from result import QueryResult
from server import LOCAL_TERMINAL, RecordServer


class SpyHandler:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.queries: list[Query] = []
        self.seen_fields: list[dict[str, int | str]] = []

    def __call__(self, query: Query, _store: RecordStore) -> QueryResult:
        self.queries.append(query)
        self.seen_fields.append(query.info.assigned())
        if self.fail:
            raise RuntimeError("boom")
        return QueryResult(text="spy-ok")


def _server_with(handler: SpyHandler, terminal: io.StringIO) -> RecordServer:
    commands = CommandTable()
    commands.add_command("query", handler)
    return RecordServer(host="127.0.0.1", port=0, commands=commands, terminal=terminal)


def test_local_dispatch_prints_result_to_terminal() -> None:
    terminal = io.StringIO()
    server = RecordServer(host="127.0.0.1", port=0, terminal=terminal)

    server.dispatch(b"add id=1 name=Ada\n", LOCAL_TERMINAL)

    assert terminal.getvalue() == "Added employee 1.\n"
    assert server.store.get(1).name == "Ada"


def test_parse_failure_never_reaches_the_executor() -> None:
    terminal = io.StringIO()
    handler = SpyHandler()
    server = _server_with(handler, terminal)

    server.dispatch(b"list\n", LOCAL_TERMINAL)

    assert terminal.getvalue() == PARSE_FAILURE_MESSAGE + "\n"
    assert handler.queries == []
    assert server.metrics.snapshot()["outcome_counts"] == {"parse_error": 1}


def test_parsed_fields_are_released_after_success() -> None:
    terminal = io.StringIO()
    handler = SpyHandler()
    server = _server_with(handler, terminal)

    server.dispatch(b"query department=rd\n", LOCAL_TERMINAL)

    assert terminal.getvalue() == "spy-ok\n"
    assert handler.seen_fields == [{"department": "rd"}]
    assert handler.queries[0].info.assigned() == {}


def test_parsed_fields_are_released_after_handler_failure(caplog: pytest.LogCaptureFixture) -> None:
    terminal = io.StringIO()
    handler = SpyHandler(fail=True)
    server = _server_with(handler, terminal)

    with caplog.at_level(logging.ERROR, logger="server"):
        server.dispatch(b"query id=5\n", LOCAL_TERMINAL)

    assert terminal.getvalue() == EXECUTION_FAILURE_MESSAGE + "\n"
    assert handler.queries[0].info.assigned() == {}
    assert "Unhandled error in command handler" in caplog.text


def test_known_command_without_handler_reports_unavailable() -> None:
    terminal = io.StringIO()
    server = _server_with(SpyHandler(), terminal)

    server.dispatch(b"add id=1 name=Ada\n", LOCAL_TERMINAL)

    assert terminal.getvalue() == "Command not available: add\n"


def test_stats_command_returns_json_snapshot() -> None:
    terminal = io.StringIO()
    server = RecordServer(host="127.0.0.1", port=0, max_clients=3, terminal=terminal)
    server.dispatch(b"add id=1 name=Ada\n", LOCAL_TERMINAL)

    server.dispatch(b"stats\n", LOCAL_TERMINAL)

    stats = json.loads(terminal.getvalue().splitlines()[-1])
    assert stats["max_clients"] == 3
    assert stats["occupied_slots"] == 0
    assert stats["records"] == 1
    assert stats["local_requests"] == 1
    assert stats["clients"] == []


def test_remote_origin_outside_ready_set_gets_no_write_and_no_print() -> None:
    terminal = io.StringIO()
    server = RecordServer(host="127.0.0.1", port=0, terminal=terminal)
    server_side, client_side = socket.socketpair()
    with server_side, client_side:
        origin = ClientConnection(sock=server_side, address=("127.0.0.1", 0), slot=0)

        server.dispatch(b"help\n", origin)

        client_side.setblocking(False)
        with pytest.raises(BlockingIOError):
            client_side.recv(1024)
    assert terminal.getvalue() == ""
    assert origin.requests_served == 0


def test_json_log_format_emits_one_event_per_request(caplog: pytest.LogCaptureFixture) -> None:
    server = RecordServer(host="127.0.0.1", port=0, terminal=io.StringIO(), log_format="json")

    with caplog.at_level(logging.INFO, logger="server"):
        server.dispatch(b"help\n", LOCAL_TERMINAL)

    events = [json.loads(record.getMessage()) for record in caplog.records]
    assert len(events) == 1
    assert events[0]["origin"] == "local"
    assert events[0]["command"] == "help"
    assert events[0]["outcome"] == "ok"


class ResettingSocket(socket.socket):
    def recv(self, *_args: object) -> bytes:
        raise ConnectionResetError("connection reset by peer")


class FailingListener:
    def accept_one(self) -> None:
        raise OSError("too many open files")


def test_read_error_keeps_slot_and_skips_dispatch() -> None:
    handler = SpyHandler()
    server = _server_with(handler, io.StringIO())
    with ResettingSocket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        connection = ClientConnection(sock=sock, address=("127.0.0.1", 4000))
        index = server.slots.acquire_slot(connection)
        server._ready = ReadySet(clients={sock.fileno()})

        server.handle_client_traffic()

        assert server.slots.get(index) is connection
    assert handler.queries == []
    snapshot = server.metrics.snapshot()
    assert snapshot["read_errors_by_type"] == {"ConnectionResetError": 1}
    assert snapshot["total_requests"] == 0
    assert snapshot["connections_closed"] == 0


def test_accept_error_is_counted_and_takes_no_slot() -> None:
    server = RecordServer(host="127.0.0.1", port=0, terminal=io.StringIO())
    server._listener = FailingListener()
    server._ready = ReadySet(listener=True)

    server.handle_new_connections()

    assert server.slots.occupied_count() == 0
    snapshot = server.metrics.snapshot()
    assert snapshot["accept_errors_by_type"] == {"OSError": 1}
    assert snapshot["connections_accepted"] == 0


def test_stats_lists_each_connected_client() -> None:
    terminal = io.StringIO()
    server = RecordServer(host="127.0.0.1", port=0, terminal=terminal)
    server_side, client_side = socket.socketpair()
    with server_side, client_side:
        connection = ClientConnection(
            sock=server_side,
            address=("10.0.0.7", 5123),
            requests_served=2,
            bytes_in=30,
            bytes_out=64,
            connected_at=time.monotonic() - 5,
        )
        server.slots.acquire_slot(connection)

        server.dispatch(b"stats\n", LOCAL_TERMINAL)

    stats = json.loads(terminal.getvalue())
    assert len(stats["clients"]) == 1
    client = stats["clients"][0]
    assert client["slot"] == 0
    assert client["address"] == "10.0.0.7:5123"
    assert client["requests_served"] == 2
    assert client["bytes_in"] == 30
    assert client["bytes_out"] == 64
    assert client["connected_secs"] >= 5
