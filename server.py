"""Record query server: readiness loop, client slots and request routing."""

from __future__ import annotations

import argparse
import enum
import json
import logging
import queue
import sys
import time
from collections.abc import Callable
from typing import TextIO

from client_slots import ClientConnection, ClientSlotTable
from commands import CommandTable
from config import (
    BACKLOG,
    BUFFER_SIZE,
    EXECUTION_FAILURE_MESSAGE,
    HISTORY_SIZE,
    HOST,
    LOG_FORMAT,
    LOG_LEVEL,
    MAX_CLIENTS,
    PARSE_FAILURE_MESSAGE,
    PORT,
    SOCKET_TIMEOUT_SECS,
)
from handlers.record_handlers import (
    add_employee,
    delete_employee,
    query_employees,
    show_help,
    update_employee,
)
from history import CommandHistory
from listener import Listener
from local_input import LocalInputFeeder
from metrics import MetricsRegistry
from multiplexer import ReadinessMultiplexer, ReadySet
from query import Query, QueryParseError
from record_store import RecordStore
from result import QueryResult

logger = logging.getLogger(__name__)

LOG_LEVELS: dict[str, int] = {
    "off": logging.CRITICAL + 10,
    "fault": logging.CRITICAL,
    "error": logging.ERROR,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}
LOG_LINE_FORMAT = "%(levelname)s %(funcName)s:%(lineno)d [-] %(message)s"


class LocalTerminal(enum.Enum):
    TERMINAL = "terminal"


LOCAL_TERMINAL = LocalTerminal.TERMINAL
Origin = ClientConnection | LocalTerminal


class ServiceInitError(RuntimeError):
    """Raised when the server cannot be brought up."""


class RecordServer:
    def __init__(
        self,
        host: str = HOST,
        port: int = PORT,
        commands: CommandTable | None = None,
        store: RecordStore | None = None,
        *,
        max_clients: int = MAX_CLIENTS,
        backlog: int = BACKLOG,
        buffer_size: int = BUFFER_SIZE,
        local_input: bool = False,
        input_func: Callable[[str], str] = input,
        terminal: TextIO | None = None,
        log_format: str = LOG_FORMAT,
    ) -> None:
        self.host = host
        self.port = port
        self.commands = commands if commands is not None else self._build_default_commands()
        self.store = store if store is not None else RecordStore()
        self.backlog = backlog
        self.buffer_size = buffer_size
        self.local_input = local_input
        self.log_format = log_format

        self.slots = ClientSlotTable(max_clients)
        self.history = CommandHistory(size=HISTORY_SIZE)
        self.metrics = MetricsRegistry()

        self._input_func = input_func
        self._terminal = terminal
        self._listener: Listener | None = None
        self._multiplexer = ReadinessMultiplexer()
        self._feeder: LocalInputFeeder | None = None
        self._local_requests: queue.SimpleQueue[str] = queue.SimpleQueue()
        self._ready = ReadySet()
        self._running = False

    def _build_default_commands(self) -> CommandTable:
        commands = CommandTable()
        commands.add_command("add", add_employee)
        commands.add_command("delete", delete_employee)
        commands.add_command("update", update_employee)
        commands.add_command("query", query_employees)
        commands.add_command("help", show_help)
        return commands

    @property
    def is_running(self) -> bool:
        return self._running

    def init(self) -> None:
        """Open the listener, the readiness wait and the terminal reader."""
        if self._listener is not None:
            return

        listener = Listener(self.host, self.port, self.backlog)
        try:
            listener.open()
            self._multiplexer.open(listener.sock)
            if self.local_input:
                self._feeder = LocalInputFeeder(
                    self.submit_local,
                    history=self.history,
                    input_func=self._input_func,
                )
                self._feeder.start()
        except (OSError, RuntimeError) as exc:
            self._feeder = None
            self._multiplexer.close()
            listener.close()
            raise ServiceInitError(f"Failed to start record server: {exc}") from exc

        self._listener = listener
        self.port = listener.port
        self._running = True
        logger.info("Init socket successfully, ready for connecting on %s:%s", self.host, self.port)

    def start(self) -> None:
        self.init()
        self.serve_forever()

    def serve_forever(self) -> None:
        if self._listener is None:
            raise RuntimeError("server is not initialized")
        try:
            while self._running:
                self.run_once()
        finally:
            self.shutdown()

    def run_once(self, timeout: float | None = None) -> None:
        ready = self._multiplexer.wait_for_activity(timeout)
        if ready is None:
            return

        self._ready = ready
        try:
            self.handle_new_connections()
            self.handle_client_traffic()
            self._drain_local_requests()
        finally:
            self._ready = ReadySet()

    def stop(self) -> None:
        """Ask the loop to exit. Safe to call from any thread."""
        self._running = False
        self._multiplexer.wakeup()

    def shutdown(self) -> None:
        self._running = False
        if self._feeder is not None:
            self._feeder.stop()
            self._feeder = None

        for connection in self.slots.clear():
            self._multiplexer.unwatch(connection.sock)
            connection.close()
            self.metrics.connection_closed()

        self._multiplexer.close()
        if self._listener is not None:
            self._listener.close()
            self._listener = None
            logger.info("Record server on port %s stopped", self.port)

    def submit_local(self, line: str) -> None:
        """Queue a terminal line for the loop thread. Safe to call from any thread."""
        self._local_requests.put(line)
        self._multiplexer.wakeup()

    def handle_new_connections(self) -> None:
        if not self._ready.listener or self._listener is None:
            return

        try:
            accepted = self._listener.accept_one()
        except OSError as exc:
            self.metrics.record_accept_error(exc.__class__.__name__)
            logger.debug("Error occurred in accept connection: %s", exc)
            return
        if accepted is None:
            return

        client_socket, address = accepted
        connection = ClientConnection(
            sock=client_socket,
            address=address,
            connected_at=time.monotonic(),
        )
        index = self.slots.acquire_slot(connection)
        if index is None:
            self.metrics.connection_rejected()
            logger.info(
                "Error occurred in accepting new client[%s:%s] for no more space",
                address[0],
                address[1],
            )
            connection.close()
            return

        try:
            client_socket.settimeout(SOCKET_TIMEOUT_SECS)
            self._multiplexer.watch(client_socket, index)
        except (OSError, ValueError, KeyError) as exc:
            logger.warning("Error occurred in registering client[%s:%s]: %s", address[0], address[1], exc)
            self.slots.release_slot(index)
            connection.close()
            return

        self.metrics.connection_opened()
        logger.info("NO[%d] client[%s:%s] connect successfully", index, address[0], address[1])

    def handle_client_traffic(self) -> None:
        for index, connection in self.slots.iterate_occupied():
            if connection.sock not in self._ready:
                continue

            try:
                payload = connection.sock.recv(self.buffer_size)
            except OSError as exc:
                self.metrics.record_read_error(exc.__class__.__name__)
                logger.debug("Error occurred in receiving message from NO[%d] client: %s", index, exc)
                continue

            if not payload:
                logger.info("NO[%d] client is exited", index)
                self._release_client(index)
                continue

            connection.bytes_in += len(payload)
            if not payload.strip():
                continue
            self.dispatch(payload, connection)

    def dispatch(self, raw_bytes: bytes, origin: Origin) -> None:
        """Parse, execute and answer one request on the channel it came from."""
        started_at = time.perf_counter()
        query: Query | None = None
        try:
            try:
                query = Query.from_bytes(raw_bytes)
            except QueryParseError as exc:
                logger.debug("Rejected input from %s: %s", self._describe(origin), exc)
                result = QueryResult.failure(PARSE_FAILURE_MESSAGE, outcome="parse_error")
            else:
                result = self._execute(query)

            bytes_sent = self._send_result(result, origin)
            self._record_and_log(
                origin=origin,
                command=query.command if query is not None else "-",
                result=result,
                bytes_in=len(raw_bytes),
                bytes_out=bytes_sent,
                started_at=started_at,
            )
        finally:
            if query is not None:
                query.release()

    def _execute(self, query: Query) -> QueryResult:
        if query.command == "stats":
            snapshot = self.metrics.snapshot()
            snapshot["occupied_slots"] = self.slots.occupied_count()
            snapshot["max_clients"] = self.slots.capacity
            snapshot["records"] = len(self.store)
            snapshot["clients"] = self._describe_clients()
            return QueryResult(text=json.dumps(snapshot, sort_keys=True))

        handler = self.commands.resolve(query.command)
        if handler is None:
            return QueryResult.failure(f"Command not available: {query.command}")

        try:
            return handler(query, self.store)
        except Exception:
            logger.exception("Unhandled error in command handler")
            return QueryResult.failure(EXECUTION_FAILURE_MESSAGE)

    def _send_result(self, result: QueryResult, origin: Origin) -> int:
        if origin is LOCAL_TERMINAL:
            terminal = self._terminal if self._terminal is not None else sys.stdout
            print(result.text, file=terminal, flush=True)
            return 0

        # The handle may have been released earlier in this cycle.
        if origin.sock not in self._ready:
            logger.debug("Dropped result for NO[%d] client, handle is not ready", origin.slot)
            return 0

        payload = result.to_bytes()
        try:
            origin.sock.sendall(payload)
        except OSError as exc:
            self.metrics.record_write_error(exc.__class__.__name__)
            logger.info("Error occurred in sending result to NO[%d] client: %s", origin.slot, exc)
            if self.slots.get(origin.slot) is origin:
                self._release_client(origin.slot)
            return 0

        origin.requests_served += 1
        origin.bytes_out += len(payload)
        return len(payload)

    def _drain_local_requests(self) -> None:
        while True:
            try:
                line = self._local_requests.get_nowait()
            except queue.Empty:
                return
            self.dispatch(line.encode("utf-8"), LOCAL_TERMINAL)

    def _release_client(self, index: int) -> None:
        connection = self.slots.release_slot(index)
        if connection is None:
            return
        self._multiplexer.unwatch(connection.sock)
        connection.close()
        self.metrics.connection_closed()

    def _describe_clients(self) -> list[dict[str, object]]:
        now = time.monotonic()
        return [
            {
                "slot": index,
                "address": f"{connection.address[0]}:{connection.address[1]}",
                "requests_served": connection.requests_served,
                "bytes_in": connection.bytes_in,
                "bytes_out": connection.bytes_out,
                "connected_secs": round(now - connection.connected_at, 3),
            }
            for index, connection in self.slots.iterate_occupied()
        ]

    def _describe(self, origin: Origin) -> str:
        if origin is LOCAL_TERMINAL:
            return "local"
        return f"client[{origin.slot}]@{origin.address[0]}:{origin.address[1]}"

    def _record_and_log(
        self,
        *,
        origin: Origin,
        command: str,
        result: QueryResult,
        bytes_in: int,
        bytes_out: int,
        started_at: float,
    ) -> None:
        duration_ms = (time.perf_counter() - started_at) * 1000
        self.metrics.record_request(
            outcome=result.outcome,
            duration_ms=duration_ms,
            bytes_sent=bytes_out,
            local=origin is LOCAL_TERMINAL,
            command=None if command == "-" else command,
        )
        event = {
            "origin": self._describe(origin),
            "command": command,
            "outcome": result.outcome,
            "bytes_in": bytes_in,
            "bytes_out": bytes_out,
            "latency_ms": round(duration_ms, 3),
        }
        if self.log_format == "json":
            logger.info(json.dumps(event, sort_keys=True))
            return

        logger.info(
            "origin=%s command=%s outcome=%s bytes_in=%s bytes_out=%s duration_ms=%.2f",
            event["origin"],
            event["command"],
            event["outcome"],
            event["bytes_in"],
            event["bytes_out"],
            duration_ms,
        )


def configure_logging(level_name: str = LOG_LEVEL) -> None:
    if level_name == "off":
        logging.disable(logging.CRITICAL)
        return
    logging.basicConfig(level=LOG_LEVELS[level_name], format=LOG_LINE_FORMAT)


def _enable_line_editing() -> None:
    try:
        import readline  # noqa: F401
    except ImportError:
        logger.debug("readline is unavailable, terminal history recall disabled")


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the employee record query server")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=PORT)
    parser.add_argument("--max-clients", type=_positive_int, default=MAX_CLIENTS)
    parser.add_argument("--backlog", type=_positive_int, default=BACKLOG)
    parser.add_argument("--buffer-size", type=_positive_int, default=BUFFER_SIZE)
    parser.add_argument("--log-format", choices=["plain", "json"], default=LOG_FORMAT)
    parser.add_argument("--log-level", choices=list(LOG_LEVELS), default=LOG_LEVEL)
    parser.add_argument(
        "--no-local-input",
        action="store_true",
        help="do not read commands from the terminal",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(args.log_level)
    local_input = not args.no_local_input
    if local_input:
        _enable_line_editing()

    server = RecordServer(
        host=args.host,
        port=args.port,
        max_clients=args.max_clients,
        backlog=args.backlog,
        buffer_size=args.buffer_size,
        local_input=local_input,
        log_format=args.log_format,
    )
    try:
        server.init()
    except ServiceInitError as exc:
        logger.error("%s", exc)
        return 1

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        server.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
