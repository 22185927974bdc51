"""Readiness wait over the listener, client sockets and a wake-up channel."""

from __future__ import annotations

import logging
import selectors
import socket
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

_LISTENER = "listener"
_WAKEUP = "wakeup"


@dataclass(slots=True)
class ReadySet:
    """Handles reported readable by one wait cycle."""

    listener: bool = False
    clients: set[int] = field(default_factory=set)
    woken: bool = False

    def __contains__(self, sock: object) -> bool:
        if not isinstance(sock, socket.socket):
            return False
        try:
            return sock.fileno() in self.clients
        except OSError:
            return False

    def __bool__(self) -> bool:
        return self.listener or bool(self.clients) or self.woken


class ReadinessMultiplexer:
    """Thin wrapper around ``selectors.DefaultSelector``.

    Client sockets are registered while they own a slot and unregistered when
    the slot is released, so the selector always mirrors the occupied slots.
    A socket pair lets other threads interrupt a blocked wait.
    """

    def __init__(self) -> None:
        self._selector: selectors.BaseSelector | None = None
        self._wakeup_reader: socket.socket | None = None
        self._wakeup_writer: socket.socket | None = None

    @property
    def is_open(self) -> bool:
        return self._selector is not None

    def open(self, listener_socket: socket.socket) -> None:
        selector = selectors.DefaultSelector()
        try:
            reader, writer = socket.socketpair()
        except OSError:
            selector.close()
            raise
        try:
            reader.setblocking(False)
            writer.setblocking(False)
            selector.register(listener_socket, selectors.EVENT_READ, data=_LISTENER)
            selector.register(reader, selectors.EVENT_READ, data=_WAKEUP)
        except (OSError, ValueError):
            selector.close()
            reader.close()
            writer.close()
            raise
        self._selector = selector
        self._wakeup_reader = reader
        self._wakeup_writer = writer

    def watch(self, sock: socket.socket, slot: int) -> None:
        if self._selector is None:
            raise RuntimeError("multiplexer is not open")
        self._selector.register(sock, selectors.EVENT_READ, data=slot)

    def unwatch(self, sock: socket.socket) -> None:
        if self._selector is None:
            return
        try:
            self._selector.unregister(sock)
        except (KeyError, ValueError):
            pass

    def watched_count(self) -> int:
        if self._selector is None:
            return 0
        return sum(1 for key in self._selector.get_map().values() if isinstance(key.data, int))

    def wait_for_activity(self, timeout: float | None = None) -> ReadySet | None:
        """Block until something is readable.

        Returns None for an empty wake-up and for a failed wait; neither is
        fatal and the caller simply loops again.
        """
        if self._selector is None:
            raise RuntimeError("multiplexer is not open")
        try:
            events = self._selector.select(timeout=timeout)
        except OSError as exc:
            logger.warning("Error occurred in selecting server sockets: %s", exc)
            return None

        if not events:
            logger.debug("Readiness wait returned without events")
            return None

        ready = ReadySet()
        for key, mask in events:
            if not mask & selectors.EVENT_READ:
                continue
            if key.data == _LISTENER:
                ready.listener = True
            elif key.data == _WAKEUP:
                self._drain_wakeup()
                ready.woken = True
            else:
                ready.clients.add(key.fd)
        logger.debug("Message is available now: %s", ready)
        return ready

    def wakeup(self) -> None:
        writer = self._wakeup_writer
        if writer is None:
            return
        try:
            writer.send(b"\0")
        except OSError:
            pass

    def close(self) -> None:
        if self._selector is not None:
            self._selector.close()
            self._selector = None
        for sock in (self._wakeup_reader, self._wakeup_writer):
            if sock is not None:
                sock.close()
        self._wakeup_reader = None
        self._wakeup_writer = None

    def _drain_wakeup(self) -> None:
        reader = self._wakeup_reader
        if reader is None:
            return
        while True:
            try:
                if not reader.recv(4096):
                    return
            except BlockingIOError:
                return
