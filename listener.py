"""Listening TCP endpoint for the record server."""

from __future__ import annotations

import logging
import socket

from config import BACKLOG, HOST, PORT

logger = logging.getLogger(__name__)


class ListenerSetupError(OSError):
    """Raised when the listening socket cannot be created, bound or put in listen mode."""

    def __init__(self, step: str, cause: OSError) -> None:
        super().__init__(f"listener {step} failed: {cause}")
        self.step = step
        self.cause = cause


class Listener:
    def __init__(self, host: str = HOST, port: int = PORT, backlog: int = BACKLOG) -> None:
        self.host = host
        self.port = port
        self.backlog = backlog
        self._sock: socket.socket | None = None

    @property
    def sock(self) -> socket.socket | None:
        return self._sock

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    def open(self) -> None:
        """Create, bind and listen. On any failure nothing stays open."""
        if self._sock is not None:
            return

        step = "create"
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as exc:
            logger.error("Error occurred in creating server socket: %s", exc)
            raise ListenerSetupError(step, exc) from exc

        try:
            step = "setsockopt"
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            step = "bind"
            sock.bind((self.host, self.port))
            step = "listen"
            sock.listen(self.backlog)
            sock.setblocking(False)
        except OSError as exc:
            logger.error("Error occurred in %s of server socket: %s", step, exc)
            sock.close()
            raise ListenerSetupError(step, exc) from exc

        self._sock = sock
        self.port = sock.getsockname()[1]
        logger.debug("Listening on %s:%s backlog=%s", self.host, self.port, self.backlog)

    def accept_one(self) -> tuple[socket.socket, tuple[str, int]] | None:
        """Accept one pending connection, or return None when none is queued."""
        if self._sock is None:
            raise OSError("listener is not open")
        try:
            client_socket, address = self._sock.accept()
        except BlockingIOError:
            return None
        return client_socket, address

    def close(self) -> None:
        if self._sock is None:
            return
        try:
            self._sock.close()
        except OSError:
            pass
        self._sock = None
