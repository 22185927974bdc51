"""Fixed-capacity table of connected client sockets."""

from __future__ import annotations

import socket
import threading
from dataclasses import dataclass


@dataclass(slots=True, eq=False)
class ClientConnection:
    sock: socket.socket
    address: tuple[str, int]
    slot: int = -1
    requests_served: int = 0
    bytes_in: int = 0
    bytes_out: int = 0
    connected_at: float = 0.0

    def close(self) -> None:
        try:
            self.sock.close()
        except OSError:
            pass


class ClientSlotTable:
    """Slots are handed out first-fit, lowest index first.

    A slot holds either a live connection or ``None`` (free). The table never
    grows: once every slot is occupied, ``acquire_slot`` returns ``None`` and
    the caller owns closing the rejected socket.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._lock = threading.Lock()
        self._slots: list[ClientConnection | None] = [None] * capacity

    @property
    def capacity(self) -> int:
        return len(self._slots)

    def acquire_slot(self, connection: ClientConnection) -> int | None:
        with self._lock:
            for index, current in enumerate(self._slots):
                if current is None:
                    self._slots[index] = connection
                    connection.slot = index
                    return index
        return None

    def release_slot(self, index: int) -> ClientConnection | None:
        with self._lock:
            connection = self._slots[index]
            self._slots[index] = None
            return connection

    def get(self, index: int) -> ClientConnection | None:
        with self._lock:
            return self._slots[index]

    def iterate_occupied(self) -> list[tuple[int, ClientConnection]]:
        with self._lock:
            return [
                (index, connection)
                for index, connection in enumerate(self._slots)
                if connection is not None
            ]

    def occupied_count(self) -> int:
        with self._lock:
            return sum(1 for connection in self._slots if connection is not None)

    def clear(self) -> list[ClientConnection]:
        """Free every slot and return the connections that were held."""
        with self._lock:
            released = [connection for connection in self._slots if connection is not None]
            self._slots = [None] * len(self._slots)
            return released
