"""Command table mapping command names to record handlers."""

from collections.abc import Callable

from query import Query
from record_store import RecordStore
from result import QueryResult

Handler = Callable[[Query, RecordStore], QueryResult]


class CommandTable:
    def __init__(self) -> None:
        self._commands: dict[str, Handler] = {}

    def add_command(self, name: str, handler: Handler) -> None:
        normalized_name = name.lower().strip()
        if not normalized_name:
            raise ValueError("command name cannot be empty")
        if any(char.isspace() for char in normalized_name):
            raise ValueError("command name cannot contain whitespace")
        self._commands[normalized_name] = handler

    def resolve(self, name: str) -> Handler | None:
        return self._commands.get(name.lower().strip())

    def names(self) -> list[str]:
        return sorted(self._commands)
