"""Query model and parser for one line of user input."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, fields

KNOWN_COMMANDS = {
    "add",
    "delete",
    "update",
    "query",
    "help",
    "stats",
}
RECORD_FIELDS = ("id", "name", "age", "position", "department")
INTEGER_FIELDS = {"id", "age"}

_ALLOWED_FIELDS: dict[str, set[str]] = {
    "add": set(RECORD_FIELDS),
    "delete": {"id"},
    "update": set(RECORD_FIELDS),
    "query": set(RECORD_FIELDS),
    "help": set(),
    "stats": set(),
}
_REQUIRED_FIELDS: dict[str, set[str]] = {
    "add": {"id", "name"},
    "delete": {"id"},
    "update": {"id"},
}


class QueryParseError(ValueError):
    """Raised when a line is not a valid command."""


@dataclass(slots=True)
class EmployeeInfo:
    id: int | None = None
    name: str | None = None
    age: int | None = None
    position: str | None = None
    department: str | None = None

    def assigned(self) -> dict[str, int | str]:
        """Return only the fields the user supplied."""
        values: dict[str, int | str] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if value is not None:
                values[item.name] = value
        return values

    def clear(self) -> None:
        for item in fields(self):
            setattr(self, item.name, None)


@dataclass(slots=True)
class Query:
    command: str
    info: EmployeeInfo
    raw_text: str = ""

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Query":
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise QueryParseError("Input is not valid UTF-8") from exc
        return cls.from_text(text)

    @classmethod
    def from_text(cls, text: str) -> "Query":
        """Parse ``<command> [field=value ...]`` into a structured query."""
        line = text.replace("\0", "").strip()
        if not line:
            raise QueryParseError("Empty input")

        try:
            tokens = shlex.split(line)
        except ValueError as exc:
            raise QueryParseError(f"Malformed input: {exc}") from exc
        if not tokens:
            raise QueryParseError("Empty input")

        command = tokens[0].lower()
        if command not in KNOWN_COMMANDS:
            raise QueryParseError(f"Unknown command: {tokens[0]}")

        allowed = _ALLOWED_FIELDS[command]
        info = EmployeeInfo()
        seen: set[str] = set()
        for token in tokens[1:]:
            if "=" not in token:
                raise QueryParseError(f"Expected field=value, got {token!r}")
            name, value = token.split("=", 1)
            field_name = name.strip().lower()
            if field_name not in RECORD_FIELDS:
                raise QueryParseError(f"Unknown field: {name}")
            if field_name not in allowed:
                raise QueryParseError(f"Field {field_name} is not accepted by {command}")
            if field_name in seen:
                raise QueryParseError(f"Duplicate field: {field_name}")
            if not value:
                raise QueryParseError(f"Field {field_name} cannot be empty")
            seen.add(field_name)
            setattr(info, field_name, _convert(field_name, value))

        missing = _REQUIRED_FIELDS.get(command, set()) - seen
        if missing:
            raise QueryParseError(f"Missing required fields: {', '.join(sorted(missing))}")
        if command == "update" and len(seen) < 2:
            raise QueryParseError("update needs at least one field to change")

        return cls(command=command, info=info, raw_text=line)

    def release(self) -> None:
        self.info.clear()


def _convert(field_name: str, value: str) -> int | str:
    if field_name not in INTEGER_FIELDS:
        return value
    try:
        number = int(value)
    except ValueError as exc:
        raise QueryParseError(f"Field {field_name} must be an integer") from exc
    if field_name == "id" and number <= 0:
        raise QueryParseError("Field id must be positive")
    if number < 0:
        raise QueryParseError(f"Field {field_name} cannot be negative")
    return number
