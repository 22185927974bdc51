"""Unit tests for command name to handler resolution."""

from commands import CommandTable
from query import Query
from record_store import RecordStore
from result import QueryResult


def _handler_ok(_query: Query, _store: RecordStore) -> QueryResult:
    return QueryResult(text="ok")



def test_command_table_resolves_case_insensitively() -> None:
    commands = CommandTable()
    commands.add_command("Query", _handler_ok)

    resolved = commands.resolve("QUERY")

    assert resolved is _handler_ok



def test_command_table_returns_none_for_unknown_command() -> None:
    commands = CommandTable()
    commands.add_command("query", _handler_ok)

    assert commands.resolve("list") is None
    assert commands.names() == ["query"]



def test_command_table_rejects_invalid_names() -> None:
    commands = CommandTable()

    for bad_name in ("", "   ", "two words"):
        try:
            commands.add_command(bad_name, _handler_ok)
        except ValueError as exc:
            assert "command name cannot" in str(exc)
        else:
            raise AssertionError(f"Expected ValueError for {bad_name!r}")
