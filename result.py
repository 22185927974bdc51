"""Query result model and serializer."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

OUTCOMES = {"ok", "parse_error", "error"}


@dataclass(slots=True)
class QueryResult:
    text: str
    outcome: str = "ok"

    def __post_init__(self) -> None:
        if self.outcome not in OUTCOMES:
            raise ValueError(f"Unknown outcome: {self.outcome}")

    @classmethod
    def failure(cls, text: str, *, outcome: str = "error") -> "QueryResult":
        return cls(text=text, outcome=outcome)

    @property
    def ok(self) -> bool:
        return self.outcome == "ok"

    def to_bytes(self) -> bytes:
        """Serialize the result as one newline-terminated UTF-8 payload."""
        text = self.text if self.text.endswith("\n") else self.text + "\n"
        return text.encode("utf-8")


def format_table(headers: Sequence[str], rows: Iterable[Sequence[object]]) -> str:
    """Render rows as a left-aligned fixed-width text table."""
    rendered_rows = [["" if cell is None else str(cell) for cell in row] for row in rows]
    widths = [len(header) for header in headers]
    for row in rendered_rows:
        for index, cell in enumerate(row):
            widths[index] = max(widths[index], len(cell))

    def render(cells: Sequence[str]) -> str:
        return "  ".join(cell.ljust(widths[index]) for index, cell in enumerate(cells)).rstrip()

    lines = [render(headers), render(["-" * width for width in widths])]
    lines.extend(render(row) for row in rendered_rows)
    return "\n".join(lines)
