"""Append-only destination for generated source lines."""

from __future__ import annotations

from collections.abc import Iterable


class TextSink:
    """An ordered, append-only sequence of source lines.

    The writer only appends to the sink; the assembled text is read by the host once
    generation is complete.
    """

    def __init__(self):
        self._lines: list[str] = []

    def add(self, *parts: object) -> None:
        """Append one line made of the concatenated string forms of `parts`.

        Calling it without arguments appends an empty line.
        """
        self._lines.append("".join(str(part) for part in parts))

    def extend(self, lines: Iterable[str]) -> None:
        """Append a logical unit that spans several lines."""
        self._lines.extend(lines)

    @property
    def lines(self) -> list[str]:
        """A copy of all lines appended so far."""
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def dumps(self) -> str:
        return "\n".join(self._lines) + "\n" if self._lines else ""
