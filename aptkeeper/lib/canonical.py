from __future__ import annotations

import re
from dataclasses import dataclass

from ..config import DEFAULT_MARKER

_WS_RUN = re.compile(r"\s+")


@dataclass(frozen=True)
class Canonicalizer:
    """Normalizes source lines for equality comparison only.

    Whitespace runs collapse to a single space and trailing whitespace is
    dropped. Blank lines and lines carrying the marker prefix are excluded
    from grouping and come back unchanged, which is what makes a second
    deduplication pass a no-op.
    """

    marker: str = DEFAULT_MARKER

    @property
    def prefix(self) -> str:
        return f"{self.marker}: "

    def is_marked(self, line: str) -> bool:
        return line.startswith(self.prefix)

    def is_excluded(self, line: str) -> bool:
        return self.is_marked(line) or not line.strip()

    def canonicalize(self, line: str) -> str:
        if self.is_marked(line):
            return line
        return _WS_RUN.sub(" ", line).rstrip()

    def mark(self, line: str) -> str:
        return self.prefix + line

    def unmark(self, line: str) -> str:
        if self.is_marked(line):
            return line[len(self.prefix):]
        return line


def canonicalize(line: str, marker: str = DEFAULT_MARKER) -> str:
    return Canonicalizer(marker).canonicalize(line)
