from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Sequence, Tuple

from .sources import SourceEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DuplicateGroup:
    key: str
    entries: Tuple[SourceEntry, ...]  # traversal order

    @property
    def count(self) -> int:
        return len(self.entries)

    @property
    def actionable(self) -> bool:
        return self.count > 1

    @property
    def keep(self) -> SourceEntry:
        return self.entries[0]

    @property
    def to_comment(self) -> Tuple[SourceEntry, ...]:
        return self.entries[1:]

    def occurrences(self) -> Iterator[Tuple[int, SourceEntry]]:
        """(occurrence index, entry) pairs; index 1 is the kept copy."""
        return enumerate(self.entries, start=1)


def detect(entries: Sequence[SourceEntry]) -> List[DuplicateGroup]:
    """Group non-excluded entries by canonical form.

    Groups come back in order of their first member. Matching is literal:
    two unrelated repositories that render to the same text are treated
    as duplicates.
    """

    buckets: Dict[str, List[SourceEntry]] = {}
    for e in sorted(entries, key=lambda x: x.ordinal):
        if e.excluded:
            continue
        buckets.setdefault(e.canonical, []).append(e)

    groups = [DuplicateGroup(key=k, entries=tuple(v)) for k, v in buckets.items()]
    dupes = sum(1 for g in groups if g.actionable)
    logger.info("Detected %d duplicate group(s) across %d distinct line(s)", dupes, len(groups))
    return groups


def actionable(groups: Sequence[DuplicateGroup]) -> List[DuplicateGroup]:
    return [g for g in groups if g.actionable]


def marks_by_file(groups: Sequence[DuplicateGroup]) -> Dict[str, Dict[int, SourceEntry]]:
    """path -> {line_no: entry} for every entry that must be commented."""

    out: Dict[str, Dict[int, SourceEntry]] = {}
    for g in groups:
        for idx, e in g.occurrences():
            if idx > 1:
                out.setdefault(e.path, {})[e.line_no] = e
    return out


def format_report(groups: Sequence[DuplicateGroup]) -> str:
    """One line per duplicate group, most repeated first.

    Example:
      3x: deb http://example.org/kali kali-rolling main -> sources.list:5 a.list:2 b.list:1
    """

    dupes = sorted(actionable(groups), key=lambda g: (-g.count, g.keep.ordinal))
    lines = [f"{g.count}x: {g.key} -> {' '.join(e.location for e in g.entries)}" for g in dupes]
    return "\n".join(lines) + ("\n" if lines else "")
