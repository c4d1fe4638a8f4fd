from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..errors import BackupError, ScanError, WriteError
from ..events import EventSink, emit
from .atomic import atomic_write_bytes
from .backup import Backup, BackupManager
from .canonical import Canonicalizer
from .duplicates import DuplicateGroup, marks_by_file
from .sources import SourceEntry, encode_text, read_text, split_eol, split_lines, unique_paths

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    backup: Optional[Backup]
    rewritten: List[str] = field(default_factory=list)
    marked_lines: int = 0


class StaleSourceError(ValueError):
    """A file no longer matches what the scan saw."""


class Deduplicator:
    """Comments out every duplicate after the first, one atomic rewrite per file."""

    def __init__(self, backups: BackupManager, *, canonicalizer: Optional[Canonicalizer] = None, sink: Optional[EventSink] = None):
        self.backups = backups
        self.canon = canonicalizer or Canonicalizer()
        self.sink = sink

    def plan(self, groups: Sequence[DuplicateGroup], files: Sequence[str]) -> Dict[str, Dict[int, SourceEntry]]:
        """Files that need a rewrite, in processing order, with the lines to mark."""

        marks = marks_by_file(groups)
        return {p: marks[p] for p in unique_paths(files) if p in marks}

    def render(self, path: str, marks: Dict[int, SourceEntry]) -> bytes:
        try:
            text = read_text(path)
        except OSError as e:
            raise ScanError(path, e.strerror or str(e)) from e

        out: List[str] = []
        for idx, line in enumerate(split_lines(text), start=1):
            entry = marks.get(idx)
            if entry is None:
                out.append(line)
                continue
            body, eol = split_eol(line)
            if body != entry.raw:
                raise StaleSourceError(f"line {idx} changed since the scan")
            out.append(self.canon.mark(body) + eol)
        if len(out) < max(marks):
            raise StaleSourceError("file shrank since the scan")
        return encode_text("".join(out))

    def apply(self, groups: Sequence[DuplicateGroup], files: Sequence[str], *, backup: Optional[Backup]) -> ApplyResult:
        """Mark every occurrence after the first of each group.

        backup must cover each file to be rewritten and still match it byte
        for byte. Files are handled in the given order; a failed write stops
        the batch and leaves earlier files in their new state.
        """

        backup = require_backup(backup)
        plan = self.plan(groups, files)
        if not plan:
            logger.info("No duplicate entries to comment out")
            return ApplyResult(backup=backup)

        self.backups.verify_unchanged(backup, list(plan))

        result = ApplyResult(backup=backup)
        order = list(plan)
        for n, path in enumerate(order):
            marks = plan[path]
            try:
                data = self.render(path, marks)
                atomic_write_bytes(path, data)
            except (OSError, StaleSourceError, ScanError) as e:
                reason = e.strerror if isinstance(e, OSError) and e.strerror else str(e)
                raise WriteError(
                    path,
                    reason,
                    completed=result.rewritten,
                    unprocessed=order[n + 1:],
                ) from e
            result.rewritten.append(path)
            result.marked_lines += len(marks)
            logger.info("Commented %d duplicate line(s) in %s", len(marks), path)
            emit(self.sink, action="dedupe_file", details={"path": path, "lines": sorted(marks)})

        return result


def require_backup(backup: Optional[Backup]) -> Backup:
    if backup is None:
        raise BackupError("Refusing to rewrite source files without a backup")
    return backup
