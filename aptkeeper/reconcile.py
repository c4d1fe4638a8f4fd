from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .config import AptKeeperConfig
from .errors import AptKeeperError, BackupError, ScanError, WriteError
from .events import EventSink, emit
from .lib.atomic import atomic_write_bytes
from .lib.backup import Backup, BackupManager
from .lib.canonical import Canonicalizer
from .lib.dedupe import ApplyResult, Deduplicator
from .lib.distro import Distro, has_repo, official_repo_line
from .lib.duplicates import DuplicateGroup, actionable, detect, format_report
from .lib.sources import SourceEntry, collect, encode_text, read_text, unique_paths

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanResult:
    entries: List[SourceEntry]
    groups: List[DuplicateGroup]

    @property
    def duplicates(self) -> List[DuplicateGroup]:
        return actionable(self.groups)

    @property
    def report(self) -> str:
        return format_report(self.groups)


class SourceReconciler:
    """scan / apply / undo over a set of APT source files.

    apply always snapshots the files it is about to touch first; a failed
    snapshot stops everything before the first byte changes.
    """

    def __init__(self, cfg: AptKeeperConfig, *, sink: Optional[EventSink] = None):
        self.cfg = cfg
        self.sink = sink
        self.canon = Canonicalizer(cfg.marker)
        self.backups = BackupManager(cfg.backup_root, canonicalizer=self.canon, sink=sink)
        self.deduplicator = Deduplicator(self.backups, canonicalizer=self.canon, sink=sink)

    def _fatal(self, action: str, err: AptKeeperError, **details) -> None:
        emit(self.sink, action=action, ok=False, details=details or None, error=str(err))

    def scan(self, files: Sequence[str]) -> ScanResult:
        try:
            entries = collect(files, canonicalizer=self.canon)
        except ScanError as e:
            self._fatal("scan", e, path=e.path)
            raise
        groups = detect(entries)
        result = ScanResult(entries=entries, groups=groups)
        emit(self.sink, action="scan", details={"files": list(files), "entries": len(entries), "duplicate_groups": len(result.duplicates)})
        return result

    def apply(self, files: Sequence[str]) -> ApplyResult:
        """Comment out duplicates; returns the backup taken and the files rewritten.

        Nothing is snapshotted when there is nothing to rewrite.
        """

        files = unique_paths(files)
        scan = self.scan(files)
        plan = self.deduplicator.plan(scan.groups, files)
        if not plan:
            logger.info("Sources already reconciled; nothing to apply")
            return ApplyResult(backup=None)

        try:
            backup = self.backups.snapshot(files)
        except BackupError as e:
            self._fatal("apply", e, stage="snapshot")
            raise

        try:
            result = self.deduplicator.apply(scan.groups, files, backup=backup)
        except WriteError as e:
            e.backup_id = backup.id
            self._fatal("apply", e, path=e.path, completed=e.completed, unprocessed=e.unprocessed, backup_id=backup.id)
            raise
        except BackupError as e:
            self._fatal("apply", e, backup_id=backup.id)
            raise

        logger.info("Commented %d duplicate line(s) in %d file(s); backup %s", result.marked_lines, len(result.rewritten), backup.id)
        emit(self.sink, action="apply", details={"backup_id": backup.id, "rewritten": result.rewritten})
        return result

    def undo(self, target: Backup | str | Sequence[str]) -> List[str]:
        """Backup (or backup id) -> full restore; list of paths -> marker stripping."""

        try:
            if isinstance(target, (Backup, str)):
                return self.backups.restore_from_backup(target)
            return self.backups.undo_markers(list(target))
        except AptKeeperError as e:
            self._fatal("undo", e)
            raise

    def ensure_repo(self, files: Sequence[str], distro: Distro, *, suite: Optional[str] = None) -> Optional[Backup]:
        """Append the distro's official line to cfg.repo_file unless it is already active.

        Returns the backup taken before the write, or None when nothing changed.
        """

        line = official_repo_line(distro, suite)
        scan = self.scan(unique_paths([*files, self.cfg.repo_file]))
        if has_repo(scan.entries, line, canonicalizer=self.canon):
            logger.info("Official %s repository already configured", distro.value)
            return None

        target = Path(self.cfg.repo_file)
        try:
            backup = self.backups.snapshot([str(target)])
        except BackupError as e:
            self._fatal("ensure_repo", e, stage="snapshot")
            raise

        try:
            existing = read_text(target) if target.exists() else ""
            if existing and not existing.endswith("\n"):
                existing += "\n"
            atomic_write_bytes(target, encode_text(existing + line + "\n"))
        except OSError as e:
            err = WriteError(str(target), e.strerror or str(e))
            err.backup_id = backup.id
            self._fatal("ensure_repo", err, path=str(target), backup_id=backup.id)
            raise err from e

        logger.info("Added official %s repository to %s", distro.value, target)
        emit(self.sink, action="ensure_repo", details={"distro": distro.value, "path": str(target), "backup_id": backup.id})
        return backup
