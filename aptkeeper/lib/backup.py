from __future__ import annotations

import hashlib
import json
import logging
import shutil
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..errors import BackupError, RestoreError, ScanError, WriteError
from ..events import EventSink, emit
from .atomic import atomic_write_bytes
from .canonical import Canonicalizer
from .sources import decode_text, encode_text, read_text, split_eol, split_lines, unique_paths

logger = logging.getLogger(__name__)

MANIFEST = "manifest.json"


@dataclass(frozen=True)
class BackupFile:
    path: str
    existed: bool
    blob: Optional[str] = None  # relative to the backup dir
    sha256: Optional[str] = None
    size: int = 0


@dataclass(frozen=True)
class Backup:
    id: str
    created_at: float
    root: str  # directory holding this backup
    files: Tuple[BackupFile, ...]

    def covers(self, path: str) -> bool:
        return any(f.path == path for f in self.files)

    def entry(self, path: str) -> Optional[BackupFile]:
        for f in self.files:
            if f.path == path:
                return f
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at,
            "files": [
                {"path": f.path, "existed": f.existed, "blob": f.blob, "sha256": f.sha256, "size": f.size}
                for f in self.files
            ],
        }


def _sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _new_backup_id(now: float) -> str:
    return time.strftime("%Y%m%dT%H%M%S", time.localtime(now)) + "-" + uuid.uuid4().hex[:8]


class BackupManager:
    """Snapshots source files before mutation and puts them back on request.

    Layout under backup_root:
      <id>/manifest.json   written last; a backup without it is incomplete
      <id>/files/0000.bak  raw bytes of the first covered file, and so on
    """

    def __init__(self, backup_root: str, *, canonicalizer: Optional[Canonicalizer] = None, sink: Optional[EventSink] = None):
        self.root = Path(backup_root)
        self.canon = canonicalizer or Canonicalizer()
        self.sink = sink

    def snapshot(self, files: Sequence[str]) -> Backup:
        now = time.time()
        backup_id = _new_backup_id(now)
        bdir = self.root / backup_id
        try:
            (bdir / "files").mkdir(parents=True, exist_ok=False)
            entries: List[BackupFile] = []
            for n, path in enumerate(unique_paths(files)):
                p = Path(path)
                if not p.exists():
                    entries.append(BackupFile(path=path, existed=False))
                    continue
                data = p.read_bytes()
                blob = f"files/{n:04d}.bak"
                (bdir / blob).write_bytes(data)
                entries.append(BackupFile(path=path, existed=True, blob=blob, sha256=_sha256(data), size=len(data)))
            backup = Backup(id=backup_id, created_at=now, root=str(bdir), files=tuple(entries))
            atomic_write_bytes(bdir / MANIFEST, (json.dumps(backup.to_dict(), indent=2, sort_keys=True) + "\n").encode("utf-8"))
        except OSError as e:
            shutil.rmtree(bdir, ignore_errors=True)
            raise BackupError(f"Unable to snapshot source files into {bdir}: {e}") from e

        logger.info("Backup %s created (%d file(s)) at %s", backup_id, len(backup.files), bdir)
        emit(self.sink, action="backup_snapshot", details={"backup_id": backup_id, "files": [f.path for f in backup.files]})
        return backup

    def load(self, backup_id: str) -> Backup:
        bdir = self.root / backup_id
        manifest = bdir / MANIFEST
        if not manifest.exists():
            raise RestoreError(f"Backup {backup_id} not found (no manifest under {bdir})")
        try:
            raw = json.loads(manifest.read_text(encoding="utf-8"))
            files = tuple(
                BackupFile(
                    path=str(f["path"]),
                    existed=bool(f["existed"]),
                    blob=f.get("blob"),
                    sha256=f.get("sha256"),
                    size=int(f.get("size") or 0),
                )
                for f in raw["files"]
            )
            return Backup(id=str(raw["id"]), created_at=float(raw["created_at"]), root=str(bdir), files=files)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise RestoreError(f"Backup {backup_id} manifest is corrupt: {e}") from e

    def list_backups(self) -> List[Backup]:
        """Complete backups, newest first; incomplete ones are skipped."""

        if not self.root.is_dir():
            return []
        out: List[Backup] = []
        for d in self.root.iterdir():
            if not (d / MANIFEST).exists():
                continue
            try:
                out.append(self.load(d.name))
            except RestoreError as e:
                logger.warning("Ignoring unreadable backup %s: %s", d.name, e)
        return sorted(out, key=lambda b: b.created_at, reverse=True)

    def latest(self) -> Optional[Backup]:
        backups = self.list_backups()
        return backups[0] if backups else None

    def verify_unchanged(self, backup: Backup, files: Sequence[str]) -> None:
        """Raise BackupError unless backup covers files and still matches what is on disk."""

        for path in files:
            entry = backup.entry(path)
            if entry is None:
                raise BackupError(f"Backup {backup.id} does not cover {path}")
            p = Path(path)
            if entry.existed != p.exists():
                raise BackupError(f"Backup {backup.id} is stale for {path}")
            if entry.existed and _sha256(p.read_bytes()) != entry.sha256:
                raise BackupError(f"Backup {backup.id} is stale for {path} (file changed after snapshot)")

    def restore_from_backup(self, backup: Backup | str) -> List[str]:
        """Overwrite every covered file with its snapshot bytes, minus any markers.

        Files absent at snapshot time are removed. All blobs are verified
        before the first file is touched.
        """

        b = self.load(backup) if isinstance(backup, str) else backup
        bdir = Path(b.root)

        payloads: List[Tuple[BackupFile, Optional[bytes]]] = []
        for f in b.files:
            if not f.existed:
                payloads.append((f, None))
                continue
            blob = bdir / str(f.blob)
            try:
                data = blob.read_bytes()
            except OSError as e:
                raise RestoreError(f"Backup {b.id} is missing the snapshot of {f.path}") from e
            if _sha256(data) != f.sha256:
                raise RestoreError(f"Backup {b.id} snapshot of {f.path} is corrupt (checksum mismatch)")
            # Markers from an apply that ran before this snapshot come off too.
            payloads.append((f, encode_text(self.strip_markers(decode_text(data)))))

        restored: List[str] = []
        for n, (f, data) in enumerate(payloads):
            p = Path(f.path)
            try:
                if data is None:
                    if p.exists():
                        p.unlink()
                        restored.append(f.path)
                    continue
                if p.exists() and p.read_bytes() == data:
                    continue
                atomic_write_bytes(p, data)
            except OSError as e:
                raise WriteError(
                    f.path,
                    e.strerror or str(e),
                    completed=restored,
                    unprocessed=[x.path for x, _ in payloads[n + 1:]],
                ) from e
            restored.append(f.path)

        logger.info("Restored %d file(s) from backup %s", len(restored), b.id)
        emit(self.sink, action="backup_restore", details={"backup_id": b.id, "restored": restored})
        return restored

    def strip_markers(self, text: str) -> str:
        out: List[str] = []
        for line in split_lines(text):
            body, eol = split_eol(line)
            out.append(self.canon.unmark(body) + eol)
        return "".join(out)

    def undo_markers(self, files: Sequence[str]) -> List[str]:
        """Strip the marker prefix from every marked line, in place, without a backup."""

        restored: List[str] = []
        for path in unique_paths(files):
            p = Path(path)
            if not p.exists():
                continue
            try:
                text = read_text(p)
            except OSError as e:
                raise ScanError(path, e.strerror or str(e)) from e
            stripped = self.strip_markers(text)
            if stripped != text:
                try:
                    atomic_write_bytes(p, encode_text(stripped))
                except OSError as e:
                    raise WriteError(path, e.strerror or str(e), completed=restored) from e
                restored.append(path)

        logger.info("Removed duplicate markers from %d file(s)", len(restored))
        emit(self.sink, action="undo_markers", details={"restored": restored})
        return restored
