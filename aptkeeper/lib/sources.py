from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from ..config import AptKeeperConfig
from ..errors import ScanError
from .canonical import Canonicalizer

logger = logging.getLogger(__name__)

# Undecodable bytes round-trip unchanged through read and rewrite.
ENCODING = "utf-8"
ERRORS = "surrogateescape"


@dataclass(frozen=True)
class SourceFile:
    path: str
    lines: Tuple[str, ...]  # raw lines, line endings included


@dataclass(frozen=True)
class SourceEntry:
    raw: str  # line text without its line ending
    canonical: str
    path: str
    line_no: int  # 1-based
    ordinal: int  # position across the whole scan
    excluded: bool = False

    @property
    def location(self) -> str:
        return f"{self.path}:{self.line_no}"


def split_lines(text: str) -> List[str]:
    """Split on '\\n' only, keeping line endings (str.splitlines also splits on \\x0c and friends)."""

    parts = text.split("\n")
    out = [p + "\n" for p in parts[:-1]]
    if parts[-1]:
        out.append(parts[-1])
    return out


def split_eol(line: str) -> Tuple[str, str]:
    if line.endswith("\r\n"):
        return line[:-2], "\r\n"
    if line.endswith("\n"):
        return line[:-1], "\n"
    return line, ""


def decode_text(data: bytes) -> str:
    return data.decode(ENCODING, ERRORS)


def read_text(path: str | Path) -> str:
    return decode_text(Path(path).read_bytes())


def encode_text(text: str) -> bytes:
    return text.encode(ENCODING, ERRORS)


def read_source_file(path: str) -> Optional[SourceFile]:
    """Return the file's lines, or None when the file does not exist."""

    p = Path(path)
    if not p.exists():
        logger.debug("Source file %s not present; skipping", path)
        return None
    try:
        text = read_text(p)
    except OSError as e:
        raise ScanError(path, e.strerror or str(e)) from e
    return SourceFile(path=path, lines=tuple(split_lines(text)))


def unique_paths(files: Iterable[str | Path]) -> List[str]:
    seen: set[str] = set()
    out: List[str] = []
    for f in files:
        s = str(f)
        if s not in seen:
            seen.add(s)
            out.append(s)
    return out


def collect(files: Sequence[str | Path], *, canonicalizer: Optional[Canonicalizer] = None) -> List[SourceEntry]:
    """Read files in the given order into entries, ascending line order within each file.

    Blank lines are skipped. Marker-carrying lines are kept but flagged
    as excluded so callers can still see them.
    """

    canon = canonicalizer or Canonicalizer()
    entries: List[SourceEntry] = []
    for path in unique_paths(files):
        sf = read_source_file(path)
        if sf is None:
            continue
        for idx, line in enumerate(sf.lines, start=1):
            raw, _ = split_eol(line)
            if not raw.strip():
                continue
            entries.append(
                SourceEntry(
                    raw=raw,
                    canonical=canon.canonicalize(raw),
                    path=path,
                    line_no=idx,
                    ordinal=len(entries),
                    excluded=canon.is_excluded(raw),
                )
            )
    logger.info("Collected %d entries from %d file(s)", len(entries), len(files))
    return entries


def default_source_files(cfg: AptKeeperConfig) -> List[str]:
    """sources.list first, then sources.list.d/*.list in name order."""

    files = [cfg.sources_list]
    parts = Path(cfg.sources_parts_dir)
    if parts.is_dir():
        files.extend(str(p) for p in sorted(parts.glob("*.list")))
    return files
