from __future__ import annotations

import enum
import logging
from pathlib import Path
from typing import Dict, Optional, Sequence

from .canonical import Canonicalizer
from .sources import SourceEntry

logger = logging.getLogger(__name__)


class Distro(str, enum.Enum):
    KALI = "kali"
    DEBIAN = "debian"
    UBUNTU = "ubuntu"
    UNKNOWN = "unknown"


def parse_os_release(text: str) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        k, v = line.split("=", 1)
        out[k.strip()] = v.strip().strip("\"'")
    return out


def detect_distro(os_release: str = "/etc/os-release") -> Distro:
    """Map os-release ID (then ID_LIKE) onto a Distro; unreadable means UNKNOWN."""

    try:
        info = parse_os_release(Path(os_release).read_text(encoding="utf-8", errors="ignore"))
    except OSError:
        logger.warning("Unable to read %s; distro unknown", os_release)
        return Distro.UNKNOWN

    candidates = [info.get("ID", "")] + info.get("ID_LIKE", "").split()
    for c in candidates:
        try:
            return Distro(c.lower())
        except ValueError:
            continue
    return Distro.UNKNOWN


def official_repo_line(distro: Distro, suite: Optional[str] = None) -> str:
    """The distro's official repository line. Every distro is handled here and only here."""

    if distro is Distro.KALI:
        return f"deb http://http.kali.org/kali {suite or 'kali-rolling'} main contrib non-free non-free-firmware"
    elif distro is Distro.DEBIAN:
        return f"deb http://deb.debian.org/debian {suite or 'stable'} main contrib non-free non-free-firmware"
    elif distro is Distro.UBUNTU:
        return f"deb http://archive.ubuntu.com/ubuntu {suite or 'noble'} main restricted universe multiverse"
    raise ValueError(f"No official repository known for distro {distro.value!r}")


def has_repo(entries: Sequence[SourceEntry], line: str, *, canonicalizer: Optional[Canonicalizer] = None) -> bool:
    """True when an active (non-marked) entry has the same canonical form as line."""

    canon = canonicalizer or Canonicalizer()
    key = canon.canonicalize(line)
    return any(not e.excluded and e.canonical == key for e in entries)
