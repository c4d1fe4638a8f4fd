from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import pytest

from aptkeeper.config import AptKeeperConfig

KALI_LINE = "deb http://example.org/kali kali-rolling main"


class FakeClock:
    """Monotonic clock whose sleep just moves time forward."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> List[Dict]:
    return []


@pytest.fixture
def cfg(tmp_path: Path) -> AptKeeperConfig:
    return AptKeeperConfig(
        raw={
            "backup_root": str(tmp_path / "backups"),
            "sources": {"list": str(tmp_path / "sources.list"), "parts_dir": str(tmp_path / "sources.list.d")},
            "distro": {"repo_file": str(tmp_path / "sources.list.d" / "official.list")},
        }
    )


@pytest.fixture
def scenario(tmp_path: Path) -> List[str]:
    """The same line at sources.list:5, a.list:2 and b.list:1."""

    sources = tmp_path / "sources.list"
    a = tmp_path / "a.list"
    b = tmp_path / "b.list"
    sources.write_text(
        "# main repo\n"
        "deb http://deb.debian.org/debian stable main\n"
        "\n"
        "deb-src http://deb.debian.org/debian stable main\n"
        f"{KALI_LINE}\n",
        encoding="utf-8",
    )
    a.write_text(f"deb http://other.example/repo ./\n{KALI_LINE}\n", encoding="utf-8")
    b.write_text(f"{KALI_LINE}\n", encoding="utf-8")
    return [str(sources), str(a), str(b)]
