from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

DEFAULT_MARKER = "#aptkeeper-duplicate"
DEFAULT_LOCK_PATHS = [
    "/var/lib/dpkg/lock-frontend",
    "/var/lib/apt/lists/lock",
    "/var/lib/dpkg/lock",
]


@dataclass(frozen=True)
class AptKeeperConfig:
    raw: Dict[str, Any] = field(default_factory=dict)

    def _section(self, name: str) -> Dict[str, Any]:
        return self.raw.get(name) or {}

    @property
    def marker(self) -> str:
        return str(self.raw.get("marker") or DEFAULT_MARKER)

    @property
    def backup_root(self) -> str:
        return str(self.raw.get("backup_root") or "/var/backups/aptkeeper")

    @property
    def sources_list(self) -> str:
        return str(self._section("sources").get("list") or "/etc/apt/sources.list")

    @property
    def sources_parts_dir(self) -> str:
        return str(self._section("sources").get("parts_dir") or "/etc/apt/sources.list.d")

    @property
    def lock_paths(self) -> List[str]:
        return [str(p) for p in (self._section("lock").get("paths") or DEFAULT_LOCK_PATHS)]

    @property
    def lock_timeout_s(self) -> float:
        return float(self._section("lock").get("timeout_s", 60))

    @property
    def lock_poll_interval_s(self) -> float:
        return float(self._section("lock").get("poll_interval_s", 3))

    @property
    def lock_kill_grace_s(self) -> float:
        return float(self._section("lock").get("kill_grace_s", 2))

    @property
    def retry_max_attempts(self) -> int:
        return int(self._section("retry").get("max_attempts", 3))

    @property
    def retry_base_backoff_s(self) -> float:
        return float(self._section("retry").get("base_backoff_s", 1))

    @property
    def os_release(self) -> str:
        return str(self._section("distro").get("os_release") or "/etc/os-release")

    @property
    def distro_suite(self) -> Optional[str]:
        suite = self._section("distro").get("suite")
        return str(suite) if suite else None

    @property
    def repo_file(self) -> str:
        default = str(Path(self.sources_parts_dir) / "aptkeeper-official.list")
        return str(self._section("distro").get("repo_file") or default)


def load_config(path: Optional[str]) -> AptKeeperConfig:
    """Load YAML configuration; no path means built-in defaults."""

    if not path:
        return AptKeeperConfig()

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError("aptkeeper config must be YAML")

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise RuntimeError("PyYAML is required to read the aptkeeper config") from e

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config must contain a mapping/object: {p}")

    return AptKeeperConfig(raw=raw)
