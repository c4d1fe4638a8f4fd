from __future__ import annotations

import logging
import os
import re
import signal
from pathlib import Path
from typing import List, Protocol, Sequence

from .command import have_tool, run_cmd

logger = logging.getLogger(__name__)

_PID = re.compile(r"\d+")


class LockProbe(Protocol):
    """Answers "who holds the lock right now"; an empty list means free."""

    def holders(self) -> List[int]:
        ...


class FuserProbe:
    """Asks fuser(1) which processes have the lock files open."""

    def __init__(self, lock_paths: Sequence[str]):
        self.lock_paths = list(lock_paths)

    def holders(self) -> List[int]:
        pids: set[int] = set()
        for path in self.lock_paths:
            if not Path(path).exists():
                continue
            # fuser prints PIDs on stdout, the file name on stderr; exit 1 means nobody.
            r = run_cmd(["fuser", path], check=False)
            if r.returncode not in (0, 1):
                raise RuntimeError(f"fuser failed on {path} ({r.returncode}): {r.stderr.strip()}")
            pids.update(int(p) for p in _PID.findall(r.stdout))
        return sorted(pids)


class ProcFdProbe:
    """Walks /proc/<pid>/fd looking for descriptors that point at the lock files."""

    def __init__(self, lock_paths: Sequence[str], *, proc_root: str = "/proc"):
        self.lock_paths = list(lock_paths)
        self.proc_root = Path(proc_root)

    def holders(self) -> List[int]:
        targets = {os.path.realpath(p) for p in self.lock_paths if Path(p).exists()}
        if not targets:
            return []
        pids: List[int] = []
        for proc in self.proc_root.iterdir():
            if not proc.name.isdigit():
                continue
            try:
                fds = list((proc / "fd").iterdir())
            except OSError:
                continue
            for fd in fds:
                try:
                    link = os.readlink(fd)
                except OSError:
                    continue
                if link in targets:
                    pids.append(int(proc.name))
                    break
        return sorted(pids)


def default_probe(lock_paths: Sequence[str]) -> LockProbe:
    if have_tool("fuser"):
        return FuserProbe(lock_paths)
    logger.info("fuser not installed; scanning /proc for lock holders")
    return ProcFdProbe(lock_paths)


class ProcessSignaller:
    """Thin wrapper over os.kill so tests can swap it out."""

    def terminate(self, pid: int) -> None:
        self._send(pid, signal.SIGTERM)

    def kill(self, pid: int) -> None:
        self._send(pid, signal.SIGKILL)

    def is_alive(self, pid: int) -> bool:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    def _send(self, pid: int, sig: signal.Signals) -> None:
        try:
            os.kill(pid, sig)
            logger.warning("Sent %s to pid %d", sig.name, pid)
        except ProcessLookupError:
            logger.info("pid %d already gone before %s", pid, sig.name)
