"""Confirm collaborators handed to LockArbiter.

Both return False whenever the user cannot be asked, so a lock holder is
never killed without an explicit "yes".
"""

from __future__ import annotations

import logging
import sys
from typing import Callable, Optional, TextIO

from .lib.command import have_tool, run_cmd
from .lib.lock import LockHandle

logger = logging.getLogger(__name__)


def _question(handle: LockHandle) -> str:
    pids = ", ".join(str(p) for p in handle.holders) or "unknown"
    return (
        f"The package lock ({handle.resource}) is still held by process(es) {pids}.\n"
        "Another package manager (Synaptic, apt, unattended-upgrades) is probably running.\n"
        "Terminate those processes now?"
    )


def tty_confirm(
    handle: LockHandle,
    *,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
    input_fn: Callable[[str], str] = input,
) -> bool:
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    if not stdin.isatty():
        logger.warning("No terminal available to confirm killing lock holders; declining")
        return False
    stdout.write(_question(handle) + "\n")
    try:
        answer = input_fn("Kill lock holders? [y/N] ").strip().lower()
    except EOFError:
        return False
    return answer in {"y", "yes"}


def zenity_confirm(handle: LockHandle) -> bool:
    if not have_tool("zenity"):
        logger.warning("zenity not installed; declining to kill lock holders")
        return False
    r = run_cmd(
        [
            "zenity",
            "--question",
            "--title=Package lock held",
            "--width=500",
            f"--text={_question(handle)}",
        ],
        check=False,
    )
    return r.returncode == 0
