from __future__ import annotations

import logging
import os
import signal
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Tuple

logger = logging.getLogger(__name__)

TMP_SUFFIX = ".aptkeeper-tmp"


@contextmanager
def deferred_sigint() -> Iterator[None]:
    """Hold back Ctrl-C until the block finishes, then re-raise it.

    Signal handlers can only be swapped from the main thread; elsewhere
    the block runs unprotected.
    """

    if threading.current_thread() is not threading.main_thread():
        yield
        return

    received: list[int] = []

    def _record(signum, _frame) -> None:
        received.append(signum)

    previous = signal.signal(signal.SIGINT, _record)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous if previous is not None else signal.SIG_DFL)
    if received:
        logger.warning("Interrupt received during a file rewrite; stopped after finishing it")
        raise KeyboardInterrupt


@contextmanager
def scoped_tempfile(target: Path) -> Iterator[Tuple[int, Path]]:
    """A temp file beside target, removed on every exit path unless it was renamed away."""

    fd, name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=TMP_SUFFIX, dir=str(target.parent))
    tmp = Path(name)
    try:
        yield fd, tmp
    finally:
        try:
            os.close(fd)
        except OSError:
            pass
        if tmp.exists():
            tmp.unlink()
            logger.debug("Removed stale temp file %s", tmp)


def atomic_write_bytes(path: str | Path, data: bytes) -> None:
    """Replace path with data so readers only ever see the old or the new file.

    The temp file is written and fsynced in the same directory, takes the
    old file's permission bits, and is renamed over the target.
    """

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    mode = target.stat().st_mode & 0o7777 if target.exists() else 0o644

    with deferred_sigint():
        with scoped_tempfile(target) as (fd, tmp):
            _write_all(fd, data)
            os.fsync(fd)
            os.fchmod(fd, mode)
            os.replace(tmp, target)
    logger.debug("Atomically rewrote %s (%d bytes)", target, len(data))


def _write_all(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        n = os.write(fd, view)
        view = view[n:]
