from __future__ import annotations

from typing import Sequence


class AptKeeperError(RuntimeError):
    """Base class for every fatal aptkeeper condition."""


class ScanError(AptKeeperError):
    """An existing source file could not be read."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Unable to read {path}: {reason}")
        self.path = path


class WriteError(AptKeeperError):
    """The atomic rewrite of one file failed; the rest of the batch was not touched."""

    def __init__(
        self,
        path: str,
        reason: str,
        *,
        completed: Sequence[str] = (),
        unprocessed: Sequence[str] = (),
    ):
        msg = f"Unable to rewrite {path}: {reason}"
        if unprocessed:
            msg += f" (unprocessed: {', '.join(unprocessed)})"
        super().__init__(msg)
        self.path = path
        self.completed = list(completed)
        self.unprocessed = list(unprocessed)
        self.backup_id: str | None = None


class BackupError(AptKeeperError):
    """A snapshot could not be created or does not cover the files to mutate."""


class RestoreError(AptKeeperError):
    """A backup is missing or corrupt."""


class LockTimeoutError(AptKeeperError):
    """The package lock was never released and the holders were not killed."""

    def __init__(self, message: str, *, holders: Sequence[int] = ()):
        super().__init__(message)
        self.holders = list(holders)
