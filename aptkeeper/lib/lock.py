from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence

from ..errors import LockTimeoutError
from ..events import EventSink, emit
from .holders import LockProbe, ProcessSignaller
from .retry import RetryExecutor, RetryPolicy

logger = logging.getLogger(__name__)


class LockState(str, enum.Enum):
    FREE = "free"
    HELD_BY_OTHER = "held_by_other"
    ESCALATED = "escalated"
    KILLED = "killed"
    ABANDONED = "abandoned"


# None is the state before the first poll. No state is ever revisited.
_TRANSITIONS: Dict[Optional[LockState], FrozenSet[LockState]] = {
    None: frozenset({LockState.FREE, LockState.HELD_BY_OTHER}),
    LockState.HELD_BY_OTHER: frozenset({LockState.FREE, LockState.ESCALATED}),
    LockState.ESCALATED: frozenset({LockState.KILLED, LockState.ABANDONED}),
    LockState.KILLED: frozenset({LockState.ABANDONED}),
    LockState.FREE: frozenset(),
    LockState.ABANDONED: frozenset(),
}


@dataclass
class LockHandle:
    resource: str
    holders: List[int] = field(default_factory=list)
    state: Optional[LockState] = None
    history: List[LockState] = field(default_factory=list)
    polls: int = 0

    @property
    def available(self) -> bool:
        return self.state in (LockState.FREE, LockState.KILLED)

    def advance(self, new: LockState) -> None:
        if new not in _TRANSITIONS[self.state]:
            raise ValueError(f"Illegal lock transition {self.state} -> {new}")
        logger.debug("Lock %s: %s -> %s", self.resource, self.state, new)
        self.state = new
        self.history.append(new)


# Receives the escalated handle (holder PIDs included); True means "kill them".
ConfirmKill = Callable[[LockHandle], bool]


class LockArbiter:
    """Waits for an externally held package lock; forced release needs consent.

    The arbiter only reports when the lock is available. It never runs the
    caller's protected operation and never owns the lock itself.
    """

    def __init__(
        self,
        probe: LockProbe,
        *,
        resource: str = "apt",
        confirm: Optional[ConfirmKill] = None,
        signaller: Optional[ProcessSignaller] = None,
        kill_grace_s: float = 2.0,
        probe_retry: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        sink: Optional[EventSink] = None,
    ):
        self.probe = probe
        self.resource = resource
        self.confirm = confirm
        self.signaller = signaller or ProcessSignaller()
        self.kill_grace_s = kill_grace_s
        self.clock = clock
        self.sleep = sleep
        self.sink = sink
        self._retry = RetryExecutor(probe_retry or RetryPolicy(max_attempts=3, base_backoff_s=0.5), sleep=sleep)

    def _poll(self, handle: LockHandle) -> List[int]:
        handle.polls += 1
        holders = self._retry.execute(self.probe.holders, describe=f"lock probe for {self.resource}")
        return list(holders)

    def wait_for_lock(self, timeout_s: float, poll_interval_s: float) -> LockHandle:
        """Poll until the lock is free, escalating to the confirm callback on timeout.

        Polls happen at t = 0, interval, 2*interval, ... while t < timeout.
        Raises LockTimeoutError when the user declines (or nobody can be
        asked) or when the holders survive a consented kill.
        """

        if poll_interval_s <= 0:
            raise ValueError("poll_interval_s must be > 0")
        if timeout_s < 0:
            raise ValueError("timeout_s must be >= 0")

        handle = LockHandle(resource=self.resource)
        start = self.clock()

        holders = self._poll(handle)
        if not holders:
            handle.advance(LockState.FREE)
            logger.info("Package lock %s is free", self.resource)
            return handle

        handle.holders = holders
        handle.advance(LockState.HELD_BY_OTHER)
        logger.info("Package lock %s held by pid(s) %s; waiting up to %.0fs", self.resource, holders, timeout_s)
        emit(self.sink, action="lock_wait", details={"resource": self.resource, "holders": holders, "timeout_s": timeout_s})

        while True:
            elapsed = self.clock() - start
            next_poll = elapsed + poll_interval_s
            if next_poll >= timeout_s:
                remaining = timeout_s - elapsed
                if remaining > 0:
                    self.sleep(remaining)
                break
            self.sleep(poll_interval_s)
            holders = self._poll(handle)
            if not holders:
                handle.holders = []
                handle.advance(LockState.FREE)
                logger.info("Package lock %s released after %d poll(s)", self.resource, handle.polls)
                emit(self.sink, action="lock_released", details={"resource": self.resource, "polls": handle.polls})
                return handle
            handle.holders = holders

        return self._escalate(handle)

    def _escalate(self, handle: LockHandle) -> LockHandle:
        handle.advance(LockState.ESCALATED)
        logger.warning("Package lock %s still held by pid(s) %s after timeout", self.resource, handle.holders)
        emit(self.sink, action="lock_escalated", details={"resource": self.resource, "holders": handle.holders})

        consent = bool(self.confirm(handle)) if self.confirm is not None else False
        if not consent:
            handle.advance(LockState.ABANDONED)
            return self._fail(handle, f"Package lock {self.resource} is held by pid(s) {handle.holders}; not killing them")

        try:
            self._kill(handle.holders)
        except OSError as e:
            handle.advance(LockState.ABANDONED)
            return self._fail(handle, f"Unable to signal holders {handle.holders} of package lock {self.resource}: {e}")
        handle.advance(LockState.KILLED)

        # Exactly one re-check after a consented kill.
        holders = self._poll(handle)
        if holders:
            handle.holders = holders
            handle.advance(LockState.ABANDONED)
            return self._fail(handle, f"Package lock {self.resource} still held by pid(s) {holders} after kill")

        handle.holders = []
        logger.warning("Package lock %s freed by killing its holders", self.resource)
        emit(self.sink, action="lock_killed", details={"resource": self.resource})
        return handle

    def _kill(self, pids: Sequence[int]) -> None:
        for pid in pids:
            self.signaller.terminate(pid)
        self.sleep(self.kill_grace_s)
        survivors = [pid for pid in pids if self.signaller.is_alive(pid)]
        if survivors:
            for pid in survivors:
                self.signaller.kill(pid)
            self.sleep(self.kill_grace_s)

    def _fail(self, handle: LockHandle, message: str) -> LockHandle:
        emit(
            self.sink,
            action="lock_timeout",
            ok=False,
            details={"resource": self.resource, "holders": handle.holders, "state": handle.state.value if handle.state else None},
            error=message,
        )
        raise LockTimeoutError(message, holders=handle.holders)
