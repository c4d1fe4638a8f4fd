from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    base_backoff_s: float = 1.0
    attempts: int = 0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_backoff_s < 0:
            raise ValueError("base_backoff_s must be >= 0")

    def backoff_for(self, attempt: int) -> float:
        return attempt * self.base_backoff_s


class RetryExecutor:
    """Runs an opaque zero-argument operation with bounded linear backoff.

    After failed attempt n the executor sleeps n * base_backoff_s. The
    final failure propagates unchanged and is not followed by a sleep.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        sleep: Callable[[float], None] = time.sleep,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    ):
        self.policy = policy
        self.sleep = sleep
        self.retry_on = retry_on

    def execute(self, op: Callable[[], T], *, describe: str = "operation") -> T:
        self.policy.attempts = 0
        while True:
            self.policy.attempts += 1
            attempt = self.policy.attempts
            try:
                result = op()
            except self.retry_on as e:
                if attempt >= self.policy.max_attempts:
                    logger.error("%s failed after %d attempt(s): %s", describe, attempt, e)
                    raise
                delay = self.policy.backoff_for(attempt)
                logger.warning("%s failed (attempt %d/%d): %s; retrying in %.1fs", describe, attempt, self.policy.max_attempts, e, delay)
                self.sleep(delay)
                continue
            if attempt > 1:
                logger.info("%s succeeded on attempt %d", describe, attempt)
            return result


def execute(
    op: Callable[[], T],
    max_attempts: int,
    base_backoff_s: float,
    *,
    sleep: Optional[Callable[[float], None]] = None,
) -> T:
    executor = RetryExecutor(RetryPolicy(max_attempts=max_attempts, base_backoff_s=base_backoff_s), sleep=sleep or time.sleep)
    return executor.execute(op)
