"""
Fixed-delay retry policy.

The same value object drives both retry layers: the broker client's own
connection retries and the connection supervisor's reconnect loop.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded number of attempts with a constant delay between them."""
    max_attempts: int
    delay_seconds: float

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds cannot be negative")

    def exhausted(self, attempts: int) -> bool:
        """True once ``attempts`` failed attempts have used up the budget."""
        return attempts >= self.max_attempts


def call_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
    description: str = "operation",
) -> T:
    """
    Call ``func`` until it succeeds or the policy is exhausted.

    The last error is re-raised when every attempt has failed.
    """
    attempts = 0
    while True:
        try:
            return func()
        except retry_on as e:
            attempts += 1
            if policy.exhausted(attempts):
                logger.error(f"{description} failed after {attempts} attempts: {e}")
                raise
            logger.warning(
                f"{description} failed, retrying in {policy.delay_seconds}s "
                f"({attempts}/{policy.max_attempts}): {e}"
            )
            sleep(policy.delay_seconds)
