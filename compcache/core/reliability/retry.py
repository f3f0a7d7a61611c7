"""
Retry policy — repeat backend calls that could not complete.

Only ``failed`` receipts are retried. ``not_found`` is a definite answer
from the backend and is returned at once. Backoff is exponential with
jitter.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from compcache.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """How many times, and how patiently, to call a backend.

    Args:
        attempts: Total calls per operation (1 = no retry).
        base_delay: Delay before the first retry, in seconds.
        max_delay: Upper bound for a single delay.
        sleep: Injected for tests.
    """

    attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        """Delay after failed *attempt* (1-based), jitter included."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        return delay + random.uniform(0, delay * 0.3)

    def call(self, operation: Callable[[], Receipt], *, label: str = "") -> Receipt:
        """Run *operation* until it does not fail or attempts run out."""
        receipt = operation()
        attempt = 1
        while receipt.failed and attempt < self.attempts:
            delay = self.delay_for(attempt)
            logger.debug(
                "Retrying %s after failure (%s): attempt %d/%d in %.1fs",
                label or receipt.operation,
                receipt.error,
                attempt + 1,
                self.attempts,
                delay,
            )
            self.sleep(delay)
            receipt = operation()
            attempt += 1

        if receipt.failed:
            logger.warning(
                "%s failed after %d attempt(s): %s", label or receipt.operation, attempt, receipt.error
            )
        receipt.metadata.setdefault("attempts", attempt)
        return receipt
