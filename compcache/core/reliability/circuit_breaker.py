"""
Circuit breaker — stop probing a backend that keeps failing.

A lineage search can issue a hundred lookups. When the backend is down
every one of them fails (after retries), so after ``failure_threshold``
consecutive failures the circuit opens and the search gives up with an
"unavailable" outcome instead of a misleading miss.

States:
    CLOSED → Normal operation. Consecutive failures counted.
    OPEN   → Every further request rejected for the rest of the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from compcache.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


class CircuitState(StrEnum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"


@dataclass
class BackendCircuit:
    """Per-run circuit breaker around one backend."""

    name: str
    failure_threshold: int = 5

    state: CircuitState = CircuitState.CLOSED
    consecutive_failures: int = 0
    total_failures: int = 0
    total_rejections: int = 0

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def allow_request(self) -> bool:
        """Whether another call may go through."""
        if self.is_open:
            self.total_rejections += 1
            return False
        return True

    def record(self, receipt: Receipt) -> None:
        """Count the outcome of a call. Only ``failed`` counts against the backend."""
        if not receipt.failed:
            self.consecutive_failures = 0
            return

        self.consecutive_failures += 1
        self.total_failures += 1
        if self.consecutive_failures >= self.failure_threshold and not self.is_open:
            self.state = CircuitState.OPEN
            logger.warning(
                "Backend '%s' failed %d times in a row, giving up on it for this run",
                self.name,
                self.consecutive_failures,
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "total_failures": self.total_failures,
            "total_rejections": self.total_rejections,
            "failure_threshold": self.failure_threshold,
        }
