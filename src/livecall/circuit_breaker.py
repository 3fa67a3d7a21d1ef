"""Circuit breaker for the call-script REST endpoints.

After ``failure_threshold`` consecutive transport failures the breaker
opens and requests are skipped until ``cooldown_seconds`` have passed;
the next request is then let through as a probe.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class BreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    failure_threshold: int = 3
    cooldown_seconds: float = 30.0
    label: str = "service"
    clock: Callable[[], float] = time.monotonic

    _failures: int = field(default=0, init=False, repr=False)
    _opened_at: float | None = field(default=None, init=False, repr=False)

    @property
    def state(self) -> BreakerState:
        if self._opened_at is None:
            return BreakerState.CLOSED
        if self.clock() - self._opened_at >= self.cooldown_seconds:
            return BreakerState.HALF_OPEN
        return BreakerState.OPEN

    def allow(self) -> bool:
        return self.state != BreakerState.OPEN

    def record_success(self) -> None:
        if self._opened_at is not None:
            logger.info("Circuit breaker closed for %s", self.label)
        self._failures = 0
        self._opened_at = None

    def record_failure(self) -> None:
        self._failures += 1
        if self.state == BreakerState.HALF_OPEN:
            # Failed probe: restart the cooldown
            self._opened_at = self.clock()
            logger.warning("Circuit breaker probe failed for %s", self.label)
        elif self._opened_at is None and self._failures >= self.failure_threshold:
            self._opened_at = self.clock()
            logger.warning(
                "Circuit breaker opened for %s after %d consecutive failures, skipping for %.0fs",
                self.label, self._failures, self.cooldown_seconds,
            )
