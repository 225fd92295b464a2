"""Circuit breaker for the order backend.

After a run of consecutive transport failures the backend is skipped for a
cooldown period, so callers hear an apology right away instead of waiting
out one timeout per turn.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class CircuitBreaker:
    """closed -> open (after N failures) -> half-open probe (after cooldown)."""

    failure_threshold: int = 3
    cooldown_seconds: float = 60.0
    label: str = "backend"

    _consecutive_failures: int = field(default=0, init=False, repr=False)
    _opened_at: Optional[float] = field(default=None, init=False, repr=False)

    @property
    def is_open(self) -> bool:
        return self._consecutive_failures >= self.failure_threshold

    def allow_request(self) -> bool:
        if not self.is_open:
            return True
        # Half-open: let a single probe through once the cooldown has elapsed
        return (
            self._opened_at is not None
            and (time.monotonic() - self._opened_at) >= self.cooldown_seconds
        )

    def record_success(self) -> None:
        if self.is_open:
            logger.info("Circuit breaker CLOSED for %s", self.label)
        self._consecutive_failures = 0
        self._opened_at = None

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        if not self.is_open:
            return
        if self._opened_at is None:
            logger.warning(
                "Circuit breaker OPENED for %s after %d consecutive failures, "
                "skipping for %.0fs",
                self.label,
                self._consecutive_failures,
                self.cooldown_seconds,
            )
        # A failed half-open probe restarts the cooldown
        self._opened_at = time.monotonic()
