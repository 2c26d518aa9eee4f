"""
Circuit breaker for the remote catalog API.

Only outages trip the breaker: connection failures and 5xx responses. A 4xx
or an error payload means the server answered, which counts as a healthy
round trip. While the circuit is open every call is refused up front with
RemoteUnavailableError, so the coordinator falls back to the local mirror
without waiting on a network timeout per write.
"""
import asyncio
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from catalog.config import RemoteConfig
from catalog.exceptions import (
    RemoteAPIError,
    RemoteConnectionError,
    RemoteStoreError,
    RemoteUnavailableError,
)
from catalog.observability import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 3
    recovery_timeout: float = 30.0
    half_open_requests: int = 1

    @classmethod
    def from_remote(cls, remote: RemoteConfig) -> "CircuitBreakerConfig":
        return cls(
            failure_threshold=remote.failure_threshold,
            recovery_timeout=remote.recovery_timeout,
        )


def is_outage(error: RemoteStoreError) -> bool:
    """True when the error says the remote is down, not that it refused one call."""
    if isinstance(error, RemoteConnectionError):
        return True
    if isinstance(error, RemoteAPIError):
        return error.status_code is not None and error.status_code >= 500
    return False


@dataclass
class CircuitBreaker:
    """
    Closed -> open after ``failure_threshold`` consecutive outages.
    Open -> half-open once ``recovery_timeout`` has passed; the next
    ``half_open_requests`` calls are let through as probes. A probe that
    reaches the server closes the circuit, an outage re-opens it.
    """
    config: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    opened_at: float = 0
    half_open_attempts: int = 0

    def __post_init__(self):
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def retry_after(self) -> float:
        """Seconds until an open circuit lets a probe through."""
        if self.state != CircuitState.OPEN:
            return 0.0
        elapsed = time.monotonic() - self.opened_at
        return max(self.config.recovery_timeout - elapsed, 0.0)

    async def guard(self, endpoint: str) -> None:
        """
        Admit one call to ``endpoint``.

        Raises:
            RemoteUnavailableError: Circuit is open, or half-open with its
                probes already in flight
        """
        async with self._lock:
            if self.state == CircuitState.OPEN and self.retry_after() == 0:
                logger.info("Circuit breaker half-open, probing remote", extra={"endpoint": endpoint})
                self.state = CircuitState.HALF_OPEN
                self.half_open_attempts = 0

            if self.state == CircuitState.CLOSED:
                return
            if (self.state == CircuitState.HALF_OPEN
                    and self.half_open_attempts < self.config.half_open_requests):
                self.half_open_attempts += 1
                return

            wait = math.ceil(self.retry_after())

        raise RemoteUnavailableError(
            f"Circuit breaker is open, request to {endpoint} rejected",
            details=f"{self.failure_count} consecutive failures",
            retry_after=wait,
        )

    async def record(self, error: Optional[RemoteStoreError] = None) -> None:
        """Record how one admitted call ended; ``error`` is None on success."""
        async with self._lock:
            if error is None or not is_outage(error):
                if self.state == CircuitState.HALF_OPEN:
                    logger.info("Circuit breaker closing, remote answered probe")
                self.state = CircuitState.CLOSED
                self.failure_count = 0
                return

            self.failure_count += 1
            if (self.state == CircuitState.HALF_OPEN
                    or self.failure_count >= self.config.failure_threshold):
                logger.warning(
                    f"Circuit breaker opening after {self.failure_count} failures",
                    extra={"error_type": type(error).__name__},
                )
                self.state = CircuitState.OPEN
                self.opened_at = time.monotonic()
