"""
Resilience Utilities
====================

Circuit breaker and retry-with-backoff used by the source connectors.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar

from alert_triage.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if self._clock() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._clock()

        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "circuit": self.name,
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    timeout: Optional[float] = None,
    base_delay: float = 1.0,
    description: str = "operation",
) -> T:
    """
    Await ``operation()`` up to ``max_retries`` times.

    Each attempt is bounded by ``timeout``; between attempts the delay
    doubles (``base_delay * 2 ** attempt``). The last error is re-raised.
    """
    last_error: Optional[BaseException] = None

    for attempt in range(max_retries):
        try:
            if timeout is not None:
                return await asyncio.wait_for(operation(), timeout=timeout)
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            last_error = e
            logger.warning(
                f"{description} failed",
                extra={
                    "attempt": attempt + 1,
                    "max_retries": max_retries,
                    "error": str(e) or type(e).__name__
                }
            )

        if attempt < max_retries - 1:
            await asyncio.sleep(base_delay * (2 ** attempt))

    assert last_error is not None
    raise last_error
