"""
Circuit Breaker
===============
Fail fast while the record store is unreachable.
"""

import time
from typing import TypeVar, Callable, Awaitable, Optional, Tuple, Type
import structlog

from .exceptions import CircuitBreakerOpen

logger = structlog.get_logger(__name__)

T = TypeVar('T')


class CircuitBreaker:
    """
    Circuit breaker for store calls.

    States:
    - CLOSED: Normal operation, calls pass through
    - OPEN: Failures exceeded threshold, calls fail fast
    - HALF_OPEN: Letting calls through to test recovery

    Only ``tracked_exceptions`` count as failures, so business errors raised
    by a call never open the circuit.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        name: str = "otp-store",
        failure_threshold: int = 5,
        success_threshold: int = 1,
        reset_timeout: float = 30.0,
        tracked_exceptions: Tuple[Type[BaseException], ...] = (Exception,),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.reset_timeout = reset_timeout
        self.tracked_exceptions = tracked_exceptions
        self._clock = clock

        self._state = self.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> str:
        # An expired OPEN reads as HALF_OPEN
        if self._state == self.OPEN and self._retry_after() <= 0:
            return self.HALF_OPEN
        return self._state

    def _retry_after(self) -> float:
        if self._opened_at is None:
            return 0.0
        return self.reset_timeout - (self._clock() - self._opened_at)

    def _before_call(self) -> None:
        if self._state != self.OPEN:
            return
        retry_after = self._retry_after()
        if retry_after > 0:
            raise CircuitBreakerOpen(self.name, retry_after)
        self._state = self.HALF_OPEN
        self._success_count = 0
        logger.info("Circuit breaker half-open, testing recovery", breaker=self.name)

    def record_success(self) -> None:
        """Record a successful call."""
        self._failure_count = 0

        if self._state == self.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.success_threshold:
                self._state = self.CLOSED
                self._opened_at = None
                logger.info("Circuit breaker closed, store recovered", breaker=self.name)

    def record_failure(self) -> None:
        """Record a failed call."""
        self._failure_count += 1

        if self._state == self.HALF_OPEN or self._failure_count >= self.failure_threshold:
            if self._state != self.OPEN:
                logger.warning(
                    "Circuit breaker opened",
                    breaker=self.name,
                    failures=self._failure_count,
                )
            self._state = self.OPEN
            self._opened_at = self._clock()

    async def execute(
        self,
        func: Callable[..., Awaitable[T]],
        *args,
        **kwargs,
    ) -> T:
        """
        Execute an async callable through the circuit breaker.

        Raises:
            CircuitBreakerOpen: If the circuit is open
        """
        self._before_call()

        try:
            result = await func(*args, **kwargs)
        except self.tracked_exceptions:
            self.record_failure()
            raise
        self.record_success()
        return result
