"""
Retry and Circuit Breaking
==========================
Bounded retries and fail-fast protection for record store calls.
"""

from .exceptions import RetryExhausted, CircuitBreakerOpen
from .backoff import retry_with_backoff
from .circuit_breaker import CircuitBreaker

__all__ = [
    # Exceptions
    "RetryExhausted",
    "CircuitBreakerOpen",
    # Backoff
    "retry_with_backoff",
    # Circuit Breaker
    "CircuitBreaker",
]
