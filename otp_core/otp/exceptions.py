"""
OTP Exceptions
==============
Error channel of the OTP service.

Business outcomes (valid, invalid, not found, attempts exceeded) are returned
as ``ValidationResult`` values. Only caller bugs, entropy failures and
infrastructure failures are raised.
"""

from typing import Optional


class OTPError(Exception):
    """Base class for all OTP service errors."""
    pass


class InvalidInput(OTPError):
    """Raised on empty or malformed arguments. Not retryable."""
    pass


class GenerationFailure(OTPError):
    """Raised when a code or salt cannot be produced."""
    pass


class EntropyUnavailable(GenerationFailure):
    """Raised when the secure random source cannot be read."""
    pass


class StoreError(OTPError):
    """Base class for record store failures."""

    def __init__(self, message: str, operation: str = "unknown", cause: Optional[Exception] = None):
        self.message = message
        self.operation = operation
        self.cause = cause
        super().__init__(f"[{operation}] {message}")


class StoreUnavailable(StoreError):
    """Raised when the store cannot be reached, times out or is circuit-broken."""
    pass


class RecordContention(StoreUnavailable):
    """
    Raised when validation keeps losing to concurrent re-issues of the same
    record. The store is healthy; the caller may simply try again.
    """
    pass


class RecordCorrupted(StoreError):
    """Raised when a stored record cannot be decoded."""
    pass
