"""
Record Store Contract
=====================
Abstract expiring key-value store the OTP service depends on.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..otp.models import AttemptResult, OTPRecord


class RecordStore(ABC):
    """
    Abstract base class for OTP record stores.

    Every operation is a potentially blocking remote call. Implementations
    raise ``StoreUnavailable`` on infrastructure failure and must never
    report such a failure as a missing record.
    """

    name: str = "base"

    @abstractmethod
    async def put(self, key: str, record: OTPRecord, ttl_seconds: float) -> None:
        """Upsert a record, replacing any value and remaining TTL."""
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[OTPRecord]:
        """Return the live record, or None if absent or expired."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a record. No error if already absent."""
        pass

    @abstractmethod
    async def remaining_ttl(self, key: str) -> Optional[float]:
        """Seconds left before expiry, or None if the record is absent."""
        pass

    @abstractmethod
    async def check_attempt(
        self,
        key: str,
        salt: str,
        digest: str,
        max_attempts: int,
    ) -> AttemptResult:
        """
        Atomically apply one validation attempt.

        As a single indivisible operation:
        - absent record -> NOT_FOUND
        - stored salt differs from ``salt`` -> STALE, nothing written
        - attempts >= max_attempts -> delete, ATTEMPTS_EXCEEDED
        - stored digest equals ``digest`` -> delete, VALID
        - otherwise increment attempts keeping the remaining TTL -> INVALID

        Args:
            key: Record key
            salt: Salt the caller computed ``digest`` with
            digest: Salted hash of the candidate code
            max_attempts: Attempts ceiling

        Returns:
            AttemptResult
        """
        pass

    async def ping(self) -> bool:
        """Check the store is reachable."""
        return True

    async def close(self) -> None:
        """Release connections held by the store."""
        pass
