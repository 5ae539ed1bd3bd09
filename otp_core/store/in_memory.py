"""
In-Memory Record Store
======================
Single-process record store for development and testing.
"""

import asyncio
import time
from dataclasses import replace
from typing import Callable, Dict, Optional, Tuple

from ..otp.models import AttemptResult, AttemptStatus, OTPRecord
from .base import RecordStore


class InMemoryRecordStore(RecordStore):
    """
    In-memory expiring record store.

    For development and testing only.
    Use RedisRecordStore when more than one process shares records.
    """

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            clock: Monotonic seconds source, injectable for expiry tests
        """
        self._clock = clock
        self._records: Dict[str, Tuple[OTPRecord, float]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> Optional[Tuple[OTPRecord, float]]:
        """Return (record, expires_at) if present and unexpired. Caller holds the lock."""
        entry = self._records.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self._records[key]
            return None
        return entry

    def _sweep(self) -> None:
        """Drop every expired record. Caller holds the lock."""
        now = self._clock()
        for key in [k for k, (_, expires_at) in self._records.items() if expires_at <= now]:
            del self._records[key]

    async def put(self, key: str, record: OTPRecord, ttl_seconds: float) -> None:
        async with self._lock:
            self._sweep()
            stored = replace(record, expires_in=None)
            self._records[key] = (stored, self._clock() + ttl_seconds)

    async def get(self, key: str) -> Optional[OTPRecord]:
        async with self._lock:
            entry = self._live(key)
            return replace(entry[0]) if entry else None

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._records.pop(key, None)

    async def remaining_ttl(self, key: str) -> Optional[float]:
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                return None
            return entry[1] - self._clock()

    async def check_attempt(
        self,
        key: str,
        salt: str,
        digest: str,
        max_attempts: int,
    ) -> AttemptResult:
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                return AttemptResult(AttemptStatus.NOT_FOUND)

            record, expires_at = entry
            if record.salt != salt:
                return AttemptResult(AttemptStatus.STALE, record.attempts)

            if record.attempts >= max_attempts:
                del self._records[key]
                return AttemptResult(AttemptStatus.ATTEMPTS_EXCEEDED, record.attempts)

            if record.hashed_code == digest:
                del self._records[key]
                return AttemptResult(AttemptStatus.VALID, record.attempts)

            # Keep the original expiry
            updated = replace(record, attempts=record.attempts + 1)
            self._records[key] = (updated, expires_at)
            return AttemptResult(AttemptStatus.INVALID, updated.attempts)

    def __len__(self) -> int:
        """Number of live (unexpired) records."""
        now = self._clock()
        return sum(1 for _, expires_at in self._records.values() if expires_at > now)
