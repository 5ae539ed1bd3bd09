"""
OTP Service
===========
Issues, validates, inspects and revokes one-time passcodes stored in an
expiring record store.

One live record exists per (subject, purpose). Validation is attempt
throttled; the read-check-increment step runs atomically inside the store
so concurrent guesses can never exceed ``max_attempts``.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Tuple, Union
import structlog

from ..metrics import OTPMetrics
from ..retry import CircuitBreaker, CircuitBreakerOpen, RetryExhausted, retry_with_backoff
from .exceptions import GenerationFailure, InvalidInput, RecordContention, StoreError, StoreUnavailable
from .hashing import generate_otp, generate_salt, hash_key, hash_otp
from .models import (
    AttemptStatus,
    OTPConfig,
    OTPPurpose,
    OTPRecord,
    ValidationOutcome,
    ValidationResult,
)

if TYPE_CHECKING:
    from ..store.base import RecordStore

logger = structlog.get_logger(__name__)

# Re-read rounds when the record is re-issued mid-validation
MAX_STALE_ROUNDS = 3

_OUTCOMES = {
    AttemptStatus.VALID: ValidationOutcome.VALID,
    AttemptStatus.INVALID: ValidationOutcome.INVALID,
    AttemptStatus.ATTEMPTS_EXCEEDED: ValidationOutcome.ATTEMPTS_EXCEEDED,
    AttemptStatus.NOT_FOUND: ValidationOutcome.NOT_FOUND,
}


class OTPService:
    """
    OTP issuance and validation engine.

    The store handle is created and closed by the caller; the service holds
    no in-process lock over it.

    Example:
        store = RedisRecordStore(await create_redis_client())
        service = OTPService(store, OTPConfig(code_length=6))

        code = await service.generate_otp("user123", OTPPurpose.LOGIN)
        result = await service.validate_otp("user123", OTPPurpose.LOGIN, code)
        assert result.is_valid
    """

    def __init__(
        self,
        store: "RecordStore",
        config: Optional[OTPConfig] = None,
        breaker: Optional[CircuitBreaker] = None,
        metrics: Optional[OTPMetrics] = None,
    ):
        """
        Args:
            store: Expiring record store
            config: Deployment configuration (defaults to ``OTPConfig()``)
            breaker: Optional circuit breaker wrapping every store call
            metrics: Optional metrics collector
        """
        self.store = store
        self.config = config or OTPConfig()
        self.breaker = breaker
        self.metrics = metrics or OTPMetrics()

    def make_key(self, subject: str, purpose: Union[OTPPurpose, str]) -> str:
        """
        Build the store key for a (subject, purpose) pair.

        Purpose values never contain ':' and come last, so distinct pairs
        always map to distinct keys.
        """
        subject, purpose = self._check_key_args(subject, purpose)
        return f"{self.config.key_prefix}:{subject}:{purpose.value}"

    async def generate_otp(self, subject: str, purpose: Union[OTPPurpose, str]) -> str:
        """
        Issue a fresh code, replacing any live record for the pair.

        Args:
            subject: Opaque user identifier
            purpose: Use-case tag

        Returns:
            Plaintext code, for out-of-band delivery by the caller

        Raises:
            InvalidInput: Empty subject or unknown purpose
            GenerationFailure: Secure random source unavailable
            StoreUnavailable: Store unreachable or timed out
        """
        subject, purpose = self._check_key_args(subject, purpose)
        key = self.make_key(subject, purpose)

        try:
            code = generate_otp(self.config.code_length, self.config.alphabet)
            salt = generate_salt()
        except GenerationFailure as e:
            logger.error("OTP generation failed", purpose=purpose.value, error=str(e))
            raise

        record = OTPRecord(
            hashed_code=hash_otp(code, salt),
            salt=salt,
            attempts=0,
            created_at=datetime.now(timezone.utc),
        )

        await self._store_call("put", self.store.put, key, record, self.config.expiry_seconds)

        self.metrics.record_issued(purpose.value)
        logger.info(
            "OTP issued",
            key_hash=hash_key(key),
            purpose=purpose.value,
            expires_in=self.config.expiry_seconds,
        )
        return code

    async def validate_otp(
        self,
        subject: str,
        purpose: Union[OTPPurpose, str],
        candidate: str,
    ) -> ValidationResult:
        """
        Check a candidate code against the live record.

        A match consumes the record. A mismatch counts one attempt without
        extending the expiry. Once the attempts ceiling is reached the
        record is purged on the next call, even if that call is correct.

        Raises:
            InvalidInput: Empty subject, unknown purpose or empty candidate
            StoreUnavailable: Store unreachable or timed out
            RecordContention: Record re-issued on every re-read (not an outage)
            RecordCorrupted: Stored record cannot be decoded
        """
        subject, purpose = self._check_key_args(subject, purpose)
        if not isinstance(candidate, str) or not candidate:
            raise InvalidInput("candidate code is required")

        if len(candidate) != self.config.code_length:
            return self._finish(purpose, None, ValidationOutcome.INVALID_FORMAT, 0)

        key = self.make_key(subject, purpose)

        for _ in range(MAX_STALE_ROUNDS):
            record = await self._store_call("get", self.store.get, key, idempotent=True)
            if record is None:
                return self._finish(purpose, key, ValidationOutcome.NOT_FOUND, 0)

            digest = hash_otp(candidate, record.salt)

            # Not retried: a repeated write could double count an attempt
            attempt = await self._store_call(
                "check_attempt",
                self.store.check_attempt,
                key,
                record.salt,
                digest,
                self.config.max_attempts,
            )

            if attempt.status == AttemptStatus.STALE:
                logger.info("OTP re-issued during validation, re-reading", key_hash=hash_key(key))
                continue

            return self._finish(purpose, key, _OUTCOMES[attempt.status], attempt.attempts)

        logger.warning("OTP validation gave up after repeated re-issues", key_hash=hash_key(key))
        raise RecordContention(
            f"record re-issued concurrently {MAX_STALE_ROUNDS} times during validation; "
            "store is healthy, retry the validation",
            operation="check_attempt",
        )

    async def get_otp_info(
        self,
        subject: str,
        purpose: Union[OTPPurpose, str],
    ) -> Optional[OTPRecord]:
        """
        Read-only snapshot of the live record, for diagnostics.

        Returns:
            The record with ``expires_in`` filled in, or None if there is none
        """
        subject, purpose = self._check_key_args(subject, purpose)
        key = self.make_key(subject, purpose)

        record = await self._store_call("get", self.store.get, key, idempotent=True)
        if record is None:
            return None

        ttl = await self._store_call("remaining_ttl", self.store.remaining_ttl, key, idempotent=True)
        if ttl is None:
            # Expired between the two reads
            return None

        record.expires_in = ttl
        return record

    async def delete_otp(self, subject: str, purpose: Union[OTPPurpose, str]) -> None:
        """Revoke the live code for the pair, if any. Idempotent."""
        subject, purpose = self._check_key_args(subject, purpose)
        key = self.make_key(subject, purpose)

        await self._store_call("delete", self.store.delete, key, idempotent=True)
        logger.info("OTP revoked", key_hash=hash_key(key), purpose=purpose.value)

    # Internals

    @staticmethod
    def _check_key_args(subject: str, purpose: Union[OTPPurpose, str]) -> Tuple[str, OTPPurpose]:
        if not isinstance(subject, str) or not subject.strip():
            raise InvalidInput("subject is required")
        if not purpose:
            raise InvalidInput("purpose is required")
        try:
            return subject, OTPPurpose(purpose)
        except ValueError:
            raise InvalidInput(f"unknown purpose '{purpose}'")

    def _finish(
        self,
        purpose: OTPPurpose,
        key: Optional[str],
        outcome: ValidationOutcome,
        attempts: int,
    ) -> ValidationResult:
        """Log, count and wrap a validation outcome."""
        result = ValidationResult(
            outcome=outcome,
            attempts=attempts,
            max_attempts=self.config.max_attempts,
        )
        self.metrics.record_outcome(purpose.value, outcome.value)

        fields = {
            "key_hash": hash_key(key) if key else None,
            "purpose": purpose.value,
            "attempts": attempts,
        }
        if outcome == ValidationOutcome.VALID:
            logger.info("OTP verified successfully", **fields)
        elif outcome == ValidationOutcome.INVALID:
            logger.warning("Invalid OTP attempt", remaining=result.attempts_remaining, **fields)
        elif outcome == ValidationOutcome.ATTEMPTS_EXCEEDED:
            logger.warning("OTP attempts exhausted, record purged", **fields)
        else:
            logger.info("OTP not validated", outcome=outcome.value, **fields)
        return result

    async def _store_call(
        self,
        operation: str,
        func: Callable[..., Awaitable[Any]],
        *args,
        idempotent: bool = False,
    ) -> Any:
        """
        Run one store operation under the configured timeout.

        Idempotent operations are retried ``read_retries`` extra times on
        ``StoreUnavailable``. Everything else runs exactly once.
        """
        if not idempotent or self.config.read_retries == 0:
            return await self._guarded_call(operation, func, *args)

        try:
            return await retry_with_backoff(
                self._guarded_call,
                operation,
                func,
                *args,
                max_attempts=self.config.read_retries + 1,
                base_delay=self.config.retry_base_delay,
                retryable_exceptions=(StoreUnavailable,),
                operation=operation,
            )
        except RetryExhausted as e:
            raise e.last_exception

    async def _guarded_call(
        self,
        operation: str,
        func: Callable[..., Awaitable[Any]],
        *args,
    ) -> Any:
        started = time.perf_counter()
        error = None
        try:
            if self.breaker is not None:
                return await self.breaker.execute(self._timed_call, operation, func, *args)
            return await self._timed_call(operation, func, *args)
        except CircuitBreakerOpen as e:
            error = "circuit_open"
            logger.error("Record store circuit open", operation=operation, retry_after=e.retry_after)
            raise StoreUnavailable(str(e), operation=operation, cause=e) from e
        except StoreError as e:
            error = type(e).__name__
            raise
        finally:
            self.metrics.record_store_call(operation, time.perf_counter() - started, error)

    async def _timed_call(
        self,
        operation: str,
        func: Callable[..., Awaitable[Any]],
        *args,
    ) -> Any:
        timeout = self.config.store_timeout_seconds
        try:
            return await asyncio.wait_for(func(*args), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.error("Record store call timed out", operation=operation, timeout=timeout)
            raise StoreUnavailable(
                f"timed out after {timeout}s", operation=operation, cause=e,
            ) from e
