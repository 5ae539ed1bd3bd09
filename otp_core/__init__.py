"""
OTP Core Library
================
One-time passcode issuance and validation over an expiring record store.
"""

__version__ = "0.1.0"

# OTP
from otp_core.otp import (
    OTPService,
    OTPConfig,
    OTPPurpose,
    OTPRecord,
    ValidationOutcome,
    ValidationResult,
    generate_otp,
    generate_salt,
    hash_otp,
    verify_otp_hash,
)

# Errors
from otp_core.otp.exceptions import (
    OTPError,
    InvalidInput,
    GenerationFailure,
    EntropyUnavailable,
    StoreError,
    StoreUnavailable,
    RecordContention,
    RecordCorrupted,
)

# Stores
from otp_core.store import (
    RecordStore,
    InMemoryRecordStore,
    RedisRecordStore,
    RedisSettings,
    create_redis_client,
)

# Retry
from otp_core.retry import (
    retry_with_backoff,
    CircuitBreaker,
    CircuitBreakerOpen,
    RetryExhausted,
)

# Metrics
from otp_core.metrics import OTPMetrics, MetricNames

# Logging
from otp_core.logging_setup import setup_logging

__all__ = [
    # OTP
    "OTPService",
    "OTPConfig",
    "OTPPurpose",
    "OTPRecord",
    "ValidationOutcome",
    "ValidationResult",
    "generate_otp",
    "generate_salt",
    "hash_otp",
    "verify_otp_hash",
    # Errors
    "OTPError",
    "InvalidInput",
    "GenerationFailure",
    "EntropyUnavailable",
    "StoreError",
    "StoreUnavailable",
    "RecordContention",
    "RecordCorrupted",
    # Stores
    "RecordStore",
    "InMemoryRecordStore",
    "RedisRecordStore",
    "RedisSettings",
    "create_redis_client",
    # Retry
    "retry_with_backoff",
    "CircuitBreaker",
    "CircuitBreakerOpen",
    "RetryExhausted",
    # Metrics
    "OTPMetrics",
    "MetricNames",
    # Logging
    "setup_logging",
]
