"""
OTP Issuance and Validation
===========================
Salted-hash OTP storage with expiry and attempt-throttled verification.
"""

# Import order matters: models and helpers before the service
from .exceptions import (
    OTPError,
    InvalidInput,
    GenerationFailure,
    EntropyUnavailable,
    StoreError,
    StoreUnavailable,
    RecordContention,
    RecordCorrupted,
)
from .hashing import (
    generate_otp,
    generate_salt,
    hash_otp,
    verify_otp_hash,
    ALPHANUMERIC_ALPHABET,
    NUMERIC_ALPHABET,
    UNAMBIGUOUS_ALPHABET,
)
from .models import (
    OTPPurpose,
    OTPConfig,
    OTPRecord,
    ValidationOutcome,
    ValidationResult,
    AttemptStatus,
    AttemptResult,
)
from .service import OTPService

__all__ = [
    # Exceptions
    "OTPError",
    "InvalidInput",
    "GenerationFailure",
    "EntropyUnavailable",
    "StoreError",
    "StoreUnavailable",
    "RecordContention",
    "RecordCorrupted",
    # Hashing
    "generate_otp",
    "generate_salt",
    "hash_otp",
    "verify_otp_hash",
    "ALPHANUMERIC_ALPHABET",
    "NUMERIC_ALPHABET",
    "UNAMBIGUOUS_ALPHABET",
    # Models
    "OTPPurpose",
    "OTPConfig",
    "OTPRecord",
    "ValidationOutcome",
    "ValidationResult",
    "AttemptStatus",
    "AttemptResult",
    # Service
    "OTPService",
]
