"""
OTP Models
==========
Data models, enums and configuration for OTP issuance and validation.
"""

import os
from datetime import datetime
from typing import Optional
from dataclasses import dataclass
from enum import Enum

from .hashing import ALPHANUMERIC_ALPHABET, NUMERIC_ALPHABET, UNAMBIGUOUS_ALPHABET


class OTPPurpose(str, Enum):
    """Use-case tag an OTP is issued for."""
    LOGIN = "login"
    REGISTER = "register"
    RESET_PASSWORD = "reset_password"
    VERIFY_EMAIL = "verify_email"
    VERIFY_PHONE = "verify_phone"


class ValidationOutcome(str, Enum):
    """Business outcome of a validation call."""
    VALID = "valid"
    INVALID = "invalid"
    INVALID_FORMAT = "invalid_format"
    NOT_FOUND = "not_found"
    ATTEMPTS_EXCEEDED = "attempts_exceeded"


ALPHABETS = {
    "alphanumeric": ALPHANUMERIC_ALPHABET,
    "numeric": NUMERIC_ALPHABET,
    "unambiguous": UNAMBIGUOUS_ALPHABET,
}


@dataclass
class OTPConfig:
    """Deployment-wide configuration for the OTP service."""
    code_length: int = 6
    expiry_seconds: int = 600  # 10 minutes
    max_attempts: int = 3
    alphabet: str = ALPHANUMERIC_ALPHABET
    store_timeout_seconds: float = 2.0
    read_retries: int = 2  # Extra tries for idempotent reads only
    retry_base_delay: float = 0.05
    key_prefix: str = "otp"

    def __post_init__(self):
        if self.code_length <= 0:
            raise ValueError("code_length must be positive")
        if self.expiry_seconds <= 0:
            raise ValueError("expiry_seconds must be positive")
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if self.store_timeout_seconds <= 0:
            raise ValueError("store_timeout_seconds must be positive")
        if self.read_retries < 0:
            raise ValueError("read_retries must not be negative")
        if len(self.alphabet) < 2 or len(set(self.alphabet)) != len(self.alphabet):
            raise ValueError("alphabet must hold at least two distinct characters")
        if not self.key_prefix:
            raise ValueError("key_prefix must not be empty")

    @classmethod
    def from_env(cls) -> "OTPConfig":
        """Build a config from ``OTP_*`` environment variables."""
        alphabet_name = os.environ.get("OTP_ALPHABET", "alphanumeric").lower()
        if alphabet_name not in ALPHABETS:
            raise ValueError(f"unknown OTP_ALPHABET '{alphabet_name}'")

        return cls(
            code_length=int(os.environ.get("OTP_CODE_LENGTH", "6")),
            expiry_seconds=int(os.environ.get("OTP_EXPIRY_SECONDS", "600")),
            max_attempts=int(os.environ.get("OTP_MAX_ATTEMPTS", "3")),
            alphabet=ALPHABETS[alphabet_name],
            store_timeout_seconds=float(os.environ.get("OTP_STORE_TIMEOUT_SECONDS", "2.0")),
        )


@dataclass
class OTPRecord:
    """
    Stored state of one issued OTP.

    Never carries the plaintext code. ``expires_in`` is filled in only by
    diagnostic reads and is not part of the persisted value.
    """
    hashed_code: str
    salt: str
    attempts: int
    created_at: datetime
    expires_in: Optional[float] = None


@dataclass
class ValidationResult:
    """Outcome of ``OTPService.validate_otp``."""
    outcome: ValidationOutcome
    attempts: int = 0
    max_attempts: int = 0

    @property
    def is_valid(self) -> bool:
        return self.outcome == ValidationOutcome.VALID

    @property
    def attempts_remaining(self) -> Optional[int]:
        """Guesses left on the live record; None once no live record remains."""
        if self.outcome != ValidationOutcome.INVALID:
            return None
        return max(self.max_attempts - self.attempts, 0)


class AttemptStatus(str, Enum):
    """Result of an atomic validation attempt against a stored record."""
    VALID = "valid"
    INVALID = "invalid"
    ATTEMPTS_EXCEEDED = "attempts_exceeded"
    NOT_FOUND = "not_found"
    STALE = "stale"  # Record was re-issued; nothing written


@dataclass
class AttemptResult:
    """Status plus the attempts counter observed (or written) by the store."""
    status: AttemptStatus
    attempts: int = 0
