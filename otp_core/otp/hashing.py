"""
OTP Hashing Utilities
=====================
Code generation and salted hashing for OTP codes.
"""

import secrets
import hashlib
import hmac

from .exceptions import EntropyUnavailable

ALPHANUMERIC_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
NUMERIC_ALPHABET = "0123456789"
# Excludes confusing characters (0, O, 1, I, L)
UNAMBIGUOUS_ALPHABET = "23456789ABCDEFGHJKMNPQRSTUVWXYZ"

SALT_BYTES = 16


def generate_otp(length: int = 6, alphabet: str = ALPHANUMERIC_ALPHABET) -> str:
    """
    Generate a secure random OTP.

    Every character is drawn independently and uniformly from ``alphabet``
    using the operating system CSPRNG.

    Args:
        length: Number of characters
        alphabet: Characters to draw from

    Returns:
        OTP string

    Raises:
        EntropyUnavailable: If the system random source cannot be read
    """
    if length <= 0:
        raise ValueError("length must be positive")
    if not alphabet:
        raise ValueError("alphabet must not be empty")

    try:
        return ''.join(secrets.choice(alphabet) for _ in range(length))
    except (OSError, NotImplementedError) as e:
        raise EntropyUnavailable(f"Secure random source unavailable: {e}") from e


def generate_salt() -> str:
    """Generate a random hex salt for OTP hashing."""
    try:
        return secrets.token_hex(SALT_BYTES)
    except (OSError, NotImplementedError) as e:
        raise EntropyUnavailable(f"Secure random source unavailable: {e}") from e


def hash_otp(otp: str, salt: str) -> str:
    """
    Hash an OTP with salt using SHA-256.

    Args:
        otp: Plain OTP
        salt: Random salt

    Returns:
        Hex digest
    """
    return hashlib.sha256(f"{salt}:{otp}".encode()).hexdigest()


def verify_otp_hash(otp: str, salt: str, stored_hash: str) -> bool:
    """
    Verify an OTP against its hash.

    Uses constant-time comparison to prevent timing attacks.
    """
    computed_hash = hash_otp(otp, salt)
    return hmac.compare_digest(computed_hash, stored_hash)


def hash_key(key: str) -> str:
    """Short fingerprint of a store key, safe to put in logs."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]
