"""
OTP Record Stores
=================
Expiring record store contract with in-memory and Redis backends.
"""

from .base import RecordStore
from .in_memory import InMemoryRecordStore
from .redis_store import RedisRecordStore, PUT_RECORD_SCRIPT, CHECK_ATTEMPT_SCRIPT
from .connection import RedisSettings, create_redis_client

__all__ = [
    # Contract
    "RecordStore",
    # Backends
    "InMemoryRecordStore",
    "RedisRecordStore",
    # Connection
    "RedisSettings",
    "create_redis_client",
    # Scripts
    "PUT_RECORD_SCRIPT",
    "CHECK_ATTEMPT_SCRIPT",
]
