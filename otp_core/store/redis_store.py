"""
Redis Record Store
==================
Redis-backed OTP record store using Lua scripts for atomic operations.

Each record is a Redis hash with the fields ``hashed_code``, ``salt``,
``attempts`` and ``created_at`` (unix seconds). Expiry is the key TTL.
"""

from datetime import datetime, timezone
from typing import Dict, Optional, Union

import structlog
from redis.exceptions import NoScriptError, RedisError, ResponseError

from ..otp.exceptions import RecordCorrupted, StoreUnavailable
from ..otp.hashing import hash_key
from ..otp.models import AttemptResult, AttemptStatus, OTPRecord
from .base import RecordStore

logger = structlog.get_logger(__name__)

# Replace the record and its TTL in one step
PUT_RECORD_SCRIPT = """
local key = KEYS[1]
redis.call('DEL', key)
redis.call('HSET', key,
    'hashed_code', ARGV[1],
    'salt', ARGV[2],
    'attempts', ARGV[3],
    'created_at', ARGV[4])
redis.call('PEXPIRE', key, ARGV[5])
return 1
"""

# Read-check-increment-or-delete as one indivisible step.
# HINCRBY leaves the key TTL untouched.
CHECK_ATTEMPT_SCRIPT = """
local key = KEYS[1]
local salt = ARGV[1]
local digest = ARGV[2]
local max_attempts = tonumber(ARGV[3])

local record = redis.call('HMGET', key, 'hashed_code', 'salt', 'attempts')
local stored_hash = record[1]
if not stored_hash then
    return {'not_found', 0}
end

local attempts = tonumber(record[3]) or 0

if record[2] ~= salt then
    return {'stale', attempts}
end

if attempts >= max_attempts then
    redis.call('DEL', key)
    return {'attempts_exceeded', attempts}
end

if stored_hash == digest then
    redis.call('DEL', key)
    return {'valid', attempts}
end

attempts = redis.call('HINCRBY', key, 'attempts', 1)
return {'invalid', attempts}
"""


def _text(value: Union[bytes, str]) -> str:
    return value.decode('utf-8') if isinstance(value, bytes) else value


def _is_wrong_type(error: RedisError) -> bool:
    """True if Redis rejected the command because the key holds another type."""
    return isinstance(error, ResponseError) and "WRONGTYPE" in str(error)


class RedisRecordStore(RecordStore):
    """
    Redis-backed OTP record store.

    Uses Lua scripts for atomic operations. The Redis client is created and
    closed by the caller (see ``create_redis_client``).
    """

    name = "redis"

    def __init__(self, redis_client):
        """
        Args:
            redis_client: Async Redis client (``redis.asyncio.Redis``)
        """
        self.redis = redis_client
        self._script_shas: Dict[str, str] = {}

    async def _ensure_script(self, script: str) -> str:
        """Load Lua script into Redis if needed."""
        sha = self._script_shas.get(script)
        if sha is None:
            sha = _text(await self.redis.script_load(script))
            self._script_shas[script] = sha
        return sha

    async def _run_script(self, script: str, key: str, *args):
        sha = await self._ensure_script(script)
        try:
            return await self.redis.evalsha(sha, 1, key, *args)
        except NoScriptError:
            # Script cache flushed (restart or SCRIPT FLUSH)
            self._script_shas.pop(script, None)
            sha = await self._ensure_script(script)
            return await self.redis.evalsha(sha, 1, key, *args)

    async def put(self, key: str, record: OTPRecord, ttl_seconds: float) -> None:
        ttl_ms = max(int(ttl_seconds * 1000), 1)
        try:
            await self._run_script(
                PUT_RECORD_SCRIPT,
                key,
                record.hashed_code,
                record.salt,
                record.attempts,
                f"{record.created_at.timestamp():.6f}",
                ttl_ms,
            )
        except RedisError as e:
            logger.error("Record store write failed", key_hash=hash_key(key), error=str(e))
            raise StoreUnavailable(str(e), operation="put", cause=e) from e

    async def get(self, key: str) -> Optional[OTPRecord]:
        try:
            raw = await self.redis.hgetall(key)
        except RedisError as e:
            if _is_wrong_type(e):
                logger.error("Stored OTP record has the wrong type", key_hash=hash_key(key))
                raise RecordCorrupted(str(e), operation="get", cause=e) from e
            logger.error("Record store read failed", key_hash=hash_key(key), error=str(e))
            raise StoreUnavailable(str(e), operation="get", cause=e) from e

        if not raw:
            return None
        return self._decode(key, raw)

    async def delete(self, key: str) -> None:
        try:
            await self.redis.delete(key)
        except RedisError as e:
            logger.error("Record store delete failed", key_hash=hash_key(key), error=str(e))
            raise StoreUnavailable(str(e), operation="delete", cause=e) from e

    async def remaining_ttl(self, key: str) -> Optional[float]:
        try:
            ttl_ms = await self.redis.pttl(key)
        except RedisError as e:
            logger.error("Record store TTL query failed", key_hash=hash_key(key), error=str(e))
            raise StoreUnavailable(str(e), operation="remaining_ttl", cause=e) from e

        # -2: no such key, -1: key without expiry
        if ttl_ms == -2:
            return None
        if ttl_ms == -1:
            # Records are always written with PEXPIRE
            logger.error("Stored OTP record has no expiry", key_hash=hash_key(key))
            raise RecordCorrupted("record has no expiry", operation="remaining_ttl")
        return ttl_ms / 1000.0

    async def check_attempt(
        self,
        key: str,
        salt: str,
        digest: str,
        max_attempts: int,
    ) -> AttemptResult:
        try:
            result = await self._run_script(
                CHECK_ATTEMPT_SCRIPT,
                key,
                salt,
                digest,
                max_attempts,
            )
        except RedisError as e:
            if _is_wrong_type(e):
                logger.error("Stored OTP record has the wrong type", key_hash=hash_key(key))
                raise RecordCorrupted(str(e), operation="check_attempt", cause=e) from e
            logger.error("Record store attempt check failed", key_hash=hash_key(key), error=str(e))
            raise StoreUnavailable(str(e), operation="check_attempt", cause=e) from e

        try:
            status, attempts = result
            return AttemptResult(AttemptStatus(_text(status)), int(attempts))
        except (TypeError, ValueError) as e:
            raise RecordCorrupted(
                f"Unexpected script reply {result!r}", operation="check_attempt", cause=e,
            ) from e

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError as e:
            logger.warning("Record store ping failed", error=str(e))
            return False

    async def close(self) -> None:
        await self.redis.aclose()

    def _decode(self, key: str, raw: Dict) -> OTPRecord:
        """Decode a Redis hash into an OTPRecord. Handles bytes or str replies."""
        fields = {_text(k): _text(v) for k, v in raw.items()}
        try:
            return OTPRecord(
                hashed_code=fields["hashed_code"],
                salt=fields["salt"],
                attempts=int(fields["attempts"]),
                created_at=datetime.fromtimestamp(float(fields["created_at"]), tz=timezone.utc),
            )
        except (KeyError, ValueError) as e:
            logger.error("Stored OTP record is corrupt", key_hash=hash_key(key), error=str(e))
            raise RecordCorrupted(f"Cannot decode record: {e}", operation="get", cause=e) from e
