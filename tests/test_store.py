"""
Unit Tests for Record Stores
============================
In-memory store semantics and the Redis adapter's script dispatch,
encoding and error mapping.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import NoScriptError, ResponseError

from otp_core.otp import OTPRecord, RecordCorrupted, StoreUnavailable, hash_otp
from otp_core.otp.models import AttemptStatus
from otp_core.store import (
    CHECK_ATTEMPT_SCRIPT,
    PUT_RECORD_SCRIPT,
    InMemoryRecordStore,
    RedisRecordStore,
    RedisSettings,
    create_redis_client,
)

KEY = "otp:user123:login"


def make_record(code="ABC123", salt="feedface", attempts=0):
    return OTPRecord(
        hashed_code=hash_otp(code, salt),
        salt=salt,
        attempts=attempts,
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


class TestInMemoryStore:
    """Tests for InMemoryRecordStore."""

    @pytest.mark.asyncio
    async def test_put_get_delete(self, store):
        """Basic round trip and idempotent delete."""
        record = make_record()

        await store.put(KEY, record, 60)
        assert await store.get(KEY) == record

        await store.delete(KEY)
        await store.delete(KEY)
        assert await store.get(KEY) is None

    @pytest.mark.asyncio
    async def test_get_returns_copy(self, store):
        """Mutating a returned snapshot does not change the stored record."""
        await store.put(KEY, make_record(), 60)

        snapshot = await store.get(KEY)
        snapshot.attempts = 99

        assert (await store.get(KEY)).attempts == 0

    @pytest.mark.asyncio
    async def test_expiry(self, store, clock):
        """Records vanish once their TTL elapses."""
        await store.put(KEY, make_record(), 60)

        clock.advance(59)
        assert await store.remaining_ttl(KEY) == pytest.approx(1)

        clock.advance(1)
        assert await store.get(KEY) is None
        assert await store.remaining_ttl(KEY) is None

    @pytest.mark.asyncio
    async def test_unread_expired_records_are_swept(self, store, clock):
        """Records that are never read again do not linger after expiry."""
        await store.put("otp:user1:login", make_record(), 60)
        await store.put("otp:user2:login", make_record(), 60)
        assert len(store) == 2

        clock.advance(60)
        assert len(store) == 0

        await store.put(KEY, make_record(), 60)

        assert len(store) == 1
        assert list(store._records) == [KEY]

    @pytest.mark.asyncio
    async def test_put_overwrites_ttl(self, store, clock):
        """Upsert resets the expiry."""
        await store.put(KEY, make_record(), 60)
        clock.advance(50)

        await store.put(KEY, make_record(salt="other"), 60)

        assert await store.remaining_ttl(KEY) == pytest.approx(60)

    @pytest.mark.asyncio
    async def test_check_attempt_transitions(self, store, clock):
        """Invalid increments in place, valid consumes."""
        record = make_record()
        await store.put(KEY, record, 60)
        clock.advance(10)

        wrong = await store.check_attempt(KEY, record.salt, hash_otp("ZZZ999", record.salt), 3)
        assert wrong.status == AttemptStatus.INVALID
        assert wrong.attempts == 1
        assert await store.remaining_ttl(KEY) == pytest.approx(50)

        right = await store.check_attempt(KEY, record.salt, record.hashed_code, 3)
        assert right.status == AttemptStatus.VALID
        assert await store.get(KEY) is None

    @pytest.mark.asyncio
    async def test_check_attempt_ceiling(self, store):
        """At the ceiling the record is purged even for a matching digest."""
        record = make_record(attempts=3)
        await store.put(KEY, record, 60)

        result = await store.check_attempt(KEY, record.salt, record.hashed_code, 3)

        assert result.status == AttemptStatus.ATTEMPTS_EXCEEDED
        assert result.attempts == 3
        assert await store.get(KEY) is None

    @pytest.mark.asyncio
    async def test_check_attempt_stale_writes_nothing(self, store):
        """A salt mismatch means the record was re-issued; leave it alone."""
        record = make_record()
        await store.put(KEY, record, 60)

        result = await store.check_attempt(KEY, "old-salt", "whatever", 3)

        assert result.status == AttemptStatus.STALE
        assert (await store.get(KEY)).attempts == 0

    @pytest.mark.asyncio
    async def test_check_attempt_missing(self, store):
        """Missing record reports NOT_FOUND."""
        result = await store.check_attempt(KEY, "salt", "digest", 3)

        assert result.status == AttemptStatus.NOT_FOUND


@pytest.fixture
def redis_client():
    client = AsyncMock()
    client.script_load.side_effect = lambda script: (
        "sha-put" if script == PUT_RECORD_SCRIPT else "sha-check"
    )
    return client


class TestRedisStore:
    """Tests for RedisRecordStore against a mocked client."""

    @pytest.mark.asyncio
    async def test_put_runs_script(self, redis_client):
        """Put loads the script once and runs it with the encoded record."""
        store = RedisRecordStore(redis_client)
        record = make_record()

        await store.put(KEY, record, 600)
        await store.put(KEY, record, 600)

        redis_client.script_load.assert_awaited_once_with(PUT_RECORD_SCRIPT)
        redis_client.evalsha.assert_awaited_with(
            "sha-put",
            1,
            KEY,
            record.hashed_code,
            record.salt,
            0,
            f"{record.created_at.timestamp():.6f}",
            600000,
        )

    @pytest.mark.asyncio
    async def test_get_decodes_bytes(self, redis_client):
        """Hash replies in bytes decode into an OTPRecord."""
        redis_client.hgetall.return_value = {
            b"hashed_code": b"abc",
            b"salt": b"feedface",
            b"attempts": b"2",
            b"created_at": b"1767225600.000000",
        }
        store = RedisRecordStore(redis_client)

        record = await store.get(KEY)

        assert record.hashed_code == "abc"
        assert record.salt == "feedface"
        assert record.attempts == 2
        assert record.created_at == datetime(2026, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_get_missing(self, redis_client):
        """Empty hash means no record."""
        redis_client.hgetall.return_value = {}

        assert await RedisRecordStore(redis_client).get(KEY) is None

    @pytest.mark.asyncio
    async def test_get_corrupt(self, redis_client):
        """Undecodable hash raises RecordCorrupted."""
        redis_client.hgetall.return_value = {"hashed_code": "abc", "attempts": "x"}

        with pytest.raises(RecordCorrupted):
            await RedisRecordStore(redis_client).get(KEY)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation,args", [
        ("get", (KEY,)),
        ("delete", (KEY,)),
        ("remaining_ttl", (KEY,)),
        ("put", (KEY, make_record(), 60)),
        ("check_attempt", (KEY, "salt", "digest", 3)),
    ])
    async def test_errors_map_to_unavailable(self, redis_client, operation, args):
        """Redis errors surface as StoreUnavailable, never as a missing record."""
        error = RedisConnectionError("connection refused")
        redis_client.hgetall.side_effect = error
        redis_client.delete.side_effect = error
        redis_client.pttl.side_effect = error
        redis_client.evalsha.side_effect = error
        store = RedisRecordStore(redis_client)

        with pytest.raises(StoreUnavailable) as exc_info:
            await getattr(store, operation)(*args)

        assert exc_info.value.operation == operation

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply,status,attempts", [
        ([b"valid", 1], AttemptStatus.VALID, 1),
        ([b"invalid", 2], AttemptStatus.INVALID, 2),
        ([b"attempts_exceeded", 3], AttemptStatus.ATTEMPTS_EXCEEDED, 3),
        ([b"not_found", 0], AttemptStatus.NOT_FOUND, 0),
        (["stale", 1], AttemptStatus.STALE, 1),
    ])
    async def test_check_attempt_reply(self, redis_client, reply, status, attempts):
        """Script replies map onto AttemptResult."""
        redis_client.evalsha.return_value = reply
        store = RedisRecordStore(redis_client)

        result = await store.check_attempt(KEY, "salt", "digest", 3)

        assert result.status == status
        assert result.attempts == attempts
        redis_client.evalsha.assert_awaited_once_with("sha-check", 1, KEY, "salt", "digest", 3)

    @pytest.mark.asyncio
    async def test_check_attempt_unknown_reply(self, redis_client):
        """Garbage script reply raises RecordCorrupted."""
        redis_client.evalsha.return_value = [b"maybe", 0]

        with pytest.raises(RecordCorrupted):
            await RedisRecordStore(redis_client).check_attempt(KEY, "salt", "digest", 3)

    @pytest.mark.asyncio
    async def test_reloads_flushed_script(self, redis_client):
        """NOSCRIPT triggers one reload and rerun."""
        redis_client.evalsha.side_effect = [NoScriptError("NOSCRIPT"), [b"valid", 0]]
        store = RedisRecordStore(redis_client)

        result = await store.check_attempt(KEY, "salt", "digest", 3)

        assert result.status == AttemptStatus.VALID
        assert redis_client.script_load.await_count == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("pttl,expected", [(-2, None), (1500, 1.5)])
    async def test_remaining_ttl(self, redis_client, pttl, expected):
        """PTTL maps to seconds, or None for a missing key."""
        redis_client.pttl.return_value = pttl

        assert await RedisRecordStore(redis_client).remaining_ttl(KEY) == expected

    @pytest.mark.asyncio
    async def test_remaining_ttl_without_expiry(self, redis_client):
        """A key with no TTL was not written by this store."""
        redis_client.pttl.return_value = -1

        with pytest.raises(RecordCorrupted) as exc_info:
            await RedisRecordStore(redis_client).remaining_ttl(KEY)

        assert exc_info.value.operation == "remaining_ttl"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation,args", [
        ("get", (KEY,)),
        ("check_attempt", (KEY, "salt", "digest", 3)),
    ])
    async def test_wrong_type_is_corruption(self, redis_client, operation, args):
        """A key holding a non-hash value is a bad record, not an outage."""
        error = ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
        redis_client.hgetall.side_effect = error
        redis_client.evalsha.side_effect = error
        store = RedisRecordStore(redis_client)

        with pytest.raises(RecordCorrupted) as exc_info:
            await getattr(store, operation)(*args)

        assert not isinstance(exc_info.value, StoreUnavailable)
        assert exc_info.value.operation == operation

    @pytest.mark.asyncio
    async def test_ping_and_close(self, redis_client):
        """Ping reports reachability; close releases the client."""
        redis_client.ping.side_effect = RedisConnectionError("down")
        store = RedisRecordStore(redis_client)

        assert await store.ping() is False

        await store.close()
        redis_client.aclose.assert_awaited_once()

    def test_scripts_keep_ttl(self):
        """Attempts are bumped in place so the key TTL is preserved."""
        assert "HINCRBY" in CHECK_ATTEMPT_SCRIPT
        assert "EXPIRE" not in CHECK_ATTEMPT_SCRIPT
        assert "PEXPIRE" in PUT_RECORD_SCRIPT


class TestRedisConnection:
    """Tests for explicit Redis client construction."""

    def test_settings_from_env(self, monkeypatch):
        """Should read REDIS_* variables."""
        monkeypatch.setenv("REDIS_ADDR", "cache.internal:6380")
        monkeypatch.setenv("REDIS_PASSWORD", "s3cret")
        monkeypatch.setenv("REDIS_DB", "4")

        settings = RedisSettings.from_env()

        assert settings.host == "cache.internal"
        assert settings.port == 6380
        assert settings.password == "s3cret"
        assert settings.db == 4

    def test_settings_defaults(self, monkeypatch):
        """Defaults point at a local Redis."""
        for name in ("REDIS_ADDR", "REDIS_PASSWORD", "REDIS_DB"):
            monkeypatch.delenv(name, raising=False)

        settings = RedisSettings.from_env()

        assert (settings.host, settings.port, settings.db) == ("localhost", 6379, 0)
        assert settings.password is None

    def test_settings_bad_db(self, monkeypatch):
        """Non-numeric REDIS_DB is rejected."""
        monkeypatch.setenv("REDIS_DB", "zero")

        with pytest.raises(ValueError):
            RedisSettings.from_env()

    @pytest.mark.asyncio
    async def test_create_client_pings(self):
        """Client is returned once PING succeeds."""
        client = MagicMock()
        client.ping = AsyncMock(return_value=True)

        with patch("otp_core.store.connection.Redis", return_value=client) as redis_cls:
            result = await create_redis_client(RedisSettings(addr="redis:6379", db=2))

        assert result is client
        redis_cls.assert_called_once_with(
            host="redis", port=6379, password=None, db=2, socket_timeout=2.0,
        )

    @pytest.mark.asyncio
    async def test_create_client_unreachable(self):
        """Failed PING closes the client and raises StoreUnavailable."""
        client = MagicMock()
        client.ping = AsyncMock(side_effect=RedisConnectionError("refused"))
        client.aclose = AsyncMock()

        with patch("otp_core.store.connection.Redis", return_value=client):
            with pytest.raises(StoreUnavailable):
                await create_redis_client(RedisSettings())

        client.aclose.assert_awaited_once()
