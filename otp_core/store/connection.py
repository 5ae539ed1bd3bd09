"""
Redis Connection
================
Explicit construction of the Redis client backing ``RedisRecordStore``.
"""

import asyncio
import os
from dataclasses import dataclass
from typing import Optional

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from ..otp.exceptions import StoreUnavailable

logger = structlog.get_logger(__name__)


@dataclass
class RedisSettings:
    """Connection settings for the OTP record store."""
    addr: str = "localhost:6379"
    password: Optional[str] = None
    db: int = 0
    socket_timeout: float = 2.0

    @property
    def host(self) -> str:
        return self.addr.rsplit(":", 1)[0] if ":" in self.addr else self.addr

    @property
    def port(self) -> int:
        return int(self.addr.rsplit(":", 1)[1]) if ":" in self.addr else 6379

    @classmethod
    def from_env(cls) -> "RedisSettings":
        """Read ``REDIS_ADDR``, ``REDIS_PASSWORD`` and ``REDIS_DB``."""
        db_raw = os.environ.get("REDIS_DB", "0")
        try:
            db = int(db_raw)
        except ValueError:
            raise ValueError(f"invalid REDIS_DB value: '{db_raw}'")

        return cls(
            addr=os.environ.get("REDIS_ADDR", "localhost:6379"),
            password=os.environ.get("REDIS_PASSWORD") or None,
            db=db,
        )


async def create_redis_client(
    settings: Optional[RedisSettings] = None,
    ping_timeout: float = 5.0,
) -> Redis:
    """
    Create a Redis client and verify it is reachable.

    The caller owns the returned client and must close it.

    Args:
        settings: Connection settings (defaults to ``RedisSettings.from_env()``)
        ping_timeout: Seconds to wait for the initial PING

    Returns:
        Connected async Redis client

    Raises:
        StoreUnavailable: If Redis does not answer the PING
    """
    settings = settings or RedisSettings.from_env()
    client = Redis(
        host=settings.host,
        port=settings.port,
        password=settings.password,
        db=settings.db,
        socket_timeout=settings.socket_timeout,
    )

    try:
        await asyncio.wait_for(client.ping(), timeout=ping_timeout)
    except (RedisError, OSError, asyncio.TimeoutError) as e:
        await client.aclose()
        logger.error("Failed to connect to Redis", addr=settings.addr, error=str(e))
        raise StoreUnavailable(
            f"failed to connect to Redis at {settings.addr}", operation="connect", cause=e,
        ) from e

    logger.info("Connected to Redis", addr=settings.addr, db=settings.db)
    return client
