"""
Redis-backed revocation list for access tokens.

The identity provider revokes a token by writing ``revoked-token:{jti}``
with a TTL equal to the token's remaining lifetime. This service only reads
the list; an entry outliving its token would be harmless.
"""
from typing import AsyncGenerator, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from orgchart.core.config import get_settings


REVOKED_TOKEN_PREFIX = "revoked-token:"


class TokenRevocationStore:
    """Pooled Redis connection scoped to the revoked-token keyspace."""

    def __init__(self, prefix: str = REVOKED_TOKEN_PREFIX):
        self.prefix = prefix
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = None

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            raise RuntimeError("Redis not initialized. Call connect() first.")
        return self._redis

    async def connect(self, url: Optional[str] = None) -> None:
        settings = get_settings()
        self._pool = ConnectionPool.from_url(
            url or settings.redis_url,
            max_connections=settings.REDIS_POOL_SIZE,
            decode_responses=True,
        )
        self._redis = Redis(connection_pool=self._pool)

    async def disconnect(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
        if self._pool is not None:
            await self._pool.disconnect()
        self._redis = None
        self._pool = None

    async def ping(self) -> bool:
        """True if Redis answers; never raises."""
        try:
            return bool(await self.redis.ping())
        except (RuntimeError, RedisError, OSError):
            return False

    def key_for(self, jti: str) -> str:
        return f"{self.prefix}{jti}"

    async def is_revoked(self, jti: str) -> bool:
        """Check whether the token with this JWT ID has been revoked."""
        return await self.redis.exists(self.key_for(jti)) > 0


# Global revocation store
revocation_store = TokenRevocationStore()


async def get_revocation_store() -> AsyncGenerator[TokenRevocationStore, None]:
    """Dependency for FastAPI to get the revocation store."""
    yield revocation_store
