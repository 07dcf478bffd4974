import os

from redis import Redis
from redis.exceptions import RedisError

from highscore_node.errors import RateLimitStoreError
from highscore_node.interfaces.rate_limit_store import RateLimitStore


class RedisRateLimitStore(RateLimitStore):

    def __init__(
        self,
        host: str = os.getenv("REDIS_HOST", "localhost"),
        port: int = int(os.getenv("REDIS_PORT", "6379")),
        db: int = 0,
        socket_timeout: float = 2.0,
        client: Redis | None = None,
    ):
        self._redis = client or Redis(
            host=host,
            port=port,
            db=db,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def get(self, key: str) -> str | None:
        try:
            return self._redis.get(key)
        except RedisError as error:
            raise RateLimitStoreError(f"could not read {key}: {error}") from error

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """
        Overwrite the entry; Redis drops it once the TTL elapses.
        """
        try:
            self._redis.set(key, value, ex=ttl_seconds)
        except RedisError as error:
            raise RateLimitStoreError(f"could not write {key}: {error}") from error
