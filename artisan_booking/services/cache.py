import json
import logging
import time
from typing import Any, Protocol

import redis

from artisan_booking.core.config import settings

logger = logging.getLogger(__name__)


class Cache(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl: int) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryCache:
    """key -> (value, expires_at). For tests and single-process deployments."""

    def __init__(self, clock=time.monotonic):
        self._data: dict[str, tuple[Any, float]] = {}
        self._clock = clock

    def get(self, key: str) -> Any | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if self._clock() >= expires_at:
            self._data.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any, ttl: int) -> None:
        self._data[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class RedisCache:
    """JSON values in Redis. Connection problems are logged and treated as a miss."""

    def __init__(self, client: "redis.Redis", prefix: str = "artisan_booking:"):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def get(self, key: str) -> Any | None:
        try:
            raw = self.client.get(self.prefix + key)
        except redis.RedisError as e:
            logger.warning("cache get %s failed: %s", key, e)
            return None
        return json.loads(raw) if raw else None

    def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            self.client.setex(self.prefix + key, ttl, json.dumps(value, default=str))
        except redis.RedisError as e:
            logger.warning("cache set %s failed: %s", key, e)

    def delete(self, key: str) -> None:
        try:
            self.client.delete(self.prefix + key)
        except redis.RedisError as e:
            logger.warning("cache delete %s failed: %s", key, e)


def default_cache() -> Cache:
    if settings.REDIS_URL:
        return RedisCache.from_url(settings.REDIS_URL)
    return MemoryCache()
