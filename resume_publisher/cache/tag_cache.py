import json
from typing import Any

import redis

from resume_publisher.cache.invalidator import CacheResource, CacheSink
from resume_publisher.config.settings import Settings
from resume_publisher.logging.logger import Log


class RedisTagCache(CacheSink):
    """Versioned application cache in Redis.

    Every tag has a version counter ``tagver:<tag>``. Cached values are stored
    under a key that embeds the version, so invalidation is a single INCR and
    stale entries simply age out.
    """

    name = "redis"

    def __init__(self, client: redis.Redis, ttl_seconds: int = 3600) -> None:
        self._client = client
        self._ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisTagCache":
        client = redis.Redis.from_url(
            settings.redis_url,
            socket_timeout=2,
            socket_connect_timeout=2,
        )
        return cls(client, settings.snapshot_cache_ttl_seconds)

    def version(self, tag: str) -> int:
        raw = self._client.get(f"tagver:{tag}")
        return int(raw) if raw is not None else 0

    def get(self, tag: str) -> tuple[dict[str, Any] | None, int | None]:
        """Return ``(value, version)``. Redis errors read as a miss with no version."""
        try:
            version = self.version(tag)
            raw = self._client.get(self._value_key(tag, version))
        except redis.RedisError as exc:
            Log.warning(f"Tag cache read failed for {tag}: {exc}")
            return None, None
        if raw is None:
            return None, version
        try:
            return json.loads(raw), version
        except ValueError:
            Log.warning(f"Discarding corrupt cache entry for {tag}")
            return None, version

    def set(self, tag: str, version: int, value: dict[str, Any]) -> None:
        """Store ``value`` under the version it was built against."""
        try:
            self._client.set(
                self._value_key(tag, version),
                json.dumps(value, sort_keys=True, default=str),
                ex=self._ttl_seconds,
            )
        except redis.RedisError as exc:
            Log.warning(f"Tag cache write failed for {tag}: {exc}")

    def invalidate(self, resource: CacheResource) -> None:
        pipe = self._client.pipeline(transaction=False)
        for tag in resource.tags:
            pipe.incr(f"tagver:{tag}")
        pipe.execute()

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _value_key(tag: str, version: int) -> str:
        return f"cache:{tag}:v{version}"
