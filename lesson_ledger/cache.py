from __future__ import annotations

import itertools
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Iterator

from lesson_ledger.config import settings
from lesson_ledger.metrics import record_cache_event


logger = logging.getLogger(__name__)


def cache_key(prefix: str, identifier: str | int | None = None) -> str:
    if identifier is None or identifier == '':
        return prefix
    return f"{prefix}:{identifier}"


def _normalize_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ('1', 'true', 'yes', 'y', 'on')


class CacheBackend:
    def get(self, key: str) -> Any | None:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl: int) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def delete_prefix(self, prefix: str) -> None:
        raise NotImplementedError


class MemoryCacheBackend(CacheBackend):
    """Process-local store; expiry is measured on the monotonic clock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._store: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        with self._lock:
            item = self._store.get(key)
            if not item:
                return None
            expires_at, value = item
            if time.monotonic() >= expires_at:
                self._store.pop(key, None)
                return None
            return value

    def set(self, key: str, value: Any, ttl: int) -> None:
        expires_at = time.monotonic() + max(1, int(ttl))
        with self._lock:
            self._store[key] = (expires_at, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def delete_prefix(self, prefix: str) -> None:
        with self._lock:
            for key in [key for key in self._store if key.startswith(prefix)]:
                self._store.pop(key, None)


class RedisCacheBackend(CacheBackend):
    def __init__(self, redis_url: str) -> None:
        import redis  # type: ignore

        self._client = redis.Redis.from_url(redis_url, decode_responses=True)

    def get(self, key: str) -> Any | None:
        raw = self._client.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw

    def set(self, key: str, value: Any, ttl: int) -> None:
        self._client.setex(key, max(1, int(ttl)), json.dumps(value, default=str))

    def delete(self, key: str) -> None:
        self._client.delete(key)

    def delete_prefix(self, prefix: str) -> None:
        cursor = 0
        pattern = f"{prefix}*"
        while True:
            cursor, keys = self._client.scan(cursor=cursor, match=pattern, count=200)
            if keys:
                self._client.delete(*keys)
            if cursor == 0:
                break


@dataclass
class CacheManager:
    """Front for the configured backend.

    Writers that compute a value from the database capture ``generation(scope)``
    before reading and pass it back to ``set_cached``. ``bump_generation`` runs
    before the matching keys are deleted, so a value computed from rows read
    before the bump is never stored after it.
    """

    backend: CacheBackend
    _generations: dict[str, int] = field(default_factory=dict, repr=False)
    _floor: int = field(default=0, repr=False)
    _ticks: Iterator[int] = field(default_factory=lambda: itertools.count(1), repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def bypass_cache(self, flag: Any = None) -> bool:
        return _normalize_bool(flag)

    def generation(self, scope: str) -> int:
        with self._lock:
            return max(self._floor, self._generations.get(scope, 0))

    def bump_generation(self, scope: str) -> int:
        with self._lock:
            tick = next(self._ticks)
            self._generations[scope] = tick
            return tick

    def bump_all_generations(self) -> None:
        with self._lock:
            self._floor = next(self._ticks)
            self._generations.clear()

    def get_cached(self, key: str) -> Any | None:
        value = self.backend.get(key)
        if value is not None:
            record_cache_event('cache_hit')
            logger.debug('cache hit: %s', key)
        else:
            record_cache_event('cache_miss')
            logger.debug('cache miss: %s', key)
        return value

    def set_cached(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
        *,
        scope: str | None = None,
        generation: int | None = None,
    ) -> bool:
        """Store ``value``; returns False when ``scope`` moved past ``generation`` since it was captured."""
        ttl_value = ttl if ttl is not None else settings.default_cache_ttl
        if scope is None or generation is None:
            self.backend.set(key, value, ttl_value)
            logger.debug('cache set: %s ttl=%s', key, ttl_value)
            return True
        with self._lock:
            current = max(self._floor, self._generations.get(scope, 0))
            if current != generation:
                record_cache_event('cache_stale_skip')
                logger.info('cache_stale_skip key=%s scope=%s read_generation=%s current_generation=%s', key, scope, generation, current)
                return False
            self.backend.set(key, value, ttl_value)
        logger.debug('cache set: %s ttl=%s scope=%s generation=%s', key, ttl_value, scope, generation)
        return True

    def invalidate(self, key: str) -> None:
        self.backend.delete(key)
        record_cache_event('cache_invalidate')
        logger.debug('cache invalidate: %s', key)

    def invalidate_prefix(self, prefix: str) -> None:
        self.backend.delete_prefix(prefix)
        record_cache_event('cache_invalidate')
        logger.debug('cache invalidate prefix: %s', prefix)


def _build_cache_backend() -> CacheBackend:
    if settings.cache_backend == 'redis' and settings.cache_redis_url:
        try:
            return RedisCacheBackend(settings.cache_redis_url)
        except Exception:
            logger.exception('redis_cache_init_failed_falling_back_to_memory')
    return MemoryCacheBackend()


cache = CacheManager(backend=_build_cache_backend())
