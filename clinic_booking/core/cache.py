import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any

import redis

from clinic_booking.core.config import settings

logger = logging.getLogger(__name__)

BOOKINGS_CACHE_PREFIX = "bookings:"


def bookings_page_key(page: int, page_size: int) -> str:
    return f"{BOOKINGS_CACHE_PREFIX}page={page}:size={page_size}"


class BookingCache(ABC):
    """Short-lived cache for booking list queries.

    Values must be JSON serialisable. Callers that mutate bookings are
    responsible for calling ``invalidate_prefix``.
    """

    @abstractmethod
    def get(self, key: str) -> Any | None:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def invalidate_prefix(self, prefix: str) -> int:
        raise NotImplementedError

    @abstractmethod
    def reset(self) -> None:
        raise NotImplementedError


class InMemoryBookingCache(BookingCache):
    def __init__(self) -> None:
        self._entries: dict[str, tuple[float, str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, payload = entry
            if expires_at <= now:
                del self._entries[key]
                return None
        return json.loads(payload)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        payload = json.dumps(value)
        with self._lock:
            self._entries[key] = (time.monotonic() + ttl_seconds, payload)

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [key for key in self._entries if key.startswith(prefix)]
            for key in keys:
                del self._entries[key]
        return len(keys)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisBookingCache(BookingCache):
    def __init__(self, redis_url: str, namespace: str = "clinic") -> None:
        self._client = redis.Redis.from_url(
            redis_url,
            socket_connect_timeout=0.2,
            socket_timeout=0.2,
            decode_responses=True,
        )
        self._namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def get(self, key: str) -> Any | None:
        payload = self._client.get(self._key(key))
        if payload is None:
            return None
        return json.loads(payload)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._client.set(self._key(key), json.dumps(value), ex=ttl_seconds)

    def invalidate_prefix(self, prefix: str) -> int:
        keys = list(self._client.scan_iter(match=f"{self._key(prefix)}*"))
        if keys:
            self._client.delete(*keys)
        return len(keys)

    def reset(self) -> None:
        keys = list(self._client.scan_iter(match=f"{self._namespace}:*"))
        if keys:
            self._client.delete(*keys)


class FallbackBookingCache(BookingCache):
    def __init__(self, primary: BookingCache, fallback: BookingCache) -> None:
        self._primary = primary
        self._fallback = fallback

    def get(self, key: str) -> Any | None:
        try:
            return self._primary.get(key)
        except redis.RedisError:
            logger.warning("cache_primary_unavailable op=get key=%s", key)
            return self._fallback.get(key)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            self._primary.set(key, value, ttl_seconds)
        except redis.RedisError:
            logger.warning("cache_primary_unavailable op=set key=%s", key)
            self._fallback.set(key, value, ttl_seconds)

    def invalidate_prefix(self, prefix: str) -> int:
        # the fallback may hold entries written while the primary was down
        removed = self._fallback.invalidate_prefix(prefix)
        try:
            removed += self._primary.invalidate_prefix(prefix)
        except redis.RedisError:
            logger.warning("cache_primary_unavailable op=invalidate prefix=%s", prefix)
        return removed

    def reset(self) -> None:
        self._fallback.reset()
        try:
            self._primary.reset()
        except redis.RedisError:
            logger.warning("cache_primary_unavailable op=reset")


def _build_booking_cache() -> BookingCache:
    backend = settings.cache_backend.strip().lower()
    memory = InMemoryBookingCache()
    if backend == "memory":
        return memory
    if backend == "redis":
        redis_cache = RedisBookingCache(redis_url=settings.cache_redis_url)
        return FallbackBookingCache(primary=redis_cache, fallback=memory)
    return memory


booking_cache: BookingCache = _build_booking_cache()
