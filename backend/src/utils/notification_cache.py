"""
Gate cache for notification dedupe keys, daily cap counters and preference
snapshots.

Both checks the gatekeeper relies on must be atomic across concurrent
senders:
- dedupe: a single set-if-absent with expiry
- daily cap: a single increment-and-check that undoes its own increment
  when the cap is exceeded

Backends:
- RedisNotificationCache: shared across workers (SET NX PX + Lua script)
- InMemoryNotificationCache: single process, lock-protected (tests, local runs)
"""

import json
import threading
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Tuple

import redis

from backend.src.services.exceptions import NotificationCacheError
from backend.src.utils.logging_config import get_logger


logger = get_logger("services")


DEDUPE_KEY_PREFIX = "notif:dedupe:"
CAP_KEY_PREFIX = "notif:cap:"
PREFERENCE_KEY_PREFIX = "notif:pref:"

# Cap counters outlive the local day in every zone (UTC-12 .. UTC+14)
CAP_COUNTER_TTL_SECONDS = 48 * 3600

# INCR, set expiry on first increment, DECR and reject when over the cap.
# Returns 1 when the send is within the cap, 0 otherwise.
_CAP_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
  redis.call('EXPIRE', KEYS[1], tonumber(ARGV[2]))
end
if count > tonumber(ARGV[1]) then
  redis.call('DECR', KEYS[1])
  return 0
end
return 1
"""


def dedupe_cache_key(dedupe_key: str) -> str:
    return f"{DEDUPE_KEY_PREFIX}{dedupe_key}"


def cap_cache_key(user_id: int, local_date: str) -> str:
    return f"{CAP_KEY_PREFIX}{user_id}:{local_date}"


def preference_cache_key(user_id: int) -> str:
    return f"{PREFERENCE_KEY_PREFIX}{user_id}"


class NotificationCache(ABC):
    """
    Storage primitives used by the gatekeeper.

    Implementations raise NotificationCacheError when the backing store is
    unavailable; callers decide whether to fail open.
    """

    @abstractmethod
    def try_acquire_dedupe(self, dedupe_key: str, window: timedelta) -> bool:
        """
        Atomically claim a dedupe key for the given window.

        Returns:
            True if the key was absent (first send), False if it already exists
        """

    @abstractmethod
    def increment_daily_cap(self, user_id: int, local_date: str, cap: int) -> bool:
        """
        Atomically count one send against the user's local-day cap.

        Returns:
            True if the post-increment count is within cap. When False the
            increment has already been undone.
        """

    @abstractmethod
    def get_cap_count(self, user_id: int, local_date: str) -> int:
        """Current counter value for a user's local day (0 when absent)."""

    @abstractmethod
    def get_json(self, key: str) -> Optional[Any]:
        """Read a JSON value, None on miss."""

    @abstractmethod
    def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a JSON-serializable value with expiry."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key if present."""


class InMemoryNotificationCache(NotificationCache):
    """
    Process-local gate cache.

    All operations hold a single lock, which makes dedupe and cap checks
    atomic for threads within one process. Expired entries are dropped
    lazily on access.

    Args:
        clock: Monotonic seconds source (injectable for tests)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def _get_live(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    def try_acquire_dedupe(self, dedupe_key: str, window: timedelta) -> bool:
        key = dedupe_cache_key(dedupe_key)
        with self._lock:
            if self._get_live(key) is not None:
                return False
            self._entries[key] = ("1", self._clock() + window.total_seconds())
            return True

    def increment_daily_cap(self, user_id: int, local_date: str, cap: int) -> bool:
        key = cap_cache_key(user_id, local_date)
        with self._lock:
            count = self._get_live(key)
            if count is None:
                expires_at = self._clock() + CAP_COUNTER_TTL_SECONDS
                count = 0
            else:
                expires_at = self._entries[key][1]
            if count + 1 > cap:
                return False
            self._entries[key] = (count + 1, expires_at)
            return True

    def get_cap_count(self, user_id: int, local_date: str) -> int:
        with self._lock:
            return self._get_live(cap_cache_key(user_id, local_date)) or 0

    def get_json(self, key: str) -> Optional[Any]:
        with self._lock:
            raw = self._get_live(key)
        return json.loads(raw) if raw is not None else None

    def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        raw = json.dumps(value, default=str)
        with self._lock:
            self._entries[key] = (raw, self._clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()


class RedisNotificationCache(NotificationCache):
    """
    Redis-backed gate cache shared by every worker.

    Args:
        client: A redis.Redis client (decode_responses may be either value)
    """

    def __init__(self, client: redis.Redis):
        self._client = client
        self._cap_script = client.register_script(_CAP_SCRIPT)

    @classmethod
    def from_url(cls, url: str) -> "RedisNotificationCache":
        """Create a cache from a redis:// URL."""
        return cls(redis.from_url(url, decode_responses=True))

    def try_acquire_dedupe(self, dedupe_key: str, window: timedelta) -> bool:
        window_ms = max(1, int(window.total_seconds() * 1000))
        try:
            acquired = self._client.set(dedupe_cache_key(dedupe_key), "1", nx=True, px=window_ms)
        except redis.RedisError as e:
            raise NotificationCacheError(f"Dedupe check failed: {e}") from e
        return bool(acquired)

    def increment_daily_cap(self, user_id: int, local_date: str, cap: int) -> bool:
        try:
            allowed = self._cap_script(
                keys=[cap_cache_key(user_id, local_date)],
                args=[cap, CAP_COUNTER_TTL_SECONDS],
            )
        except redis.RedisError as e:
            raise NotificationCacheError(f"Daily cap check failed: {e}") from e
        return int(allowed) == 1

    def get_cap_count(self, user_id: int, local_date: str) -> int:
        try:
            value = self._client.get(cap_cache_key(user_id, local_date))
        except redis.RedisError as e:
            raise NotificationCacheError(f"Cap counter read failed: {e}") from e
        return int(value) if value is not None else 0

    def get_json(self, key: str) -> Optional[Any]:
        try:
            raw = self._client.get(key)
        except redis.RedisError as e:
            raise NotificationCacheError(f"Cache read failed for {key}: {e}") from e
        return json.loads(raw) if raw is not None else None

    def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            self._client.setex(key, ttl_seconds, json.dumps(value, default=str))
        except redis.RedisError as e:
            raise NotificationCacheError(f"Cache write failed for {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.RedisError as e:
            raise NotificationCacheError(f"Cache delete failed for {key}: {e}") from e


def create_notification_cache(redis_url: str = "") -> NotificationCache:
    """
    Build the gate cache for the configured backend.

    Args:
        redis_url: Redis URL; empty selects the in-process cache

    Returns:
        NotificationCache implementation
    """
    if redis_url:
        logger.info("Using Redis notification cache")
        return RedisNotificationCache.from_url(redis_url)

    logger.info("Using in-memory notification cache (single process only)")
    return InMemoryNotificationCache()
