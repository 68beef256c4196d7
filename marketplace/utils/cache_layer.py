from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
import time
from typing import Any, Callable

try:
    import redis
except Exception:  # pragma: no cover - optional dependency safety
    redis = None


logger = logging.getLogger(__name__)

_LOCK = threading.Lock()
_BACKEND = None

_STATS = {
    "hits": 0,
    "misses": 0,
    "sets": 0,
    "deletes": 0,
    "invalidations": 0,
    "evictions": 0,
    "errors": 0,
}


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in ("1", "true", "yes", "on")


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 86400) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = int(default)
    else:
        try:
            value = int(raw)
        except Exception:
            value = int(default)
    if value < minimum:
        value = minimum
    if value > maximum:
        value = maximum
    return value


def cache_enabled(default: bool = False) -> bool:
    return _env_bool("ENABLE_CACHE", default)


def cache_ttl_seconds(env_name: str, default: int) -> int:
    return _env_int(env_name, default, minimum=1, maximum=86400)


def default_cache_ttl_seconds() -> int:
    return cache_ttl_seconds("DEFAULT_CACHE_TTL_SECONDS", 60)


def listings_cache_ttl_seconds() -> int:
    return cache_ttl_seconds("LISTINGS_CACHE_TTL_SECONDS", 300)


def memory_cache_max_entries() -> int:
    return _env_int("MEMORY_CACHE_MAX_ENTRIES", 10000, minimum=1, maximum=1000000)


def compute_lock_timeout_seconds() -> int:
    return _env_int("LISTINGS_QUERY_TIMEOUT_SECONDS", 60, minimum=1, maximum=600)


def _cache_redis_url() -> str:
    return (os.getenv("CACHE_REDIS_URL") or os.getenv("REDIS_URL") or "").strip()


def _bump_stat(name: str, delta: int = 1) -> None:
    with _LOCK:
        _STATS[name] = int(_STATS.get(name, 0) or 0) + int(delta)


def _stable_param_value(value: Any) -> str:
    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
        except Exception:
            return str(value)
    if value is None:
        return ""
    return str(value)


def build_cache_key(scope: str, params: dict[str, Any] | None = None) -> str:
    safe_scope = str(scope or "default").strip().lower().replace(" ", "_")
    payload = params or {}
    parts: list[str] = []
    for key in sorted(payload.keys()):
        parts.append(f"{str(key)}={_stable_param_value(payload.get(key))}")
    joined = "&".join(parts)
    if len(joined) > 420:
        joined = hashlib.sha256(joined.encode("utf-8")).hexdigest()
    return f"v1:{safe_scope}:{joined}"


def _always(_value: Any) -> bool:
    return True


class MemoryCacheBackend:
    """Process-local JSON cache with per-entry expiry and tag sets.

    Values are stored encoded so every reader gets its own copy. Expired
    entries are never returned; they are dropped lazily on access.
    ``get_or_set`` holds a per-key lock while computing, so concurrent
    callers asking for the same key run the producer once.
    """

    name = "memory"

    def __init__(
        self,
        clock: Callable[[], float] | None = None,
        *,
        max_entries: int | None = None,
        sweep_interval_seconds: int = 60,
    ):
        self._clock = clock or time.monotonic
        self.max_entries = int(max_entries or memory_cache_max_entries())
        self.sweep_interval_seconds = int(sweep_interval_seconds)
        self._next_sweep_at = self._clock() + self.sweep_interval_seconds
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, str, tuple[str, ...]]] = {}
        self._tags: dict[str, set[str]] = {}
        self._generations: dict[str, int] = {}
        self._key_locks: dict[str, threading.Lock] = {}

    def _read_locked(self, key: str):
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, raw, tags = entry
        if self._clock() >= expires_at:
            self._drop_locked(key)
            return None
        return json.loads(raw)

    def _drop_locked(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        for tag in entry[2]:
            keys = self._tags.get(tag)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    self._tags.pop(tag, None)
        return True

    def _generation_locked(self, tags: tuple[str, ...]) -> tuple[int, ...]:
        return tuple(self._generations.get(tag, 0) for tag in tags)

    def get(self, key: str):
        with self._lock:
            value = self._read_locked(str(key))
        _bump_stat("hits" if value is not None else "misses")
        return value

    def set(self, key: str, value: Any, ttl_seconds: int | None = None, tags: tuple[str, ...] = ()) -> bool:
        ttl = int(ttl_seconds or default_cache_ttl_seconds())
        payload = json.dumps(value, separators=(",", ":"), default=str)
        with self._lock:
            self._store_locked(str(key), payload, ttl, tuple(tags))
        _bump_stat("sets")
        return True

    def _store_locked(self, key: str, payload: str, ttl: int, tags: tuple[str, ...]) -> None:
        self._drop_locked(key)
        now = self._clock()
        if now >= self._next_sweep_at or len(self._entries) >= self.max_entries:
            self._sweep_locked(now)
        self._entries[key] = (now + ttl, payload, tags)
        for tag in tags:
            self._tags.setdefault(tag, set()).add(key)

    def _sweep_locked(self, now: float) -> None:
        self._next_sweep_at = now + self.sweep_interval_seconds
        expired = [k for k, entry in self._entries.items() if now >= entry[0]]
        for key in expired:
            self._drop_locked(key)
        # Still full: free a batch of the entries closest to expiry.
        evicted = []
        if len(self._entries) >= self.max_entries:
            overflow = len(self._entries) - self.max_entries + max(1, self.max_entries // 10)
            evicted = sorted(self._entries, key=lambda k: self._entries[k][0])[:overflow]
            for key in evicted:
                self._drop_locked(key)
        if expired or evicted:
            _bump_stat("evictions", len(expired) + len(evicted))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def delete(self, key: str) -> int:
        with self._lock:
            removed = 1 if self._drop_locked(str(key)) else 0
        if removed:
            _bump_stat("deletes", removed)
        return removed

    def invalidate_tag(self, tag: str) -> int:
        with self._lock:
            self._generations[tag] = self._generations.get(tag, 0) + 1
            keys = list(self._tags.pop(tag, set()))
            removed = 0
            for key in keys:
                if self._drop_locked(key):
                    removed += 1
        _bump_stat("invalidations")
        if removed:
            _bump_stat("deletes", removed)
        return removed

    def get_or_set(
        self,
        key: str,
        producer: Callable[[], Any],
        *,
        ttl_seconds: int | None = None,
        tags: tuple[str, ...] = (),
        should_store: Callable[[Any], bool] = _always,
    ):
        key = str(key)
        tags = tuple(tags)
        with self._lock:
            cached = self._read_locked(key)
            if cached is None:
                key_lock = self._key_locks.setdefault(key, threading.Lock())
        if cached is not None:
            _bump_stat("hits")
            return cached

        with key_lock:
            with self._lock:
                cached = self._read_locked(key)
                generation = self._generation_locked(tags)
            if cached is not None:
                _bump_stat("hits")
                return cached
            _bump_stat("misses")
            try:
                value = producer()
                if should_store(value):
                    ttl = int(ttl_seconds or default_cache_ttl_seconds())
                    payload = json.dumps(value, separators=(",", ":"), default=str)
                    with self._lock:
                        # An invalidation landed while computing: the value may be stale.
                        if self._generation_locked(tags) == generation:
                            self._store_locked(key, payload, ttl, tags)
                            _bump_stat("sets")
                return value
            finally:
                with self._lock:
                    if self._key_locks.get(key) is key_lock:
                        self._key_locks.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._tags.clear()
            self._generations.clear()
            self._key_locks.clear()


class RedisCacheBackend:
    """Redis-backed cache: SETEX entries, one Redis set of keys per tag.

    Every Redis error is counted and swallowed; callers then behave as on a
    cache miss and compute the value directly.
    """

    name = "redis"

    def __init__(self, client):
        self.client = client

    @staticmethod
    def _tag_key(tag: str) -> str:
        return f"v1:tag:{tag}"

    @staticmethod
    def _generation_key(tag: str) -> str:
        return f"v1:taggen:{tag}"

    def get(self, key: str):
        try:
            raw = self.client.get(str(key))
            if not raw:
                _bump_stat("misses")
                return None
            parsed = json.loads(raw)
            _bump_stat("hits")
            return parsed
        except Exception as exc:
            _bump_stat("errors")
            logger.warning("cache_get_failed key=%s err=%s", key, exc)
            return None

    def set(self, key: str, value: Any, ttl_seconds: int | None = None, tags: tuple[str, ...] = ()) -> bool:
        ttl = int(ttl_seconds or default_cache_ttl_seconds())
        if ttl <= 0:
            ttl = default_cache_ttl_seconds()
        try:
            payload = json.dumps(value, separators=(",", ":"), default=str)
            pipe = self.client.pipeline()
            pipe.setex(str(key), ttl, payload)
            for tag in tags:
                pipe.sadd(self._tag_key(tag), str(key))
                pipe.expire(self._tag_key(tag), ttl)
            pipe.execute()
            _bump_stat("sets")
            return True
        except Exception as exc:
            _bump_stat("errors")
            logger.warning("cache_set_failed key=%s err=%s", key, exc)
            return False

    def delete(self, key: str) -> int:
        try:
            removed = int(self.client.delete(str(key)) or 0)
            if removed > 0:
                _bump_stat("deletes", removed)
            return removed
        except Exception:
            _bump_stat("errors")
            return 0

    def invalidate_tag(self, tag: str) -> int:
        try:
            self.client.incr(self._generation_key(tag))
            keys = list(self.client.smembers(self._tag_key(tag)) or [])
            removed = 0
            if keys:
                removed = int(self.client.delete(*keys) or 0)
            self.client.delete(self._tag_key(tag))
            _bump_stat("invalidations")
            if removed > 0:
                _bump_stat("deletes", removed)
            return removed
        except Exception as exc:
            _bump_stat("errors")
            logger.warning("cache_invalidate_failed tag=%s err=%s", tag, exc)
            return 0

    def _generation(self, tags: tuple[str, ...]) -> tuple[int, ...]:
        try:
            return tuple(int(self.client.get(self._generation_key(tag)) or 0) for tag in tags)
        except Exception:
            _bump_stat("errors")
            return tuple(-1 for _ in tags)

    def get_or_set(
        self,
        key: str,
        producer: Callable[[], Any],
        *,
        ttl_seconds: int | None = None,
        tags: tuple[str, ...] = (),
        should_store: Callable[[Any], bool] = _always,
    ):
        key = str(key)
        tags = tuple(tags)
        cached = self.get(key)
        if cached is not None:
            return cached
        timeout = compute_lock_timeout_seconds()
        lock = None
        try:
            lock = self.client.lock(f"{key}:lock", timeout=timeout, blocking_timeout=timeout)
            if not lock.acquire():
                lock = None
        except Exception:
            _bump_stat("errors")
            lock = None
        try:
            if lock is not None:
                cached = self.get(key)
                if cached is not None:
                    return cached
            generation = self._generation(tags)
            value = producer()
            if should_store(value) and self._generation(tags) == generation:
                self.set(key, value, ttl_seconds=ttl_seconds, tags=tags)
            return value
        finally:
            if lock is not None:
                try:
                    lock.release()
                except Exception:
                    pass


_MEMORY_BACKEND = MemoryCacheBackend()


def _connect_redis():
    if redis is None:
        _bump_stat("errors")
        return None
    url = _cache_redis_url()
    if not url:
        return None
    try:
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=0.75,
            socket_connect_timeout=0.75,
            health_check_interval=30,
        )
        client.ping()
        return client
    except Exception as exc:
        _bump_stat("errors")
        logger.warning("cache_redis_unavailable err=%s", exc)
        return None


def get_cache_backend():
    """Shared backend: Redis when enabled and reachable, else in-process memory."""
    global _BACKEND
    with _LOCK:
        if _BACKEND is not None:
            return _BACKEND
    backend = _MEMORY_BACKEND
    if cache_enabled(False):
        client = _connect_redis()
        if client is not None:
            backend = RedisCacheBackend(client)
    with _LOCK:
        if _BACKEND is None:
            _BACKEND = backend
        return _BACKEND


def set_cache_backend(backend) -> None:
    global _BACKEND
    with _LOCK:
        _BACKEND = backend


def cache_stats() -> dict:
    backend = get_cache_backend()
    base = {
        "backend": getattr(backend, "name", "custom"),
        "redis_enabled": bool(cache_enabled(False)),
        "url_configured": bool(_cache_redis_url()),
    }
    if isinstance(backend, MemoryCacheBackend):
        base["entries"] = len(backend)
    with _LOCK:
        for key in _STATS:
            base[key] = int(_STATS.get(key, 0) or 0)
    return base


def _reset_cache_state_for_tests() -> None:
    global _BACKEND
    _MEMORY_BACKEND.clear()
    with _LOCK:
        _BACKEND = None
        for key in _STATS:
            _STATS[key] = 0
