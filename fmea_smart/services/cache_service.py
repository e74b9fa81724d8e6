"""
Worksheet snapshot cache.

Holds the client-side copy of each worksheet (``pfmea_worksheet_<id>``) and
of its atomic form (``pfmea_atomic_<id>``). The snapshot picker falls back
to this copy only when the primary store cannot be reached.

Uses Redis in production (via REDIS_URL), falls back to a simple in-memory
dict for development/testing.
"""

import json
import logging
import os
import threading
import time

logger = logging.getLogger(__name__)

WORKSHEET_KEY_PREFIX = "pfmea_worksheet"
ATOMIC_KEY_PREFIX = "pfmea_atomic"


# ── In-memory fallback ───────────────────────────────────────────────────

class _MemoryBackend:
    """Dict cache for dev/testing. ``expires`` of None means no TTL."""

    def __init__(self):
        self._store: dict = {}  # key → (value_json, expire_ts)
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            val, expires = entry
            if expires and time.time() > expires:
                self._store.pop(key, None)
                return None
            return val

    def set(self, key, value):
        with self._lock:
            self._store[key] = (value, None)

    def setex(self, key, ttl_seconds, value):
        with self._lock:
            self._store[key] = (value, time.time() + ttl_seconds)

    def delete(self, *keys):
        with self._lock:
            for k in keys:
                self._store.pop(k, None)

    def flushdb(self):
        with self._lock:
            self._store.clear()

    def ping(self):
        return True


# ── Singleton cache backend ──────────────────────────────────────────────

_backend = None


def _get_backend():
    """Lazy-initialise Redis or fall back to in-memory."""
    global _backend
    if _backend is not None:
        return _backend

    redis_url = os.getenv("REDIS_URL")
    if redis_url and not redis_url.startswith("memory://"):
        try:
            import redis as _redis
            _backend = _redis.from_url(redis_url, decode_responses=True)
            _backend.ping()
            logger.info("Cache: using Redis at %s", redis_url.split("@")[-1])
        except Exception as exc:
            logger.warning("Redis unavailable (%s), falling back to memory cache", exc)
            _backend = _MemoryBackend()
    else:
        _backend = _MemoryBackend()
    return _backend


def reset_backend(backend=None):
    """Replace the process backend (tests); None re-runs lazy init."""
    global _backend
    _backend = backend


def cache_health():
    """Return cache backend health status."""
    backend = _get_backend()
    name = "memory" if isinstance(backend, _MemoryBackend) else "redis"
    try:
        ok = bool(backend.ping())
    except Exception as exc:
        logger.warning("Cache ping failed: %s", exc)
        ok = False
    return {"backend": name, "status": "ok" if ok else "error"}


# ── Snapshot cache ───────────────────────────────────────────────────────

class LocalCache:
    """
    JSON snapshot store keyed by FMEA id.

    Args:
        backend: object with get/set/setex/delete (Redis client or
            ``_MemoryBackend``); defaults to the process backend.
        ttl_seconds: expiry for written entries; None keeps them forever.
    """

    def __init__(self, backend=None, ttl_seconds: int | None = None):
        self._backend = backend
        self.ttl_seconds = ttl_seconds

    @property
    def backend(self):
        return self._backend if self._backend is not None else _get_backend()

    @staticmethod
    def worksheet_key(fmea_id: str) -> str:
        return f"{WORKSHEET_KEY_PREFIX}_{fmea_id}"

    @staticmethod
    def atomic_key(fmea_id: str) -> str:
        return f"{ATOMIC_KEY_PREFIX}_{fmea_id}"

    def _read(self, key):
        raw = self.backend.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Discarding unreadable cache entry %s", key)
            return None

    def _write(self, key, value):
        raw = json.dumps(value)
        if self.ttl_seconds:
            self.backend.setex(key, self.ttl_seconds, raw)
        else:
            self.backend.set(key, raw)

    def get_worksheet(self, fmea_id):
        return self._read(self.worksheet_key(fmea_id))

    def put_worksheet(self, fmea_id, snapshot):
        self._write(self.worksheet_key(fmea_id), snapshot)

    def get_atomic(self, fmea_id):
        return self._read(self.atomic_key(fmea_id))

    def put_atomic(self, fmea_id, atomic):
        self._write(self.atomic_key(fmea_id), atomic)

    def invalidate(self, fmea_id):
        """Drop both cached forms of one worksheet."""
        self.backend.delete(self.worksheet_key(fmea_id), self.atomic_key(fmea_id))
