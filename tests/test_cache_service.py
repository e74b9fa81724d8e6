"""Unit tests for fmea_smart.services.cache_service.

Coverage
--------
    - Key naming
    - JSON round trip, TTL expiry, unreadable entries, invalidate
    - Backend selection and health
"""

from unittest.mock import patch

from fmea_smart.services import cache_service
from fmea_smart.services.cache_service import LocalCache, _MemoryBackend, cache_health


class TestKeys:
    def test_key_names(self):
        assert LocalCache.worksheet_key("pfm26-m001") == "pfmea_worksheet_pfm26-m001"
        assert LocalCache.atomic_key("pfm26-m001") == "pfmea_atomic_pfm26-m001"


class TestLocalCache:
    def test_missing_is_none(self, memory_cache):
        assert memory_cache.get_worksheet("pfm26-m001") is None

    def test_worksheet_and_atomic_are_separate(self, memory_cache):
        memory_cache.put_worksheet("pfm26-m001", {"l1": {"name": "Brake"}})
        memory_cache.put_atomic("pfm26-m001", {"l2Structures": []})
        assert memory_cache.get_worksheet("pfm26-m001") == {"l1": {"name": "Brake"}}
        assert memory_cache.get_atomic("pfm26-m001") == {"l2Structures": []}

    def test_invalidate_drops_both(self, memory_cache):
        memory_cache.put_worksheet("pfm26-m001", {"a": 1})
        memory_cache.put_atomic("pfm26-m001", {"b": 2})
        memory_cache.invalidate("pfm26-m001")
        assert memory_cache.get_worksheet("pfm26-m001") is None
        assert memory_cache.get_atomic("pfm26-m001") is None

    def test_unreadable_entry_discarded(self):
        backend = _MemoryBackend()
        backend.set(LocalCache.worksheet_key("pfm26-m001"), "{not json")
        assert LocalCache(backend=backend).get_worksheet("pfm26-m001") is None

    def test_ttl_expiry(self):
        backend = _MemoryBackend()
        cache = LocalCache(backend=backend, ttl_seconds=60)
        with patch("fmea_smart.services.cache_service.time.time", return_value=1000.0):
            cache.put_worksheet("pfm26-m001", {"a": 1})
        with patch("fmea_smart.services.cache_service.time.time", return_value=1030.0):
            assert cache.get_worksheet("pfm26-m001") == {"a": 1}
        with patch("fmea_smart.services.cache_service.time.time", return_value=1061.0):
            assert cache.get_worksheet("pfm26-m001") is None

    def test_default_backend_is_process_backend(self):
        backend = _MemoryBackend()
        cache_service.reset_backend(backend)
        LocalCache().put_worksheet("pfm26-m001", {"a": 1})
        assert backend.get("pfmea_worksheet_pfm26-m001") == '{"a": 1}'


class TestBackend:
    def test_memory_url_gives_memory_backend(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "memory://")
        cache_service.reset_backend()
        assert isinstance(cache_service._get_backend(), _MemoryBackend)

    def test_unreachable_redis_falls_back(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "redis://localhost:1/0")
        cache_service.reset_backend()
        with patch("redis.from_url", side_effect=ConnectionError("refused")):
            assert isinstance(cache_service._get_backend(), _MemoryBackend)

    def test_health(self):
        cache_service.reset_backend(_MemoryBackend())
        assert cache_health() == {"backend": "memory", "status": "ok"}
