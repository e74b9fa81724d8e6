"""Unit tests for fmea_smart.integrations.worksheet_gateway.

Test strategy
-------------
The requests.Session is a MagicMock returning hand-built responses, and the
local cache is a LocalCache over a fresh in-memory backend, so no HTTP server
or Redis is needed.

Coverage
--------
    - save: synced (with local backup), degraded on HTTP error / transport
      error / unexpected body, WorksheetSyncError when the local write fails too
    - load: remote first, local fallback on 404 or transport error
    - load_best: primary wins when present, local only when the API is
      unreachable or fails with 5xx (not on 404 or a null body)
"""

from unittest.mock import MagicMock

import pytest
import requests

from fmea_smart.integrations.worksheet_gateway import (
    DEGRADED,
    SYNCED,
    WorksheetGateway,
    WorksheetSyncError,
)
from fmea_smart.services.snapshot_picker import DERIVED, LOCAL, PRIMARY


def _response(status_code: int = 200, data=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    resp.content = b"x" if data is not None else b""
    resp.json.return_value = data
    resp.text = str(data)
    return resp


def _gateway(session, cache):
    return WorksheetGateway("http://fmea.test/", session=session, cache=cache, timeout=2)


SNAPSHOT = {"l1": {"name": "Brake"}, "l2": [{"no": "10", "name": "Bolt tightening"}]}


class TestSave:
    def test_synced_writes_backup(self, memory_cache):
        session = MagicMock()
        session.request.return_value = _response(200, {"success": True, "savedAt": "2026-01-01T00:00:00"})
        gateway = _gateway(session, memory_cache)

        result = gateway.save("pfm26-m001", SNAPSHOT)

        assert result.status == SYNCED
        assert result.saved_at == "2026-01-01T00:00:00"
        assert not result.degraded
        assert memory_cache.get_worksheet("pfm26-m001") == SNAPSHOT

        method, url = session.request.call_args.args
        assert method == "POST"
        assert url == "http://fmea.test/api/fmea"
        assert session.request.call_args.kwargs["json"]["fmeaId"] == "pfm26-m001"
        assert session.request.call_args.kwargs["timeout"] == 2

    def test_http_error_degrades(self, memory_cache):
        session = MagicMock()
        session.request.return_value = _response(500, {"error": "Database error"})
        result = _gateway(session, memory_cache).save("pfm26-m001", SNAPSHOT)

        assert result.status == DEGRADED
        assert result.degraded
        assert "HTTP 500" in result.error
        assert memory_cache.get_worksheet("pfm26-m001") == SNAPSHOT

    def test_transport_error_degrades(self, memory_cache):
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("connection refused")
        result = _gateway(session, memory_cache).save("pfm26-m001", SNAPSHOT)

        assert result.status == DEGRADED
        assert "connection refused" in result.error
        session.request.assert_called_once()

    def test_timeout_degrades(self, memory_cache):
        session = MagicMock()
        session.request.side_effect = requests.Timeout()
        result = _gateway(session, memory_cache).save("pfm26-m001", SNAPSHOT)
        assert "timed out" in result.error

    def test_success_flag_required(self, memory_cache):
        session = MagicMock()
        session.request.return_value = _response(200, {"success": False})
        result = _gateway(session, memory_cache).save("pfm26-m001", SNAPSHOT)
        assert result.status == DEGRADED
        assert "Unexpected response" in result.error

    def test_local_failure_after_remote_failure_raises(self):
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("down")
        cache = MagicMock()
        cache.put_worksheet.side_effect = OSError("disk full")

        with pytest.raises(WorksheetSyncError) as exc_info:
            _gateway(session, cache).save("pfm26-m001", SNAPSHOT)
        assert exc_info.value.fmea_id == "pfm26-m001"
        assert "down" in exc_info.value.remote_error

    def test_backup_failure_after_remote_success_is_ignored(self):
        session = MagicMock()
        session.request.return_value = _response(200, {"success": True, "savedAt": "t"})
        cache = MagicMock()
        cache.put_worksheet.side_effect = OSError("disk full")

        result = _gateway(session, cache).save("pfm26-m001", SNAPSHOT)
        assert result.status == SYNCED


class TestLoad:
    def test_remote_first(self, memory_cache):
        memory_cache.put_worksheet("pfm26-m001", {"l1": {"name": "Stale"}})
        session = MagicMock()
        session.request.return_value = _response(200, SNAPSHOT)

        assert _gateway(session, memory_cache).load("pfm26-m001") == SNAPSHOT
        assert session.request.call_args.kwargs["params"] == {"fmeaId": "pfm26-m001"}

    def test_404_falls_back_to_local(self, memory_cache):
        memory_cache.put_worksheet("pfm26-m001", SNAPSHOT)
        session = MagicMock()
        session.request.return_value = _response(404, {"error": "Worksheet not found"})
        assert _gateway(session, memory_cache).load("pfm26-m001") == SNAPSHOT

    def test_transport_error_falls_back_to_local(self, memory_cache):
        memory_cache.put_worksheet("pfm26-m001", SNAPSHOT)
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("down")
        assert _gateway(session, memory_cache).load("pfm26-m001") == SNAPSHOT

    def test_nothing_anywhere(self, memory_cache):
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("down")
        assert _gateway(session, memory_cache).load("pfm26-m001") is None

    def test_broken_cache_never_raises(self):
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("down")
        cache = MagicMock()
        cache.get_worksheet.side_effect = RuntimeError("redis gone")
        assert _gateway(session, cache).load("pfm26-m001") is None


class TestLoadBest:
    def test_primary_present_wins(self, memory_cache):
        memory_cache.put_worksheet("pfm26-m001", {"l1": {"name": "Local"}, "l2": [{"no": "1"}, {"no": "2"}]})
        session = MagicMock()
        session.request.side_effect = [_response(200, SNAPSHOT), _response(404, {"error": "x"})]

        result = _gateway(session, memory_cache).load_best("pfm26-m001")
        assert result.best.label == PRIMARY
        assert result.best.snapshot == SNAPSHOT

    def test_atomic_rebuild_used_when_primary_missing(self, memory_cache):
        atomic = {"fmeaId": "pfm26-m001", "l1Structure": {"id": "L1", "name": "Brake"},
                  "l2Structures": [{"id": "L2-1", "no": "10", "name": "Bolt tightening", "order": 1}]}
        session = MagicMock()
        session.request.side_effect = [_response(404, {"error": "x"}), _response(200, atomic)]

        result = _gateway(session, memory_cache).load_best("pfm26-m001")
        assert result.best.label == DERIVED
        assert result.best.snapshot["l2"][0]["name"] == "Bolt tightening"
        assert session.request.call_args.kwargs["params"]["format"] == "atomic"

    def test_local_used_when_unreachable(self, memory_cache):
        memory_cache.put_worksheet("pfm26-m001", SNAPSHOT)
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("down")

        result = _gateway(session, memory_cache).load_best("pfm26-m001")
        assert result.best.label == LOCAL
        assert result.best.snapshot == SNAPSHOT

    def test_local_ignored_when_primary_answered(self, memory_cache):
        memory_cache.put_worksheet("pfm26-m001", SNAPSHOT)
        session = MagicMock()
        session.request.return_value = _response(404, {"error": "x"})

        result = _gateway(session, memory_cache).load_best("pfm26-m001")
        assert result.best.label == PRIMARY
        assert result.best.snapshot is None

    def test_local_used_when_primary_fails_with_5xx(self, memory_cache, sample_worksheet):
        memory_cache.put_worksheet("pfm26-m001", sample_worksheet)
        session = MagicMock()
        session.request.return_value = _response(503, {"error": "Service unavailable"})
        gateway = _gateway(session, memory_cache)

        assert gateway.load("pfm26-m001") == sample_worksheet
        result = gateway.load_best("pfm26-m001")
        assert result.best.label == LOCAL
        assert result.best.snapshot == sample_worksheet
        assert result.scores[LOCAL] == 81

    def test_local_ignored_when_primary_body_is_null(self, memory_cache):
        memory_cache.put_worksheet("pfm26-m001", SNAPSHOT)
        session = MagicMock()
        session.request.side_effect = [_response(200, None), _response(404, {"error": "x"})]

        result = _gateway(session, memory_cache).load_best("pfm26-m001")
        assert result.best.label == PRIMARY
        assert result.best.snapshot is None
