"""
Worksheet load/save gateway: client side of ``/api/fmea``.

All outbound HTTP calls to the worksheet API go through this class. When the
API cannot be reached the gateway degrades to a local snapshot cache
(``LocalCache``) instead of failing the caller.

Policy:
  - Single attempt per call: no retry, no backoff, no queue.
  - Save: remote first; on success the snapshot is also written locally as a
    backup; on any remote failure the snapshot is written locally and the
    result is ``degraded``. Only a failing local write after a remote failure
    raises (``WorksheetSyncError``).
  - Load: remote first; 404, a ``null`` body or any failure falls back to the
    local copy. Load never raises. ``load_best`` ranks the local copy only
    when the API was unreachable or answered with an error other than 404.

Testability: pass a mock ``session`` and a ``LocalCache`` over a memory
backend to WorksheetGateway() in tests.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any

import requests

from fmea_smart.services.cache_service import LocalCache
from fmea_smart.services.snapshot_picker import PickResult, pick
from fmea_smart.services.worksheet_conversion import atomic_to_legacy

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "http://localhost:5000"
_DEFAULT_TIMEOUT = 15
_WORKSHEET_PATH = "/api/fmea"

SYNCED = "synced"
DEGRADED = "degraded"


class WorksheetSyncError(Exception):
    """Raised when a save reached neither the worksheet API nor the local cache.

    Attributes:
        fmea_id:      The worksheet being saved.
        remote_error: Text of the original remote failure.
    """

    def __init__(self, fmea_id: str, remote_error: str) -> None:
        self.fmea_id = fmea_id
        self.remote_error = remote_error
        super().__init__(f"Worksheet {fmea_id} not saved: {remote_error}")


@dataclass(frozen=True)
class SaveResult:
    status: str
    fmea_id: str
    saved_at: str | None = None
    error: str | None = None

    @property
    def degraded(self) -> bool:
        return self.status == DEGRADED


@dataclass(frozen=True)
class _Reply:
    """One HTTP exchange. ``status_code`` is None when nothing answered."""
    ok: bool
    status_code: int | None
    data: Any
    error: str | None
    duration_ms: int

    @property
    def responded(self) -> bool:
        """The store answered with a document or with nothing (2xx or 404).

        Transport failures and any other error status (5xx, 401, ...) count as
        unreachable, so callers fall back to the local copy.
        """
        return self.ok or self.status_code == 404


class WorksheetGateway:
    """Load/save facade over the worksheet API with a local cache fallback.

    Usage:
        gateway = WorksheetGateway(base_url="http://fmea.internal")
        result = gateway.save("pfm26-m001", snapshot)
        snapshot = gateway.load("pfm26-m001")
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        session: requests.Session | None = None,
        cache: LocalCache | None = None,
        timeout: float | None = None,
    ) -> None:
        self.base_url = (base_url or os.getenv("WORKSHEET_API_URL") or _DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout or float(os.getenv("WORKSHEET_API_TIMEOUT", _DEFAULT_TIMEOUT))
        self.cache = cache if cache is not None else LocalCache()
        self._session = session

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _request(self, method: str, *, params: dict | None = None, json_body: Any = None) -> _Reply:
        url = f"{self.base_url}{_WORKSHEET_PATH}"
        kwargs: dict[str, Any] = {"timeout": self.timeout, "headers": {"Accept": "application/json"}}
        if params:
            kwargs["params"] = params
        if json_body is not None:
            kwargs["json"] = json_body

        t0 = time.perf_counter()
        try:
            resp = self.session.request(method, url, **kwargs)
        except requests.Timeout:
            return _Reply(False, None, None, f"Request timed out after {self.timeout}s",
                          int(self.timeout * 1000))
        except requests.RequestException as exc:
            return _Reply(False, None, None, str(exc)[:500], 0)
        except (TypeError, ValueError) as exc:
            # Body could not be serialised; nothing was sent.
            return _Reply(False, None, None, f"Serialization error: {exc}", 0)
        duration_ms = int((time.perf_counter() - t0) * 1000)

        try:
            data = resp.json() if resp.content else None
        except ValueError:
            data = None
        if not resp.ok:
            return _Reply(False, resp.status_code, data, f"HTTP {resp.status_code}: {resp.text[:500]}",
                          duration_ms)
        return _Reply(True, resp.status_code, data, None, duration_ms)

    # ── Local cache (never raises) ───────────────────────────────────────────

    def _cached_worksheet(self, fmea_id: str):
        try:
            return self.cache.get_worksheet(fmea_id)
        except Exception as exc:
            logger.warning("Local cache read failed fmea=%s error=%s", fmea_id, exc)
            return None

    # ── Save ─────────────────────────────────────────────────────────────────

    def save(self, fmea_id: str, snapshot: dict) -> SaveResult:
        """Save a worksheet snapshot.

        Returns:
            SaveResult with status ``synced`` or ``degraded``.

        Raises:
            WorksheetSyncError: the remote save failed and so did the local write.
        """
        body = {**snapshot, "fmeaId": fmea_id}
        reply = self._request("POST", json_body=body)

        if reply.ok and isinstance(reply.data, dict) and reply.data.get("success") is True:
            try:
                self.cache.put_worksheet(fmea_id, snapshot)
            except Exception as exc:
                logger.warning("Local backup write failed fmea=%s error=%s", fmea_id, exc)
            logger.info("Worksheet synced fmea=%s duration_ms=%d", fmea_id, reply.duration_ms)
            return SaveResult(SYNCED, fmea_id, saved_at=reply.data.get("savedAt"))

        remote_error = reply.error or f"Unexpected response: {str(reply.data)[:200]}"
        logger.warning("Worksheet save failed fmea=%s error=%s; writing local copy", fmea_id, remote_error)
        try:
            self.cache.put_worksheet(fmea_id, snapshot)
        except Exception as exc:
            logger.error("Local fallback write failed fmea=%s error=%s", fmea_id, exc)
            raise WorksheetSyncError(fmea_id, remote_error) from exc
        return SaveResult(DEGRADED, fmea_id, error=remote_error)

    # ── Load ─────────────────────────────────────────────────────────────────

    def _fetch_primary(self, fmea_id: str) -> tuple[dict | None, bool]:
        """Remote legacy snapshot and whether the API answered at all."""
        reply = self._request("GET", params={"fmeaId": fmea_id})
        if reply.ok and isinstance(reply.data, dict):
            return reply.data, True
        if reply.status_code != 404 and reply.error:
            logger.warning("Worksheet load failed fmea=%s error=%s", fmea_id, reply.error)
        return None, reply.responded

    def load(self, fmea_id: str) -> dict | None:
        """Remote snapshot, else the local copy, else None."""
        snapshot, _ = self._fetch_primary(fmea_id)
        if snapshot is not None:
            return snapshot
        local = self._cached_worksheet(fmea_id)
        if local is not None:
            logger.info("Worksheet loaded from local cache fmea=%s", fmea_id)
        return local

    def load_atomic(self, fmea_id: str) -> dict | None:
        """Atomic form of the worksheet, or None on any failure."""
        reply = self._request("GET", params={"fmeaId": fmea_id, "format": "atomic"})
        if reply.ok and isinstance(reply.data, dict):
            return reply.data
        return None

    def load_best(self, fmea_id: str) -> PickResult:
        """Rank the remote, atomic-derived and local copies and return the pick."""
        primary, responded = self._fetch_primary(fmea_id)
        derived = atomic_to_legacy(self.load_atomic(fmea_id))
        local = self._cached_worksheet(fmea_id)
        result = pick(primary, derived, local, primary_responded=responded)
        logger.info("Worksheet best copy fmea=%s best=%s scores=%s",
                    fmea_id, result.best.label, result.scores)
        return result
