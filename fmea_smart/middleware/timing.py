"""
Request timing middleware.

Records request duration, tags every response with X-Request-ID and logs
slow or failing worksheet requests together with the FMEA id they touched.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Probes are polled constantly
_SKIP_LOG = frozenset({"/api/health/live", "/api/health/ready"})

# Slow request threshold (ms); full worksheet saves rebuild every atomic table
SLOW_THRESHOLD_MS = 2000


def _fmea_id() -> str | None:
    fmea_id = request.args.get("fmeaId")
    if fmea_id is None and request.is_json:
        payload = request.get_json(silent=True)
        if isinstance(payload, dict):
            fmea_id = payload.get("fmeaId")
    return str(fmea_id) if fmea_id else None


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID", uuid.uuid4().hex[:12])
        g.fmea_id = _fmea_id()
        g.pop("project_schema", None)

    @app.after_request
    def _log_request(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = getattr(g, "request_id", "")

        if request.path in _SKIP_LOG:
            return response

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "remote_addr": request.remote_addr,
            "request_id": getattr(g, "request_id", ""),
            "fmea_id": g.get("fmea_id"),
            "schema": g.get("project_schema"),
        }
        if duration_ms > SLOW_THRESHOLD_MS:
            logger.warning("Slow request: %s %s %d (%.0fms)",
                           request.method, request.path,
                           response.status_code, duration_ms, extra=extra)
        elif response.status_code >= 500:
            logger.error("Server error: %s %s %d (%.0fms)",
                         request.method, request.path,
                         response.status_code, duration_ms, extra=extra)
        else:
            logger.debug("Request: %s %s %d (%.0fms)",
                         request.method, request.path,
                         response.status_code, duration_ms, extra=extra)
        return response
