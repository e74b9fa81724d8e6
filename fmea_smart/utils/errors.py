"""Standardised JSON error bodies for the worksheet API.

Usage
-----
    from fmea_smart.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Worksheet not found")
    return api_error(E.VALIDATION_REQUIRED, "fmeaId parameter is required")
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error codes returned in the ``code`` field."""

    # HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # HTTP 500
    DATABASE = "ERR_DATABASE"
    PROVISIONING = "ERR_PROVISIONING"
    INTERNAL = "ERR_INTERNAL"


_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.DATABASE: 500,
    E.PROVISIONING: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Build ``(jsonify(body), status)`` for a failed request.

    The body always carries ``error`` (human text) and ``code`` (an ``E.*``
    constant). ``status`` defaults to the code's mapped status, else 400.
    """
    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details

    return jsonify(body), http_status
