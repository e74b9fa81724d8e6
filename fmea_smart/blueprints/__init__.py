"""
FMEA Smart System
Blueprint registry.
"""

from flask import request

from fmea_smart.core.exceptions import ValidationError


def require_fmea_id() -> str:
    """Return the ``fmeaId`` query parameter or raise ValidationError."""
    fmea_id = (request.args.get("fmeaId") or "").strip()
    if not fmea_id:
        raise ValidationError("fmeaId parameter is required", details={"fmeaId": "missing"})
    return fmea_id
