"""
Worksheet Blueprint: load/save API for FMEA worksheets.

Endpoints:
    GET    /api/fmea?fmeaId=<id>[&format=atomic]   Load legacy (default) or atomic form
    POST   /api/fmea                               Save (body carries fmeaId)
    GET    /api/fmea/diagnostics?fmeaId=<id>       Existence, score and row counts
    POST   /api/fmea/rebuild-atomic?fmeaId=<id>    Rebuild atomic rows from the legacy document
    GET    /api/fmea/ap?s=&o=&d=                   Action Priority of a S/O/D triple

Domain errors (NotFoundError, ValidationError, ProvisioningError) are turned
into JSON by the app-level handlers in ``fmea_smart.create_app``.
"""

import logging

from flask import Blueprint, jsonify, request

from fmea_smart.blueprints import require_fmea_id
from fmea_smart.core.exceptions import ValidationError
from fmea_smart.services import worksheet_service
from fmea_smart.services.action_priority import ap_for, ap_table_summary

logger = logging.getLogger(__name__)

fmea_bp = Blueprint("fmea", __name__, url_prefix="/api/fmea")


@fmea_bp.route("", methods=["GET"])
def load_worksheet():
    fmea_id = require_fmea_id()
    fmt = request.args.get("format", "legacy")
    return jsonify(worksheet_service.load_worksheet(fmea_id, fmt)), 200


@fmea_bp.route("", methods=["POST"])
def save_worksheet():
    payload = request.get_json(silent=True)
    if payload is None:
        raise ValidationError("Request body must be JSON")
    return jsonify(worksheet_service.save_worksheet(payload)), 200


@fmea_bp.route("/diagnostics", methods=["GET"])
def diagnostics():
    return jsonify(worksheet_service.worksheet_diagnostics(require_fmea_id())), 200


@fmea_bp.route("/rebuild-atomic", methods=["POST"])
def rebuild_atomic():
    fmea_id = request.args.get("fmeaId") or (request.get_json(silent=True) or {}).get("fmeaId")
    if not fmea_id:
        raise ValidationError("fmeaId parameter is required", details={"fmeaId": "missing"})
    return jsonify(worksheet_service.rebuild_atomic(fmea_id)), 200


@fmea_bp.route("/ap", methods=["GET"])
def action_priority():
    """AP for ?s=&o=&d= (missing ratings count as 0, i.e. not rated)."""
    s, o, d = (request.args.get(k, "0").strip() or "0" for k in ("s", "o", "d"))
    ap = ap_for(s, o, d)
    return jsonify({"ap": ap, "severity": int(s), "occurrence": int(o), "detection": int(d)}), 200


@fmea_bp.route("/ap/table", methods=["GET"])
def action_priority_table():
    return jsonify({"summary": ap_table_summary()}), 200
