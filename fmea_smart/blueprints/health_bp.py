"""
Health check blueprint.

Endpoints:
    GET /api/health/ready   always 200 while the process serves requests
    GET /api/health/live    database, project schemas and snapshot cache status

Only the database decides the status code (503 when unreachable); the
schema and cache checks are informational.
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from fmea_smart.models import db
from fmea_smart.services import project_schema
from fmea_smart.services.cache_service import cache_health

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/health")


def _database_check() -> dict:
    t0 = time.perf_counter()
    db.session.execute(db.text("SELECT 1"))
    return {
        "status": "ok",
        "dialect": db.engine.dialect.name,
        "latency_ms": round((time.perf_counter() - t0) * 1000, 1),
    }


def _schema_check() -> dict:
    """Count of provisioned project schemas (PostgreSQL only)."""
    if db.engine.dialect.name != "postgresql":
        return {"status": "not_applicable"}
    prefix = current_app.config.get("PROJECT_SCHEMA_PREFIX", project_schema.DEFAULT_PREFIX)
    count = db.session.execute(
        db.text("SELECT count(*) FROM information_schema.schemata WHERE schema_name LIKE :pattern"),
        {"pattern": f"{prefix}%"},
    ).scalar()
    return {"status": "ok", "prefix": prefix, "count": count, "version": project_schema.PROJECT_SCHEMA_VERSION}


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    checks = {}
    healthy = True

    try:
        checks["database"] = _database_check()
    except Exception as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        healthy = False
        logger.error("Health check: database failed: %s", exc)

    if healthy:
        try:
            checks["projectSchemas"] = _schema_check()
        except Exception as exc:
            db.session.rollback()
            checks["projectSchemas"] = {"status": "error", "detail": str(exc)}
            logger.warning("Health check: project schema query failed: %s", exc)

    checks["cache"] = cache_health()
    checks["app"] = {
        "name": "FMEA Smart System",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "checks": checks,
    }), 200 if healthy else 503
