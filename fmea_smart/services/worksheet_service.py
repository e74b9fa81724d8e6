"""
Worksheet persistence — server side of ``/api/fmea``.

The nested legacy document in ``fmea_legacy_data`` is the single source of
truth. Every save stores it and, in the same transaction, purges and rebuilds
the atomic tables of the project from it. All reads and writes run inside the
project's own schema (see ``project_schema``).

Transaction policy: services flush, the blueprint-facing entry points commit.
Any SQLAlchemy error rolls the session back and propagates.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from fmea_smart.core.exceptions import NotFoundError, ValidationError
from fmea_smart.models import db
from fmea_smart.models.project import FmeaConfirmedState, FmeaLegacyData
from fmea_smart.models.worksheet import ATOMIC_COLLECTIONS, ATOMIC_MODELS, L1Structure
from fmea_smart.services import project_schema
from fmea_smart.services.action_priority import ap_for
from fmea_smart.services.snapshot_scoring import content_counts, score
from fmea_smart.services.worksheet_conversion import legacy_to_atomic

logger = logging.getLogger(__name__)

LEGACY_VERSION = "1.0.0"

# Request envelope keys that are not part of the worksheet document.
TRANSPORT_FIELDS = frozenset({"legacyData", "savedAt", "forceOverwrite"})


def _utcnow():
    return datetime.now(timezone.utc)


def _require_id(fmea_id) -> str:
    fmea_id = str(fmea_id or "").strip()
    if not fmea_id:
        raise ValidationError("fmeaId is required", details={"fmeaId": "missing"})
    return fmea_id


# ── Atomic rows ──────────────────────────────────────────────────────────

def _purge_atomic(fmea_id: str) -> int:
    removed = 0
    for model in reversed(ATOMIC_MODELS):
        removed += model.query.filter_by(fmea_id=fmea_id).delete(synchronize_session="fetch")
    return removed


def _insert_atomic(fmea_id: str, atomic: dict) -> dict[str, int]:
    counts = {}
    if atomic.get("l1Structure"):
        db.session.add(L1Structure.from_dict(fmea_id, atomic["l1Structure"]))
    for key, model in ATOMIC_COLLECTIONS:
        rows = atomic.get(key) or []
        db.session.add_all(model.from_dict(fmea_id, item) for item in rows)
        counts[key] = len(rows)
    db.session.flush()
    return counts


def _replace_atomic(fmea_id: str, legacy: dict) -> dict[str, int]:
    removed = _purge_atomic(fmea_id)
    counts = _insert_atomic(fmea_id, legacy_to_atomic(fmea_id, legacy))
    logger.debug("Atomic rows for %s rebuilt: removed=%d inserted=%s", fmea_id, removed, counts)
    return counts


def _save_confirmed(fmea_id: str, legacy: dict) -> FmeaConfirmedState:
    state = FmeaConfirmedState.query.filter_by(fmea_id=fmea_id).first()
    if state is None:
        state = FmeaConfirmedState(fmea_id=fmea_id)
        db.session.add(state)
    for key, column in FmeaConfirmedState.FLAG_KEYS.items():
        setattr(state, column, bool(legacy.get(key)))
    return state


# ── Save / load ──────────────────────────────────────────────────────────

def save_worksheet(payload) -> dict:
    """
    Store a worksheet document and rebuild its atomic rows.

    The body is either ``{"fmeaId", "legacyData": {...}}`` or the legacy
    document itself (carrying ``fmeaId``).

    Returns:
        ``{"success": True, "fmeaId", "savedAt", "score"}``

    Raises:
        ValidationError: missing fmeaId or a non-object document.
        ProvisioningError: the project schema could not be created.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    fmea_id = _require_id(payload.get("fmeaId"))

    legacy = payload.get("legacyData")
    if legacy is None:
        legacy = {k: v for k, v in payload.items() if k not in TRANSPORT_FIELDS}
    if not isinstance(legacy, dict):
        raise ValidationError("legacyData must be a JSON object", details={"legacyData": type(legacy).__name__})
    legacy = {**legacy, "fmeaId": fmea_id}

    schema = project_schema.open_project_schema(fmea_id)
    try:
        row = FmeaLegacyData.query.filter_by(fmea_id=fmea_id).first()
        if row is None:
            row = FmeaLegacyData(fmea_id=fmea_id)
            db.session.add(row)
        row.data = legacy
        row.version = LEGACY_VERSION
        saved_at = row.updated_at = _utcnow()

        _save_confirmed(fmea_id, legacy)
        counts = _replace_atomic(fmea_id, legacy)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Saving worksheet %s failed (schema=%s)", fmea_id, schema)
        raise

    snapshot_score = score(legacy)
    logger.info("Worksheet saved: %s schema=%s score=%d processes=%d",
                fmea_id, schema, snapshot_score, counts.get("l2Structures", 0))
    return {
        "success": True,
        "fmeaId": fmea_id,
        "savedAt": saved_at.isoformat(),
        "score": snapshot_score,
    }


def _load_legacy(fmea_id: str) -> dict:
    row = FmeaLegacyData.query.filter_by(fmea_id=fmea_id).first()
    if row is None:
        raise NotFoundError(resource="Worksheet", resource_id=fmea_id,
                            schema=project_schema.schema_for(fmea_id))
    return row.data


def _load_atomic(fmea_id: str) -> dict:
    l1 = L1Structure.query.filter_by(fmea_id=fmea_id).first()
    out = {"fmeaId": fmea_id, "l1Structure": l1.to_dict() if l1 else None}
    for key, model in ATOMIC_COLLECTIONS:
        query = model.query.filter_by(fmea_id=fmea_id)
        if hasattr(model, "sort_order"):
            query = query.order_by(model.sort_order)
        out[key] = [r.to_dict() for r in query.all()]

    if l1 is None and not out["l2Structures"]:
        raise NotFoundError(resource="AtomicWorksheet", resource_id=fmea_id,
                            schema=project_schema.schema_for(fmea_id))

    for risk in out["riskAnalyses"]:
        if not risk.get("ap"):
            risk["ap"] = ap_for(risk["severity"], risk["occurrence"], risk["detection"])

    state = FmeaConfirmedState.query.filter_by(fmea_id=fmea_id).first()
    out["confirmed"] = state.to_dict() if state else {}
    out["savedAt"] = l1.updated_at.isoformat() if l1 and l1.updated_at else None
    return out


def load_worksheet(fmea_id, fmt: str = "legacy") -> dict:
    """
    Return the stored worksheet.

    Args:
        fmea_id: Project id.
        fmt: ``"legacy"`` (nested document) or ``"atomic"`` (row collections).

    Raises:
        ValidationError: missing id or unknown format.
        NotFoundError: nothing stored for the project.
    """
    fmea_id = _require_id(fmea_id)
    if fmt not in ("legacy", "atomic"):
        raise ValidationError(f"Unknown format: {fmt}", details={"format": fmt})

    project_schema.open_project_schema(fmea_id)
    if fmt == "atomic":
        return _load_atomic(fmea_id)
    return _load_legacy(fmea_id)


# ── Diagnostics / maintenance ────────────────────────────────────────────

def _atomic_counts(fmea_id: str) -> dict[str, int]:
    counts = {"l1Structure": L1Structure.query.filter_by(fmea_id=fmea_id).count()}
    for key, model in ATOMIC_COLLECTIONS:
        counts[key] = model.query.filter_by(fmea_id=fmea_id).count()
    return counts


def worksheet_diagnostics(fmea_id) -> dict:
    """Existence, score and row counts of one project's worksheet."""
    fmea_id = _require_id(fmea_id)
    schema = project_schema.open_project_schema(fmea_id)

    row = FmeaLegacyData.query.filter_by(fmea_id=fmea_id).first()
    state = FmeaConfirmedState.query.filter_by(fmea_id=fmea_id).first()
    legacy = row.data if row else None

    return {
        "ok": True,
        "fmeaId": fmea_id,
        "schema": schema,
        "legacy": {
            "exists": row is not None,
            "version": row.version if row else None,
            "score": score(legacy),
            "counts": content_counts(legacy),
            "updatedAt": row.updated_at.isoformat() if row and row.updated_at else None,
        },
        "confirmed": state.to_dict() if state else None,
        "atomicCounts": _atomic_counts(fmea_id),
    }


def rebuild_atomic(fmea_id) -> dict:
    """Purge the atomic rows and rebuild them from the stored legacy document."""
    fmea_id = _require_id(fmea_id)
    schema = project_schema.open_project_schema(fmea_id)
    legacy = _load_legacy(fmea_id)
    try:
        counts = _replace_atomic(fmea_id, legacy)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Rebuilding atomic rows of %s failed (schema=%s)", fmea_id, schema)
        raise

    logger.info("Atomic rows rebuilt: %s schema=%s", fmea_id, schema)
    return {"ok": True, "fmeaId": fmea_id, "schema": schema, "counts": counts}
