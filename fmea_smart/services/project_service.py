"""FMEA project registration service.

Transaction policy: public functions call db.session.commit() on success.

Provides:
- Parent resolution for the Master → Family → Part hierarchy
- Create-or-update of a registration (header fields under ``fmeaInfo``)
- Listing sorted M → F → P then newest first, including worksheets that were
  saved without ever being registered
- Delete of a registration together with its worksheet data
"""
import logging
import re

from fmea_smart.core.exceptions import NotFoundError, ValidationError
from fmea_smart.models import db
from fmea_smart.models.project import FMEA_TYPES, FmeaConfirmedState, FmeaLegacyData, FmeaProject
from fmea_smart.models.worksheet import ATOMIC_MODELS
from fmea_smart.services import project_schema

logger = logging.getLogger(__name__)

PROJECT_STATUSES = {"active", "draft", "completed", "archived"}
_TYPE_ORDER = {"M": 1, "F": 2, "P": 3}
_PARENT_TYPE_RE = re.compile(r"pfm\d{2}-([mfp])", re.IGNORECASE)

# fmeaInfo key → FmeaProject column
_INFO_FIELDS = {
    "subject": "subject",
    "fmeaProjectName": "project_name",
    "companyName": "company_name",
    "customerName": "customer_name",
    "modelYear": "model_year",
    "fmeaResponsibleName": "responsible_name",
}


def _normalize_id(fmea_id) -> str:
    fmea_id = str(fmea_id or "").strip().lower()
    if not fmea_id:
        raise ValidationError("fmeaId is required", details={"fmeaId": "missing"})
    return fmea_id


def infer_type(fmea_id: str) -> str:
    """``-M`` in the id → M, ``-F`` → F, anything else P."""
    upper = fmea_id.upper()
    if "-M" in upper:
        return "M"
    if "-F" in upper:
        return "F"
    return "P"


def determine_parent_info(fmea_id: str, fmea_type=None, parent_fmea_id=None, parent_fmea_type=None):
    """Return ``(parent_id, parent_type)`` for a registration.

    A master is its own parent. Family and part projects take the selected
    parent, lower-cased, with its type either given or read from the
    ``pfmNN-<m|f|p>`` pattern of the parent id. No parent gives ``(None, None)``.
    """
    actual_type = (fmea_type or infer_type(fmea_id)).upper()
    if actual_type == "M":
        return fmea_id.lower(), "M"
    if not parent_fmea_id:
        return None, None

    parent_id = str(parent_fmea_id).lower()
    if parent_fmea_type:
        return parent_id, str(parent_fmea_type).upper()
    match = _PARENT_TYPE_RE.search(parent_id)
    return parent_id, match.group(1).upper() if match else None


def create_or_update_project(data: dict) -> FmeaProject:
    """Register a project or update its registration.

    Raises:
        ValidationError: missing fmeaId, unknown fmeaType or status.
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    fmea_id = _normalize_id(data.get("fmeaId"))

    fmea_type = str(data.get("fmeaType") or infer_type(fmea_id)).upper()
    if fmea_type not in FMEA_TYPES:
        raise ValidationError(
            f"Invalid fmeaType: '{fmea_type}'. Allowed: {list(FMEA_TYPES)}",
            details={"fmeaType": fmea_type},
        )
    status = data.get("status")
    if status and status not in PROJECT_STATUSES:
        raise ValidationError(
            f"Invalid status: '{status}'. Allowed: {sorted(PROJECT_STATUSES)}",
            details={"status": status},
        )

    parent_id, parent_type = determine_parent_info(
        fmea_id, fmea_type, data.get("parentFmeaId"), data.get("parentFmeaType"),
    )

    project = FmeaProject.query.filter_by(fmea_id=fmea_id).first()
    created = project is None
    if created:
        project = FmeaProject(fmea_id=fmea_id)
        db.session.add(project)

    project.fmea_type = fmea_type
    project.parent_fmea_id = parent_id
    project.parent_fmea_type = parent_type
    if "parentApqpNo" in data:
        project.parent_apqp_no = data.get("parentApqpNo") or None
    if status:
        project.status = status
    if data.get("step") is not None:
        project.step = int(data["step"])
    if data.get("revisionNo"):
        project.revision_no = str(data["revisionNo"])

    info = data.get("fmeaInfo") or {}
    for key, column in _INFO_FIELDS.items():
        if key in info:
            setattr(project, column, str(info.get(key) or "").strip() or None)

    db.session.commit()
    logger.info("FMEA project %s: %s type=%s parent=%s",
                "created" if created else "updated", fmea_id, fmea_type, parent_id)
    return project


def _unregistered_entry(legacy: FmeaLegacyData) -> dict:
    """List entry for a worksheet saved without a registration."""
    fmea_id = legacy.fmea_id.lower()
    fmea_type = infer_type(fmea_id)
    data = legacy.data if isinstance(legacy.data, dict) else {}
    return {
        "id": fmea_id,
        "fmeaType": fmea_type,
        "parentApqpNo": None,
        "parentFmeaId": fmea_id if fmea_type == "M" else None,
        "parentFmeaType": "M" if fmea_type == "M" else None,
        "status": "active",
        "step": 1,
        "revisionNo": "Rev.01",
        "fmeaInfo": data.get("fmeaInfo") or {"subject": fmea_id},
        "createdAt": legacy.created_at.isoformat() if legacy.created_at else None,
        "updatedAt": legacy.updated_at.isoformat() if legacy.updated_at else None,
    }


def list_projects(fmea_id=None) -> list[dict]:
    """Projects (optionally one id), sorted M → F → P then newest first."""
    target = str(fmea_id).strip().lower() if fmea_id else None

    query = FmeaProject.query
    legacy_query = FmeaLegacyData.query
    if target:
        query = query.filter_by(fmea_id=target)
        legacy_query = legacy_query.filter(db.func.lower(FmeaLegacyData.fmea_id) == target)

    result = [p.to_dict() for p in query.all()]
    registered = {item["id"] for item in result}
    for legacy in legacy_query.all():
        if legacy.fmea_id.lower() not in registered:
            result.append(_unregistered_entry(legacy))

    # Two stable sorts: newest first, then by type.
    result.sort(key=lambda p: p["createdAt"] or "", reverse=True)
    result.sort(key=lambda p: _TYPE_ORDER.get(p["fmeaType"], 3))
    return result


def delete_project(fmea_id) -> dict:
    """Delete a registration and every worksheet row stored under its id.

    Raises:
        NotFoundError: neither a registration nor a worksheet exists.
    """
    fmea_id = _normalize_id(fmea_id)
    # Switch only: an unknown id must not provision a schema before the 404.
    project_schema.use_project_schema(project_schema.schema_for(fmea_id))
    project = FmeaProject.query.filter_by(fmea_id=fmea_id).first()
    legacy_rows = FmeaLegacyData.query.filter(db.func.lower(FmeaLegacyData.fmea_id) == fmea_id).all()
    if project is None and not legacy_rows:
        raise NotFoundError(resource="FmeaProject", resource_id=fmea_id)

    stored_ids = {fmea_id} | {row.fmea_id for row in legacy_rows}
    removed = 0
    for model in (*reversed(ATOMIC_MODELS), FmeaConfirmedState, FmeaLegacyData):
        removed += model.query.filter(model.fmea_id.in_(stored_ids)).delete(synchronize_session="fetch")
    if project is not None:
        db.session.delete(project)
    db.session.commit()

    logger.info("FMEA project deleted: %s (%d worksheet rows)", fmea_id, removed)
    return {"success": True, "fmeaId": fmea_id, "deletedRows": removed}
