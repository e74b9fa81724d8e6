"""FMEA project registration, legacy worksheet document and confirmation flags."""

from datetime import datetime, timezone

from fmea_smart.models import db


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


FMEA_TYPES = ("M", "F", "P")  # Master | Family | Part


class FmeaProject(db.Model):
    """A registered FMEA document (master, family or part)."""

    __tablename__ = "fmea_projects"

    id = db.Column(db.Integer, primary_key=True)
    fmea_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    fmea_type = db.Column(db.String(1), nullable=False, default="P", comment="M | F | P")
    parent_apqp_no = db.Column(db.String(64), nullable=True)
    parent_fmea_id = db.Column(db.String(64), nullable=True, index=True)
    parent_fmea_type = db.Column(db.String(1), nullable=True)
    status = db.Column(db.String(30), nullable=False, default="active")
    step = db.Column(db.Integer, nullable=False, default=1)
    revision_no = db.Column(db.String(20), nullable=False, default="Rev.00")

    # ── Registration header ──
    subject = db.Column(db.String(200), nullable=True)
    project_name = db.Column(db.String(200), nullable=True)
    company_name = db.Column(db.String(200), nullable=True)
    customer_name = db.Column(db.String(200), nullable=True)
    model_year = db.Column(db.String(20), nullable=True)
    responsible_name = db.Column(db.String(100), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.fmea_id,
            "fmeaType": self.fmea_type,
            "parentApqpNo": self.parent_apqp_no,
            "parentFmeaId": self.parent_fmea_id,
            "parentFmeaType": self.parent_fmea_type,
            "status": self.status,
            "step": self.step,
            "revisionNo": self.revision_no,
            "fmeaInfo": {
                "subject": self.subject or "",
                "fmeaProjectName": self.project_name or "",
                "companyName": self.company_name or "",
                "customerName": self.customer_name or "",
                "modelYear": self.model_year or "",
                "fmeaResponsibleName": self.responsible_name or "",
            },
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<FmeaProject {self.fmea_id} type={self.fmea_type}>"


class FmeaLegacyData(db.Model):
    """
    Nested worksheet document (l1 / l2 / l3 ...) for one FMEA.

    This document is the single source of truth for the worksheet; the atomic
    tables in ``models.worksheet`` are rebuilt from it on every save.
    """

    __tablename__ = "fmea_legacy_data"

    id = db.Column(db.Integer, primary_key=True)
    fmea_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    data = db.Column(db.JSON, nullable=False, default=dict)
    version = db.Column(db.String(20), nullable=False, default="1.0.0")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    def __repr__(self):
        return f"<FmeaLegacyData {self.fmea_id} v{self.version}>"


class FmeaConfirmedState(db.Model):
    """Per-step confirmation flags of a worksheet."""

    __tablename__ = "fmea_confirmed_states"

    id = db.Column(db.Integer, primary_key=True)
    fmea_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    structure_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    l1_function_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    l2_function_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    l3_function_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    failure_l1_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    failure_l2_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    failure_l3_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    failure_link_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    # legacy document key → column
    FLAG_KEYS = {
        "structureConfirmed": "structure_confirmed",
        "l1Confirmed": "l1_function_confirmed",
        "l2Confirmed": "l2_function_confirmed",
        "l3Confirmed": "l3_function_confirmed",
        "failureL1Confirmed": "failure_l1_confirmed",
        "failureL2Confirmed": "failure_l2_confirmed",
        "failureL3Confirmed": "failure_l3_confirmed",
        "failureLinkConfirmed": "failure_link_confirmed",
    }

    def to_dict(self) -> dict:
        return {
            "structureConfirmed": self.structure_confirmed,
            "l1FunctionConfirmed": self.l1_function_confirmed,
            "l2FunctionConfirmed": self.l2_function_confirmed,
            "l3FunctionConfirmed": self.l3_function_confirmed,
            "failureL1Confirmed": self.failure_l1_confirmed,
            "failureL2Confirmed": self.failure_l2_confirmed,
            "failureL3Confirmed": self.failure_l3_confirmed,
            "failureLinkConfirmed": self.failure_link_confirmed,
        }
