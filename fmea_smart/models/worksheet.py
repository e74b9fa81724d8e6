"""
Atomic worksheet tables.

Each analysis step of the worksheet (structure → function → failure → risk →
optimization) is normalised into one row per item. Rows carry the owning
``fmea_id`` and the client-assigned string id (together the primary key); parent/child links are plain id
columns (the whole set is purged and rebuilt from the legacy document, so no
cascade is needed).

Serialisation uses the camelCase keys of the worksheet JSON API. Every model
declares ``API_FIELDS`` as ``(json_key, attribute)`` pairs.
"""

from datetime import datetime, timezone

from fmea_smart.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class AtomicModel(db.Model):
    """Abstract base for per-project atomic worksheet rows."""
    __abstract__ = True

    API_FIELDS: tuple = ()

    # Item ids are only unique within one worksheet.
    fmea_id = db.Column(db.String(64), primary_key=True)
    id = db.Column(db.String(80), primary_key=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    @classmethod
    def from_dict(cls, fmea_id: str, data: dict):
        """Build a row from its API dict; unknown keys and None values are skipped."""
        row = cls(id=str(data["id"]), fmea_id=fmea_id)
        for key, attr in cls.API_FIELDS:
            if data.get(key) is not None:
                setattr(row, attr, data[key])
        return row

    def to_dict(self) -> dict:
        out = {"id": self.id, "fmeaId": self.fmea_id}
        for key, attr in self.API_FIELDS:
            out[key] = getattr(self, attr)
        out["createdAt"] = self.created_at.isoformat() if self.created_at else None
        out["updatedAt"] = self.updated_at.isoformat() if self.updated_at else None
        return out


# ═══════════════════════════════════════════════════════════════════════════
#  STRUCTURE  (L1 product / L2 process / L3 work element)
# ═══════════════════════════════════════════════════════════════════════════

class L1Structure(AtomicModel):
    __tablename__ = "l1_structures"
    API_FIELDS = (("name", "name"), ("confirmed", "confirmed"))

    name = db.Column(db.String(300), nullable=False, default="")
    confirmed = db.Column(db.Boolean, nullable=False, default=False)


class L2Structure(AtomicModel):
    __tablename__ = "l2_structures"
    API_FIELDS = (("l1Id", "l1_id"), ("no", "no"), ("name", "name"), ("order", "sort_order"))

    l1_id = db.Column(db.String(80), nullable=True, index=True)
    no = db.Column(db.String(30), nullable=False, default="")
    name = db.Column(db.String(300), nullable=False, default="")
    sort_order = db.Column(db.Integer, nullable=False, default=0)


class L3Structure(AtomicModel):
    __tablename__ = "l3_structures"
    API_FIELDS = (
        ("l1Id", "l1_id"), ("l2Id", "l2_id"), ("m4", "m4"),
        ("name", "name"), ("order", "sort_order"),
    )

    l1_id = db.Column(db.String(80), nullable=True)
    l2_id = db.Column(db.String(80), nullable=False, index=True)
    m4 = db.Column(db.String(4), nullable=True, comment="MN | MC | IM | EN")
    name = db.Column(db.String(300), nullable=False, default="")
    sort_order = db.Column(db.Integer, nullable=False, default=0)


# ═══════════════════════════════════════════════════════════════════════════
#  FUNCTION
# ═══════════════════════════════════════════════════════════════════════════

class L1Function(AtomicModel):
    __tablename__ = "l1_functions"
    API_FIELDS = (
        ("l1StructId", "l1_struct_id"), ("category", "category"),
        ("functionName", "function_name"), ("requirement", "requirement"),
    )

    l1_struct_id = db.Column(db.String(80), nullable=False, index=True)
    category = db.Column(db.String(30), nullable=False, default="",
                         comment="Your Plant | Ship to Plant | User")
    function_name = db.Column(db.Text, nullable=False, default="")
    requirement = db.Column(db.Text, nullable=False, default="")


class L2Function(AtomicModel):
    __tablename__ = "l2_functions"
    API_FIELDS = (
        ("l2StructId", "l2_struct_id"), ("functionName", "function_name"),
        ("productChar", "product_char"), ("specialChar", "special_char"),
    )

    l2_struct_id = db.Column(db.String(80), nullable=False, index=True)
    function_name = db.Column(db.Text, nullable=False, default="")
    product_char = db.Column(db.Text, nullable=False, default="")
    special_char = db.Column(db.String(20), nullable=True)


class L3Function(AtomicModel):
    __tablename__ = "l3_functions"
    API_FIELDS = (
        ("l3StructId", "l3_struct_id"), ("l2StructId", "l2_struct_id"),
        ("functionName", "function_name"), ("processChar", "process_char"),
        ("specialChar", "special_char"),
    )

    l3_struct_id = db.Column(db.String(80), nullable=False, index=True)
    l2_struct_id = db.Column(db.String(80), nullable=False)
    function_name = db.Column(db.Text, nullable=False, default="")
    process_char = db.Column(db.Text, nullable=False, default="")
    special_char = db.Column(db.String(20), nullable=True)


# ═══════════════════════════════════════════════════════════════════════════
#  FAILURE  (FE effect / FM mode / FC cause) + links
# ═══════════════════════════════════════════════════════════════════════════

class FailureEffect(AtomicModel):
    __tablename__ = "failure_effects"
    API_FIELDS = (
        ("l1FuncId", "l1_func_id"), ("category", "category"),
        ("effect", "effect"), ("severity", "severity"),
    )

    l1_func_id = db.Column(db.String(80), nullable=True, index=True)
    category = db.Column(db.String(30), nullable=False, default="")
    effect = db.Column(db.Text, nullable=False, default="")
    severity = db.Column(db.Integer, nullable=True)


class FailureMode(AtomicModel):
    __tablename__ = "failure_modes"
    API_FIELDS = (
        ("l2FuncId", "l2_func_id"), ("l2StructId", "l2_struct_id"),
        ("productCharId", "product_char_id"), ("mode", "mode"),
        ("specialChar", "special_char"),
    )

    l2_func_id = db.Column(db.String(80), nullable=True)
    l2_struct_id = db.Column(db.String(80), nullable=False, index=True)
    product_char_id = db.Column(db.String(80), nullable=True)
    mode = db.Column(db.Text, nullable=False, default="")
    special_char = db.Column(db.Boolean, nullable=False, default=False)


class FailureCause(AtomicModel):
    __tablename__ = "failure_causes"
    API_FIELDS = (
        ("l3FuncId", "l3_func_id"), ("l3StructId", "l3_struct_id"),
        ("l2StructId", "l2_struct_id"), ("cause", "cause"),
        ("occurrence", "occurrence"),
    )

    l3_func_id = db.Column(db.String(80), nullable=True)
    l3_struct_id = db.Column(db.String(80), nullable=True)
    l2_struct_id = db.Column(db.String(80), nullable=False, index=True)
    cause = db.Column(db.Text, nullable=False, default="")
    occurrence = db.Column(db.Integer, nullable=True)


class FailureLink(AtomicModel):
    __tablename__ = "failure_links"
    API_FIELDS = (("fmId", "fm_id"), ("feId", "fe_id"), ("fcId", "fc_id"))

    fm_id = db.Column(db.String(80), nullable=False)
    fe_id = db.Column(db.String(80), nullable=True)
    fc_id = db.Column(db.String(80), nullable=True)


# ═══════════════════════════════════════════════════════════════════════════
#  RISK ANALYSIS + OPTIMIZATION
# ═══════════════════════════════════════════════════════════════════════════

class RiskAnalysis(AtomicModel):
    __tablename__ = "risk_analyses"
    API_FIELDS = (
        ("linkId", "link_id"), ("severity", "severity"),
        ("occurrence", "occurrence"), ("detection", "detection"), ("ap", "ap"),
        ("preventionControl", "prevention_control"),
        ("detectionControl", "detection_control"),
    )

    link_id = db.Column(db.String(80), nullable=False, index=True)
    severity = db.Column(db.Integer, nullable=False, default=0)
    occurrence = db.Column(db.Integer, nullable=False, default=0)
    detection = db.Column(db.Integer, nullable=False, default=0)
    ap = db.Column(db.String(1), nullable=True, comment="H | M | L")
    prevention_control = db.Column(db.Text, nullable=True)
    detection_control = db.Column(db.Text, nullable=True)


class Optimization(AtomicModel):
    __tablename__ = "optimizations"
    API_FIELDS = (
        ("riskId", "risk_id"), ("recommendedAction", "recommended_action"),
        ("responsible", "responsible"), ("targetDate", "target_date"),
        ("newSeverity", "new_severity"), ("newOccurrence", "new_occurrence"),
        ("newDetection", "new_detection"), ("newAP", "new_ap"),
        ("status", "status"), ("completedDate", "completed_date"),
    )

    risk_id = db.Column(db.String(80), nullable=False, index=True)
    recommended_action = db.Column(db.Text, nullable=False, default="")
    responsible = db.Column(db.String(100), nullable=False, default="")
    target_date = db.Column(db.String(20), nullable=False, default="")
    new_severity = db.Column(db.Integer, nullable=True)
    new_occurrence = db.Column(db.Integer, nullable=True)
    new_detection = db.Column(db.Integer, nullable=True)
    new_ap = db.Column(db.String(1), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="planned")
    completed_date = db.Column(db.String(20), nullable=True)


# Atomic JSON key → model, in dependency order (parents first).
ATOMIC_COLLECTIONS = (
    ("l2Structures", L2Structure),
    ("l3Structures", L3Structure),
    ("l1Functions", L1Function),
    ("l2Functions", L2Function),
    ("l3Functions", L3Function),
    ("failureEffects", FailureEffect),
    ("failureModes", FailureMode),
    ("failureCauses", FailureCause),
    ("failureLinks", FailureLink),
    ("riskAnalyses", RiskAnalysis),
    ("optimizations", Optimization),
)

ATOMIC_MODELS = (L1Structure,) + tuple(model for _, model in ATOMIC_COLLECTIONS)
