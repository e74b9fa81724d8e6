"""
Schema-per-Project provisioning.

Every FMEA project gets its own PostgreSQL schema (``pfmea_<slug>``) holding
empty copies of the worksheet tables of the shared ``public`` schema.

Architecture:
  - ``name_for``: deterministic schema name from the user-assigned FMEA id
  - ``ensure_ready``: CREATE SCHEMA / CREATE TABLE ... (LIKE public.x
    INCLUDING ALL), every statement guarded with IF NOT EXISTS and the whole
    run serialised per schema with a transaction-scoped advisory lock, so
    concurrent requests for the same project are safe
  - ``use_project_schema``: SET LOCAL search_path for the current transaction

SQLite (dev/test) has no schemas: provisioning and search_path switching are
no-ops there and rows stay isolated by their ``fmea_id`` column.
"""

import logging
import re
import threading

import sqlalchemy as sa
from flask import current_app, g, has_app_context, has_request_context

from fmea_smart.core.exceptions import ProvisioningError, ValidationError
from fmea_smart.models import db

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "pfmea_"
SOURCE_SCHEMA = "public"

# Bump when the table list changes.
PROJECT_SCHEMA_VERSION = 2
PROJECT_SCHEMA_TABLES = (
    "fmea_legacy_data",
    "fmea_confirmed_states",
    "l1_structures",
    "l2_structures",
    "l3_structures",
    "l1_functions",
    "l2_functions",
    "l3_functions",
    "failure_effects",
    "failure_modes",
    "failure_causes",
    "failure_links",
    "risk_analyses",
    "optimizations",
)

_SCHEMA_NAME_RE = re.compile(r"^[a-z0-9_]+$")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")

# Schemas provisioned by this process.
_provisioned: set[str] = set()
_provisioned_lock = threading.Lock()


def _is_postgres(engine) -> bool:
    return engine.dialect.name == "postgresql"


def _validate(schema_name: str) -> None:
    if not schema_name or not _SCHEMA_NAME_RE.match(schema_name):
        raise ValidationError(
            f"Invalid project schema name: {schema_name!r}",
            details={"schema": schema_name},
        )


# ── Naming ───────────────────────────────────────────────────────────────

def name_for(project_id, prefix: str = DEFAULT_PREFIX) -> str:
    """Schema name for an FMEA id.

    ``"PFM26-M001"`` and ``"pfm26_m001"`` both give ``"pfmea_pfm26_m001"``;
    an id with no letters or digits gives ``"pfmea_unknown"``.
    """
    slug = _NON_ALNUM_RE.sub("_", str(project_id or "").lower()).strip("_")
    return f"{prefix}{slug or 'unknown'}"


def schema_for(project_id) -> str:
    """``name_for`` with the prefix configured on the current app."""
    prefix = DEFAULT_PREFIX
    if has_app_context():
        prefix = current_app.config.get("PROJECT_SCHEMA_PREFIX", DEFAULT_PREFIX)
    return name_for(project_id, prefix)


# ── Provisioning ─────────────────────────────────────────────────────────

def ensure_ready(schema_name: str, engine=None) -> None:
    """Create the project schema and its tables if they do not exist yet.

    Args:
        schema_name: Output of ``name_for``.
        engine: SQLAlchemy engine; defaults to ``db.engine``.

    Raises:
        ValidationError: ``schema_name`` is not a safe identifier.
        ProvisioningError: any DDL statement failed. Nothing is retried.
    """
    _validate(schema_name)
    if schema_name in _provisioned:
        return

    engine = engine if engine is not None else db.engine
    if not _is_postgres(engine):
        logger.debug("Schema '%s' not provisioned: %s has no schemas",
                     schema_name, engine.dialect.name)
        with _provisioned_lock:
            _provisioned.add(schema_name)
        return

    with engine.connect() as conn:
        table = None
        try:
            conn.execute(
                sa.text("SELECT pg_advisory_xact_lock(hashtext(:name))"),
                {"name": schema_name},
            )
            conn.execute(sa.text(f'CREATE SCHEMA IF NOT EXISTS "{schema_name}"'))
            for table in PROJECT_SCHEMA_TABLES:
                conn.execute(sa.text(
                    f'CREATE TABLE IF NOT EXISTS "{schema_name}"."{table}" '
                    f'(LIKE "{SOURCE_SCHEMA}"."{table}" INCLUDING ALL)'
                ))
            conn.commit()
        except Exception as exc:
            conn.rollback()
            logger.error("Provisioning schema '%s' failed at %s: %s",
                         schema_name, table or "CREATE SCHEMA", exc)
            raise ProvisioningError(schema_name, table, exc) from exc

    with _provisioned_lock:
        _provisioned.add(schema_name)
    logger.info("Provisioned schema '%s' (%d tables, v%d)",
                schema_name, len(PROJECT_SCHEMA_TABLES), PROJECT_SCHEMA_VERSION)


def use_project_schema(schema_name: str) -> None:
    """Point the current session transaction at the project schema.

    ``SET LOCAL`` lasts until the transaction ends, so pooled connections
    never leak a project search_path into another request.
    """
    _validate(schema_name)
    if has_request_context():
        g.project_schema = schema_name
    if not _is_postgres(db.engine):
        return
    db.session.execute(sa.text(f'SET LOCAL search_path TO "{schema_name}", {SOURCE_SCHEMA}'))


def open_project_schema(project_id) -> str:
    """Provision the project's schema and switch the session to it."""
    schema = schema_for(project_id)
    ensure_ready(schema)
    use_project_schema(schema)
    return schema


def reset_provisioned_cache() -> None:
    """Forget which schemas were provisioned (tests)."""
    with _provisioned_lock:
        _provisioned.clear()
