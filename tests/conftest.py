"""
Shared pytest fixtures for the FMEA Smart System test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - memory_cache: LocalCache over a fresh in-memory backend
    - sample_worksheet: a small but complete legacy worksheet document
"""

import copy

import pytest

from fmea_smart import create_app
from fmea_smart.models import db as _db
from fmea_smart.services import cache_service, project_schema
from fmea_smart.services.cache_service import LocalCache


SAMPLE_WORKSHEET = {
    "l1": {
        "id": "l1-1",
        "name": "Brake Caliper Assembly",
        "types": [
            {
                "name": "Your Plant",
                "functions": [
                    {
                        "name": "Assemble caliper to drawing",
                        "requirements": [{"id": "req-1", "name": "Torque 35 Nm"}],
                    },
                ],
            },
        ],
        "failureScopes": [
            {"id": "fe-1", "reqId": "req-1", "scope": "Your Plant",
             "effect": "Loose caliper", "severity": 8},
        ],
    },
    "l2": [
        {
            "id": "p-10",
            "no": "10",
            "name": "Bolt tightening",
            "order": 1,
            "functions": [
                {"name": "Tighten bolts", "productChars": [{"id": "pc-1", "name": "Torque"}]},
            ],
            "failureModes": [{"id": "fm-1", "name": "Under-torque", "productCharId": "pc-1"}],
            "failureCauses": [{"id": "fc-1", "name": "Tool out of calibration",
                               "occurrence": 4, "processCharId": "wc-1"}],
            "l3": [
                {
                    "id": "we-1",
                    "m4": "MC",
                    "name": "Nutrunner",
                    "order": 1,
                    "functions": [
                        {"name": "Apply torque", "processChars": [{"id": "wc-1", "name": "Torque setting"}]},
                    ],
                },
            ],
        },
    ],
    "failureLinks": [{"fmId": "fm-1", "feId": "fe-1", "fcId": "fc-1"}],
    "riskData": {
        "risk-fm-1-fc-1-O": 4,
        "risk-fm-1-fc-1-D": 6,
        "prevention-fm-1-fc-1": "Daily tool calibration",
    },
    "structureConfirmed": True,
    "l1Confirmed": True,
}


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        project_schema.reset_provisioned_cache()
        cache_service.reset_backend(cache_service._MemoryBackend())
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
        cache_service.reset_backend()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def memory_cache():
    """LocalCache over its own in-memory backend (no TTL)."""
    return LocalCache(backend=cache_service._MemoryBackend())


@pytest.fixture()
def sample_worksheet():
    """Deep copy of SAMPLE_WORKSHEET so tests can mutate it freely."""
    return copy.deepcopy(SAMPLE_WORKSHEET)
