"""
FMEA Smart System
Configuration classes for the Flask app factory.

Usage:
    app.config.from_object(config[os.getenv("APP_ENV", "development")]())

Environment:
    DATABASE_URL            PostgreSQL URL (``postgres://`` is accepted)
    TEST_DATABASE_URL       database for the test suite (default: SQLite memory)
    SECRET_KEY              required in production
    REDIS_URL               rate-limit storage and snapshot cache (memory:// = in-process)
    CORS_ORIGINS            comma-separated origins, ``*`` outside production
    PROJECT_SCHEMA_PREFIX   prefix of per-project PostgreSQL schemas
    DB_STATEMENT_TIMEOUT_MS statement timeout applied in production
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'fmea_smart_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"


def _database_url(default=None):
    """DATABASE_URL with the ``postgres://`` scheme rewritten for SQLAlchemy 2."""
    raw = os.getenv("DATABASE_URL", "")
    if not raw:
        return default
    return raw.replace("postgres://", "postgresql://", 1)


def _env_int(name, default):
    raw = os.getenv(name)
    return int(raw) if raw else default


def _pool_options(**extra):
    # Worksheet saves hold one connection for the whole purge/rebuild.
    options = {
        "pool_pre_ping": True,
        "pool_size": _env_int("DB_POOL_SIZE", 5),
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
    }
    options.update(extra)
    return options


class Config:
    """Settings shared by every environment."""

    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = _pool_options()

    REDIS_URL = os.getenv("REDIS_URL", "memory://")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    PROJECT_SCHEMA_PREFIX = os.getenv("PROJECT_SCHEMA_PREFIX", "pfmea_")

    # Full worksheet documents are posted on every autosave
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # SQLite memory databases use a static pool without sizing options
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = _pool_options(connect_args={
        "options": f"-c statement_timeout={_env_int('DB_STATEMENT_TIMEOUT_MS', 30000)}",
    })

    def __init__(self):
        missing = [name for name, value in (
            ("DATABASE_URL", self.SQLALCHEMY_DATABASE_URI),
            ("SECRET_KEY", os.getenv("SECRET_KEY")),
        ) if not value]
        if missing:
            raise RuntimeError(f"Production requires environment variables: {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
