"""
FMEA Smart System
Flask Application Factory.

Usage:
    from fmea_smart import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy.exc import SQLAlchemyError

from fmea_smart.config import config
from fmea_smart.core.exceptions import NotFoundError, ProvisioningError, ValidationError
from fmea_smart.middleware.logging_config import configure_logging
from fmea_smart.middleware.rate_limiter import init_rate_limits
from fmea_smart.middleware.timing import init_request_timing
from fmea_smart.models import db
from fmea_smart.utils.errors import E, api_error

logger = logging.getLogger(__name__)

migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def _register_error_handlers(app):
    """Translate service exceptions and HTTP errors into JSON bodies."""

    @app.errorhandler(ValidationError)
    def _validation_error(exc):
        code = E.VALIDATION_REQUIRED if "missing" in exc.details.values() else E.VALIDATION_INVALID
        return api_error(code, str(exc), details=exc.details)

    @app.errorhandler(NotFoundError)
    def _not_found_error(exc):
        logger.info("Not found: %s", exc)
        return api_error(E.NOT_FOUND, f"{exc.resource} not found",
                         details={"id": exc.resource_id} if exc.resource_id is not None else None)

    @app.errorhandler(ProvisioningError)
    def _provisioning_error(exc):
        logger.error("Provisioning failed: %s", exc)
        details = {"schema": exc.schema}
        if exc.table:
            details["table"] = exc.table
        return api_error(E.PROVISIONING, "Project schema could not be prepared", details=details)

    @app.errorhandler(SQLAlchemyError)
    def _database_error(exc):
        db.session.rollback()
        logger.error("Database error on %s %s: %s", request.method, request.path, exc, exc_info=True)
        return api_error(E.DATABASE, "Database error")

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    else:
        CORS(app)


def _create_shared_tables(app):
    """Create the shared (``public``) tables that project schemas are cloned from."""
    with app.app_context():
        try:
            if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///"):
                os.makedirs(app.instance_path, exist_ok=True)
            db.create_all()
            logger.info("Shared worksheet tables ready (%s)", db.engine.dialect.name)
        except SQLAlchemyError as exc:
            logger.warning("Creating shared tables failed: %s", exc)


def _register_blueprints(app):
    from fmea_smart.blueprints.fmea_bp import fmea_bp
    from fmea_smart.blueprints.health_bp import health_bp
    from fmea_smart.blueprints.project_bp import project_bp

    for bp in (fmea_bp, project_bp, health_bp):
        app.register_blueprint(bp)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: "development", "testing" or "production". Defaults to
                     the APP_ENV env var, else "development".

    Returns:
        Configured Flask application instance.
    """
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    configure_logging(app)
    _init_extensions(app)
    init_request_timing(app)

    # Model modules register their tables on db.metadata
    from fmea_smart.models import project as _project_models      # noqa: F401
    from fmea_smart.models import worksheet as _worksheet_models  # noqa: F401

    # Tests create and drop tables per test themselves
    if not app.testing:
        _create_shared_tables(app)

    _register_blueprints(app)
    _register_error_handlers(app)
    init_rate_limits(app, limiter)

    logger.debug("FMEA Smart System app created (config=%s)", config_name)
    return app
