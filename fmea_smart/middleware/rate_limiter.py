"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in fmea_smart/__init__.py with no default limits; this module
applies limits per route category.

Usage:
    from fmea_smart.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WORKSHEET_LIMIT = "120/minute"   # autosave posts every few seconds per open tab
PROJECT_LIMIT = "60/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Worksheet endpoints: 120/minute
        - Project registration: 60/minute
        - Health check:         exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("fmea")
    if bp:
        limiter.limit(WORKSHEET_LIMIT)(bp)

    bp = app.blueprints.get("fmea_project")
    if bp:
        limiter.limit(PROJECT_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: worksheet=%s, projects=%s",
                    WORKSHEET_LIMIT, PROJECT_LIMIT)
