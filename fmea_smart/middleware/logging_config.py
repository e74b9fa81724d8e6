"""
Structured logging configuration.

Every record logged while a request is active is stamped with the request id,
the FMEA id and the project schema the request works in (see
``RequestContextFilter``), so one worksheet save can be followed across the
provisioning, persistence and conversion logs.

- Production: one JSON object per line
- Development / testing: coloured single-line format
- LOG_LEVEL sets the level, LOG_FORMAT ("json" | "readable") forces a format
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_app_context, has_request_context

# Record attributes copied into JSON output when present
EXTRA_FIELDS = (
    "request_id",
    "fmea_id",
    "schema",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
)


class RequestContextFilter(logging.Filter):
    """Fill request_id / fmea_id / schema from ``flask.g`` unless already given."""

    _FROM_G = (("request_id", "request_id"), ("fmea_id", "fmea_id"), ("schema", "project_schema"))

    def filter(self, record: logging.LogRecord) -> bool:
        if not (has_app_context() and has_request_context()):
            return True
        for attr, g_key in self._FROM_G:
            if getattr(record, attr, None) is None:
                setattr(record, attr, g.get(g_key))
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(
            (key, getattr(record, key)) for key in EXTRA_FIELDS
            if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger <fmea_id@schema>: message [12ms]`` with ANSI colours."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    @staticmethod
    def _scope(record) -> str:
        fmea_id = getattr(record, "fmea_id", None)
        schema = getattr(record, "schema", None)
        if fmea_id and schema:
            return f" <{fmea_id}@{schema}>"
        if fmea_id or schema:
            return f" <{fmea_id or schema}>"
        return ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        duration = getattr(record, "duration_ms", None)
        suffix = f" [{duration:.0f}ms]" if duration is not None else ""
        line = (f"{color}{ts} {record.levelname:<8}{self.RESET} "
                f"{record.name}{self._scope(record)}: {record.getMessage()}{suffix}")
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _use_json(app) -> bool:
    forced = os.getenv("LOG_FORMAT", "").lower()
    if forced in ("json", "readable"):
        return forced == "json"
    return not app.debug and not app.testing


def configure_logging(app):
    """
    Install a single stderr handler on the root logger.

    Level defaults to INFO for JSON output and DEBUG otherwise. Re-running the
    factory (tests) replaces the handler instead of stacking a second one.
    """
    as_json = _use_json(app)
    level_name = os.getenv("LOG_LEVEL", "INFO" if as_json else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if as_json else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("urllib3", "werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not app.testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "json" if as_json else "readable")
