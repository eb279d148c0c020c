# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Structured logging for RumorMill.

Provides:
- JSON output for production and log shipping
- Colored single-line output for terminals
- Correlation IDs so every line of one vote or finalization can be joined
- ``event_fields()`` for attaching structured fields to a log call
- Token redaction, so identity tokens never reach logs in full
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

_correlation_id: ContextVar[str | None] = ContextVar("rumormill_correlation_id", default=None)

REDACTED_PREFIX_LENGTH = 8
SHORT_CORRELATION_LENGTH = 8
EXTRA_ATTR = "extra_data"
QUIET_LOGGERS = ("psycopg2",)


# =============================================================================
# CORRELATION IDS
# =============================================================================


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str, None, None]:
    """Scope a correlation ID; a fresh UUID is generated when none is given.

    Example:
        with correlation_context() as cid:
            service.submit_vote(claim_id, fingerprint, "verify")
    """
    cid = correlation_id or str(uuid.uuid4())
    reset_token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(reset_token)


# =============================================================================
# FIELD HELPERS
# =============================================================================


def redact_token(token: str | None) -> str:
    """Shorten an identity token or vote hash for log output.

    Tokens are one-way already, but full values would let log readers link
    activity of one identity across claims.
    """
    if not token:
        return "<none>"
    if len(token) <= REDACTED_PREFIX_LENGTH:
        return "…"
    return token[:REDACTED_PREFIX_LENGTH] + "…"


def event_fields(**fields: Any) -> dict[str, Any]:
    """Build the ``extra=`` mapping for a structured log call.

    Example:
        logger.info("Claim locked", extra=event_fields(claim_id=cid, status="verified"))
    """
    return {EXTRA_ATTR: fields}


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    fields = getattr(record, EXTRA_ATTR, None)
    return fields if isinstance(fields, dict) else {}


# =============================================================================
# FORMATTERS
# =============================================================================


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        cid = get_correlation_id()
        if cid:
            entry["correlation_id"] = cid
        if record.levelno >= logging.WARNING:
            entry["source"] = {"file": record.pathname, "line": record.lineno, "function": record.funcName}
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        fields = _record_fields(record)
        if fields:
            entry["extra"] = fields
        return json.dumps(entry, default=str)


class StandardFormatter(logging.Formatter):
    """Human-readable formatter; structured fields are appended as key=value."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    DIM = "\033[90m"
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__(fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        self.use_colors = use_colors and sys.stderr.isatty()

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{self.RESET}" if self.use_colors else text

    def format(self, record: logging.LogRecord) -> str:
        # Work on a copy; other handlers format the same record
        record = logging.makeLogRecord(record.__dict__)
        message = record.getMessage()

        cid = get_correlation_id()
        if cid:
            message = f"{self._paint(f'[{cid[:SHORT_CORRELATION_LENGTH]}]', self.DIM)} {message}"
        fields = _record_fields(record)
        if fields:
            message += " " + " ".join(f"{key}={value}" for key, value in fields.items())

        record.msg = message
        record.args = None
        record.levelname = self._paint(record.levelname, self.LEVEL_COLORS.get(record.levelno, ""))
        return super().format(record)


# =============================================================================
# SETUP
# =============================================================================


def _resolve_level(level: str | int | None, configured: str) -> int:
    if isinstance(level, int):
        return level
    name = (level or configured).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def _wants_json(json_format: bool | None, configured: str) -> bool:
    if json_format is not None:
        return json_format
    mode = configured.strip().lower()
    if mode in ("json", "text"):
        return mode == "json"
    # Auto: JSON unless a human is watching
    return not sys.stderr.isatty()


def configure_logging(
    level: str | int | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Install RumorMill's handlers on the root logger.

    Arguments left as None fall back to ``RUMORMILL_LOG_LEVEL``,
    ``RUMORMILL_LOG_FORMAT`` and ``RUMORMILL_LOG_FILE``. The optional log
    file always receives JSON.
    """
    from .config import get_config

    config = get_config()
    root = logging.getLogger()
    root.setLevel(_resolve_level(level, config.log_level))
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(JSONFormatter() if _wants_json(json_format, config.log_format) else StandardFormatter())
    root.addHandler(console)

    path = config.log_file if log_file is None else log_file
    if path:
        file_handler = logging.FileHandler(path)
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
