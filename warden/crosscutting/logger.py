"""
===============================================================================
CRC CARD — crosscutting/logger.py
===============================================================================

Component:
  JSONFormatter + setup_logger()

Responsibilities:
  - One JSON object per line: timestamp, level, logger, message, source
  - Merge the operation context (operation_id / operation) into every record
  - Copy `extra` fields, masking credentials and capping long strings

Collaborators:
  - warden/context.py (ContextVars)
  - crosscutting/config.py (log_level / log_json)

Notes:
  - warden only logs flat extras (ids, counts, file names), so nesting is
    handled by plain recursion without a depth cap.
===============================================================================
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

REDACTED = "***REDACTED***"
MAX_STR = 4_000

SENSITIVE_KEYS = frozenset(
    {
        "password",
        "new_password",
        "password_hash",
        "secret",
        "cookie_secret",
        "token",
        "raw_token",
        "token_hash",
        "cookie",
        "authorization",
        "database_url",
        "conninfo",
    }
)

# Attributes every LogRecord has; anything else came in through `extra`.
_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def redact(key: str, value: Any) -> Any:
    """Mask credentials by key and cap long strings, recursing into containers."""
    if key.lower() in SENSITIVE_KEYS:
        return REDACTED
    if isinstance(value, str) and len(value) > MAX_STR:
        return value[:MAX_STR] + "...(truncated)"
    if isinstance(value, dict):
        return {str(k): redact(str(k), v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [redact(key, v) for v in value]
    return value


class JSONFormatter(logging.Formatter):
    """LogRecord -> JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        from ..context import get_context_dict

        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}.{record.funcName}:{record.lineno}",
            "pid": os.getpid(),
            **get_context_dict(),
        }
        payload.update(
            (k, redact(k, v)) for k, v in vars(record).items() if k not in _RESERVED
        )

        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": self.formatException(record.exc_info),
            }

        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger(name: str = "warden") -> logging.Logger:
    """
    Package logger, configured once.

    Level and format come from Settings; invalid settings fall back to
    INFO + JSON so import never fails because of the environment.
    """
    log = logging.getLogger(name)

    try:
        from .config import get_settings

        settings = get_settings()
        level, use_json = settings.log_level.upper(), settings.log_json
    except ValidationError:
        level, use_json = "INFO", True

    log.setLevel(getattr(logging, level, logging.INFO))

    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            JSONFormatter()
            if use_json
            else logging.Formatter("%(levelname)s %(name)s %(message)s")
        )
        log.addHandler(handler)

    return log


logger = setup_logger()
