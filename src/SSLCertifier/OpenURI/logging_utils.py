"""Structured logging helpers shared across URI opening components."""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Dict, Optional, TextIO

__all__ = ["JSONFormatter", "mask_sensitive_data", "setup_logging"]

LOGGER_NAME = "SSLCertifier"

_SENSITIVE_KEYS = {
    "authorization",
    "proxy-authorization",
    "proxy_authorization",
    "password",
    "passwd",
    "secret",
    "token",
}
_URL_USERINFO = re.compile(r"(?P<scheme>[a-z][a-z0-9+.-]*://)[^/@\s]+@", re.IGNORECASE)
_BASIC_CREDENTIALS = re.compile(r"\b(basic|bearer)\s+\S+", re.IGNORECASE)

_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with credentials masked.

    Values under sensitive keys are replaced outright; other strings have
    ``user:password@`` URL userinfo and ``Basic``/``Bearer`` tokens masked.
    """

    def _mask_value(value: object, key_hint: Optional[str] = None) -> object:
        if key_hint in _SENSITIVE_KEYS and value is not None:
            return "***masked***"
        if isinstance(value, dict):
            return {
                sub_key: _mask_value(sub_value, str(sub_key).lower())
                for sub_key, sub_value in value.items()
            }
        if isinstance(value, (list, tuple)):
            return type(value)(_mask_value(item, key_hint) for item in value)
        if isinstance(value, str):
            value = _URL_USERINFO.sub(r"\g<scheme>***masked***@", value)
            return _BASIC_CREDENTIALS.sub(lambda m: f"{m.group(1)} ***masked***", value)
        return value

    return {key: _mask_value(value, key.lower()) for key, value in payload.items()}


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries, one object per line."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as JSON including any ``extra={...}`` fields."""

        now = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload), default=str)


def setup_logging(
    *,
    level: str = "INFO",
    stream: Optional[TextIO] = None,
    propagate: bool = False,
) -> logging.Logger:
    """Attach one JSON handler to the ``SSLCertifier`` logger.

    Handlers installed by earlier calls are removed first, so repeated calls
    never duplicate output. Handlers added by the application are left alone.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_sslcertifier_managed", False):
            logger.removeHandler(handler)
            if getattr(handler, "stream", None) in (sys.stdout, sys.stderr):
                continue
            handler.close()

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(JSONFormatter())
    handler._sslcertifier_managed = True  # type: ignore[attr-defined]
    logger.addHandler(handler)

    logger.propagate = propagate
    return logger
