"""Structured JSON logging with request and job scoped context."""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from sessionpool.settings import settings

_LOGGER_NAME = "sessionpool"

# Fields stamped on every line emitted while they are bound.
_CONTEXT: Dict[str, ContextVar[Optional[str]]] = {
    name: ContextVar(f"obs_{name}", default=None)
    for name in ("request_id", "route", "user_id", "job", "session_id")
}

_REDACT_KEYS = ("token", "secret", "authorization", "api_key", "password")
_MAX_TEXT = 256
_MAX_ITEMS = 10

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}


def bind_context(**fields: Optional[str]) -> Dict[str, Token]:
    """Bind context fields (``request_id``, ``route``, ``user_id``, ``job``, ``session_id``)."""
    tokens: Dict[str, Token] = {}
    for name, value in fields.items():
        if value is None:
            continue
        var = _CONTEXT.get(name)
        if var is None:
            raise KeyError(f"unknown log context field: {name}")
        tokens[name] = var.set(value)
    return tokens


def reset_context(tokens: Mapping[str, Token]) -> None:
    for name, token in tokens.items():
        _CONTEXT[name].reset(token)


def current_request_id(default: str = "unknown") -> str:
    return _CONTEXT["request_id"].get() or default


def _scrub(key: str, value: Any) -> Any:
    if any(marker in key.lower() for marker in _REDACT_KEYS):
        return "[redacted]"
    if isinstance(value, str) and len(value) > _MAX_TEXT:
        return value[:_MAX_TEXT] + "..."
    if isinstance(value, Mapping):
        items = list(value.items())
        scrubbed = {str(k): _scrub(str(k), v) for k, v in items[:_MAX_ITEMS]}
        if len(items) > _MAX_ITEMS:
            scrubbed["_truncated"] = len(items) - _MAX_ITEMS
        return scrubbed
    if isinstance(value, (list, tuple, set, frozenset)):
        values = list(value)
        scrubbed_list = [_scrub(key, item) for item in values[:_MAX_ITEMS]]
        if len(values) > _MAX_ITEMS:
            scrubbed_list.append(f"+{len(values) - _MAX_ITEMS} more")
        return scrubbed_list
    return value


class JSONLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
            "service": settings.service_name,
            "env": settings.environment,
            "commit": settings.git_commit,
        }
        for name, var in _CONTEXT.items():
            value = var.get()
            if value:
                payload[name] = value
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key in payload:
                continue
            payload[key] = _scrub(key, value)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
    """Drop a share of info lines; warnings and errors always pass."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        if record.levelno != logging.INFO:
            return True
        rate = min(max(settings.obs_log_sampling_rate_info, 0.0), 1.0)
        return rate >= 1.0 or random.random() < rate


def configure_logging() -> logging.Logger:
    handler = logging.StreamHandler()
    handler.setFormatter(JSONLogFormatter())
    handler.addFilter(InfoSamplingFilter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.obs_log_level)
    return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or _LOGGER_NAME)
