"""
Logging setup for llmcore: formatters, a request-id filter, one entry point.

Modules log through `logging.getLogger(__name__)` with an event name as the
message and structured fields in `extra=`. `configure_logging()` decides how
those records are rendered:

- production (LLMCORE_ENV=production): JSONFormatter, stdout
- anything else: DevFormatter, stderr

Every record logged inside an executor call carries that call's request_id.

Usage:
    from llmcore.observability.logging_config import configure_logging

    configure_logging()
    logging.getLogger(__name__).info(
        "llm_request_retry", extra={"provider": "anthropic", "attempt": 2},
    )
"""

from __future__ import annotations

import contextvars
import json
import logging
import os
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

# ─── Request Context ──────────────────────────────────────────────────

# contextvars rather than thread-locals: every asyncio task gets its own copy.
_request_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "llmcore_request_id", default=None
)


def new_request_id() -> str:
    return uuid.uuid4().hex[:12]


def set_request_id(request_id: Optional[str]) -> contextvars.Token:
    """
    Bind a request_id to the current task context.

    Returns the token so callers can restore the previous value with
    `reset_request_id(token)` once the request finishes.
    """
    return _request_id.set(request_id)


def reset_request_id(token: contextvars.Token) -> None:
    _request_id.reset(token)


def get_request_id() -> Optional[str]:
    """Get the current request_id, or None outside an executor call."""
    return _request_id.get()


# ─── Context Filter ───────────────────────────────────────────────────


class ContextFilter(logging.Filter):
    """Injects the active request_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = get_request_id()
        if request_id:
            record.request_id = request_id  # type: ignore[attr-defined]
        return True


# ─── Formatters ───────────────────────────────────────────────────────

# Attributes every LogRecord carries; anything else came in via `extra=`.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line, for log shippers.

    Fixed keys come first (timestamp, level, service, logger, message,
    request_id when bound); the record's `extra` fields follow in the
    order they were passed. Exceptions add `error_type` and `exception`.
    """

    def __init__(self, service: str = "llmcore"):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None)
        if request_id:
            entry["request_id"] = request_id

        entry.update(
            (key, _jsonable(value))
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in entry and not key.startswith("_")
        )

        if record.exc_info and record.exc_info[1] is not None:
            entry["error_type"] = type(record.exc_info[1]).__name__
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


_LEVEL_COLORS = {
    logging.DEBUG: "36",
    logging.INFO: "32",
    logging.WARNING: "33",
    logging.ERROR: "31",
    logging.CRITICAL: "1;41",
}


class DevFormatter(logging.Formatter):
    """`HH:MM:SS.mmm LEVEL    logger: event [key=value ...]` for terminals."""

    # Request fields worth seeing inline; everything else stays in JSON mode.
    FIELDS = (
        "request_id", "provider", "model", "attempt", "delay",
        "retries", "latency_ms", "tokens", "error",
    )

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    def _level(self, record: logging.LogRecord) -> str:
        label = f"{record.levelname:<8}"
        if not self.color:
            return label
        return f"\033[{_LEVEL_COLORS.get(record.levelno, '0')}m{label}\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        clock = f"{self.formatTime(record, '%H:%M:%S')}.{int(record.msecs):03d}"
        line = f"{clock} {self._level(record)} {record.name}: {record.getMessage()}"

        fields = [
            f"{key}={getattr(record, key)}"
            for key in self.FIELDS
            if getattr(record, key, None) is not None
        ]
        if fields:
            line += f" [{' '.join(fields)}]"

        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


# ─── Configuration ────────────────────────────────────────────────────


def configure_logging(
    env: Optional[str] = None,
    level: int = logging.INFO,
) -> None:
    """
    Install one root handler for the given environment.

    `env` defaults to LLMCORE_ENV, then "development". Production logs
    JSON to stdout; anything else logs DevFormatter text to stderr,
    colored only when stderr is a terminal. Earlier root handlers are
    replaced, so calling this twice does not duplicate output.
    """
    env = env or os.environ.get("LLMCORE_ENV", "development").lower().strip()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    if env == "production":
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(DevFormatter(color=sys.stderr.isatty()))

    handler.addFilter(ContextFilter())
    root_logger.addHandler(handler)

    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
