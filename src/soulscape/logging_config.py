"""Structured logging configuration for Soulscape.

Configurable via environment variables:
- LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR). Default: INFO
- LOG_FORMAT: Set format ('text' or 'json'). Default: text

Every handler installed here carries a ``SecretRedactingFilter``: key
material registered with ``register_secret`` is masked in messages and
tracebacks before output.

Usage:
    from soulscape.logging_config import configure_logging
    configure_logging()  # Call once at process startup
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys
from datetime import UTC, datetime
from typing import Any, ClassVar

# Key material registered at startup; masked wherever it appears.
_secrets: set[str] = set()

# Context fields callers may pass through ``extra=``.
CONTEXT_FIELDS: tuple[str, ...] = ("address", "token_id", "job_id", "block_range")

_STANDARD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "thread",
        "threadName",
        "processName",
        "process",
        "message",
        "msecs",
        "relativeCreated",
        "taskName",
    }
)


def register_secret(value: str | None) -> None:
    """Mask ``value`` (with or without its 0x prefix) in all future output."""
    if not value:
        return
    bare = value.removeprefix("0x").removeprefix("0X")
    if len(bare) >= 8:
        _secrets.add(bare.lower())


def redact(text: str) -> str:
    """Mask every registered secret in ``text``."""
    if not _secrets:
        return text
    pattern = "|".join(re.escape(s) for s in sorted(_secrets, key=len, reverse=True))
    return re.sub(f"(?:0x)?(?:{pattern})", "****", text, flags=re.IGNORECASE)


class SecretRedactingFilter(logging.Filter):
    """Rewrites record messages so key material never reaches a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


class JSONFormatter(logging.Formatter):
    """JSON lines formatter.

    Context fields (address, token_id, ...) passed via ``extra=`` are lifted
    to the top level so log pipelines can index them.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in CONTEXT_FIELDS:
            if key in record.__dict__:
                log_data[key] = record.__dict__[key]

        if record.levelno >= logging.ERROR:
            log_data["source"] = f"{record.filename}:{record.lineno}"

        if record.exc_info:
            log_data["exception"] = redact(self.formatException(record.exc_info))

        extra_keys = set(record.__dict__) - _STANDARD_ATTRS - set(CONTEXT_FIELDS)
        if extra_keys:
            log_data["extra"] = {k: record.__dict__[k] for k in sorted(extra_keys)}

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter.

    Format: TIMESTAMP LEVEL [LOGGER] MESSAGE {address=.. token_id=..}
    """

    LEVEL_COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET: ClassVar[str] = "\033[0m"

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname
        if self.use_colors:
            level_str = f"{self.LEVEL_COLORS.get(level, '')}{level:8s}{self.RESET}"
        else:
            level_str = f"{level:8s}"

        logger_name = record.name.removeprefix("soulscape.")
        line = f"{timestamp} {level_str} [{logger_name}] {record.getMessage()}"

        context = [
            f"{key}={record.__dict__[key]}" for key in CONTEXT_FIELDS if key in record.__dict__
        ]
        if context:
            line += " {" + " ".join(context) + "}"

        if record.exc_info:
            line += "\n" + redact(self.formatException(record.exc_info))
        return line


def get_log_level() -> int:
    """Read LOG_LEVEL from the environment, falling back to INFO."""
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    if level_name == "WARN":
        level_name = "WARNING"
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.INFO


def get_log_format() -> str:
    """Read LOG_FORMAT from the environment ('text' or 'json')."""
    format_name = os.environ.get("LOG_FORMAT", "text").lower()
    return format_name if format_name in ("text", "json") else "text"


def configure_logging(
    level: int | None = None,
    format_type: str | None = None,
    use_colors: bool = True,
) -> None:
    """Configure the ``soulscape`` logger tree and the uvicorn access log.

    Args:
        level: Log level; read from LOG_LEVEL when None.
        format_type: 'text' or 'json'; read from LOG_FORMAT when None.
        use_colors: Colourise text output when stderr is a TTY.
    """
    if level is None:
        level = get_log_level()
    if format_type is None:
        format_type = get_log_format()

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(SecretRedactingFilter())
    if format_type == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter(use_colors=use_colors))

    root_logger = logging.getLogger("soulscape")
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False

    uvicorn_access = logging.getLogger("uvicorn.access")
    uvicorn_access.handlers.clear()
    uvicorn_access.addHandler(handler)
    uvicorn_access.setLevel(level)
    uvicorn_access.propagate = False

    # web3 and httpx are chatty at DEBUG; keep them one notch quieter.
    for noisy in ("web3", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(max(level, logging.INFO))

    root_logger.debug(
        "Logging configured: level=%s, format=%s",
        logging.getLevelName(level),
        format_type,
    )


def get_logger(name: str) -> logging.Logger:
    """Return a logger placed under the ``soulscape`` namespace."""
    if not name.startswith("soulscape"):
        name = f"soulscape.{name}"
    return logging.getLogger(name)
