"""Structured logging for the payments core.

Every log line is a structlog event. Bank account numbers, webhook
signatures and key material never reach a handler: ``redact_secrets`` runs
before rendering and masks them wherever they appear in the event.

File output is opt-in through ``PAYMENTS_LOG_DIR``; without it logs go to
stderr only.
"""

import logging
import logging.handlers
import os
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog

_LEVELS = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}

# Event keys whose values are secrets or card-equivalent data
SENSITIVE_KEYS = frozenset(
    {
        "account_number",
        "accountnumber",
        "encryption_key",
        "signature",
        "shared_secret",
        "webhook_secret",
        "payment_details",
        "authorization",
    }
)

MASK = "***"


def current_env() -> str:
    return (os.getenv("PROTEAN_ENV") or os.getenv("ENVIRONMENT") or "development").lower()


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", _LEVELS.get(current_env(), "INFO")).upper()


def _mask(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: MASK if str(key).lower() in SENSITIVE_KEYS else _mask(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_mask(item) for item in value]
    return value


def redact_secrets(logger, method_name: str, event_dict: dict) -> dict:
    """structlog processor: mask sensitive keys, including inside nested dicts."""
    for key, value in list(event_dict.items()):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = MASK
        elif isinstance(value, Mapping | list | tuple):
            event_dict[key] = _mask(value)
    return event_dict


def _handlers(level: str, log_file_prefix: str) -> list[logging.Handler]:
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    handlers: list[logging.Handler] = [console]

    log_dir = os.getenv("PAYMENTS_LOG_DIR")
    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        errors = logging.handlers.RotatingFileHandler(
            filename=path / f"{log_file_prefix}_error.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        errors.setLevel(logging.ERROR)
        handlers.append(errors)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                filename=path / f"{log_file_prefix}.log",
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
        )
    return handlers


def configure_logging(log_file_prefix: str = "payments") -> None:
    """Route stdlib and structlog output through the same handlers."""
    level = get_log_level()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = _handlers(level, log_file_prefix)

    for noisy in ("protean", "httpx", "httpcore", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
    ]

    if current_env() in ("production", "staging"):
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=False, max_frames=3),
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_request(**fields: Any) -> None:
    """Attach request-scoped fields (request id, path) to every event logged until ``clear_request``."""
    structlog.contextvars.bind_contextvars(**fields)


def clear_request() -> None:
    structlog.contextvars.clear_contextvars()
