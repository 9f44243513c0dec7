"""Structured logging for the streamcue service.

Entries go to stdout as JSON by default. With ``LOG_TO_FILE=true`` they are
written to ``$LOG_DIR/<service>.log`` instead, rotated at 10MB.
"""

import enum
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _log_handler(service_name: str) -> logging.Handler:
    if os.getenv("LOG_TO_FILE", "false").lower() != "true":
        return logging.StreamHandler(sys.stdout)

    log_dir = os.getenv("LOG_DIR")
    if not log_dir:
        raise ValueError("LOG_DIR environment variable must be set when LOG_TO_FILE is enabled")
    directory = Path(log_dir).resolve()
    directory.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        directory / f"{service_name}.log",
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )


def _stamp_service(service_name: str, version: str, component: str | None) -> Any:
    def stamp(_logger: Any, _method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        event_dict.setdefault("version", version)
        if component:
            event_dict.setdefault("component", component)
        return event_dict

    return stamp


def _enum_values(_logger: Any, _method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    # Slot states, playback events and completion statuses render as their value
    for key, value in event_dict.items():
        if isinstance(value, enum.Enum):
            event_dict[key] = value.value
    return event_dict


def configure_json_logging(
    service_name: str = "streamcue",
    level: str = "INFO",
    json_output: bool = True,
    component: str | None = None,
    version: str = "0.1.0",
) -> None:
    """Configure structlog and the stdlib handler it writes through.

    Args:
        service_name: Name stamped on every entry and used for the log file name
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines (True) or the console renderer (False)
        component: Optional component name within the service
        version: Service version stamped on every entry
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = _log_handler(service_name)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logging.basicConfig(handlers=[handler], level=log_level, force=True)

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _stamp_service(service_name, version, component),
            _enum_values,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def trigger_context(trigger_key: str, user_login: str = "") -> Iterator[None]:
    """Tag every entry logged inside the block with the firing trigger and viewer."""
    context = {"trigger_key": trigger_key}
    if user_login:
        context["user_login"] = user_login
    with structlog.contextvars.bound_contextvars(**context):
        yield
