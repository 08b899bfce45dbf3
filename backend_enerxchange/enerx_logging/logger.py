"""
Structured logging for the read model — one structlog pipeline, JSON by default.

Every record carries event_type, level, logger and an ISO-8601 UTC timestamp.
Token amounts logged as Decimal keep all 18 fractional digits; the signing key
and raw transaction bytes never reach the output.

LOG_LEVEL (default INFO) and LOG_FORMAT (json | console) are read when the
pipeline is configured. This module imports nothing from backend_enerxchange.
"""

from __future__ import annotations

import logging
import os
import sys
from decimal import Decimal
from typing import Any

import structlog

REDACTED = "***"
SECRET_KEYS = frozenset({"private_key", "raw_transaction", "signed_transaction"})


def _normalize_event(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Rename structlog 'event' to event_type; keep message if present."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    if "message" not in event_dict and "event_type" in event_dict:
        event_dict["message"] = str(event_dict["event_type"])
    return event_dict


def _stringify_decimals(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Render Decimal amounts as plain strings so the JSON renderer keeps every digit."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = format(value, "f")
    return event_dict


def _redact_secrets(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    for key in SECRET_KEYS.intersection(event_dict):
        event_dict[key] = REDACTED
    return event_dict


def _level_from_env() -> int:
    name = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    return getattr(logging, name, logging.INFO)


def configure_structlog(level: int | None = None, fmt: str | None = None) -> None:
    """
    (Re)build the processor chain.

    Called once on first import with the environment's settings; call again
    with explicit arguments to switch level or renderer at runtime.
    """
    fmt = (fmt or os.getenv("LOG_FORMAT", "json")).strip().lower()
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _normalize_event,
        _redact_secrets,
        _stringify_decimals,
    ]
    if fmt == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    else:
        processors.append(structlog.processors.JSONRenderer())
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level if level is not None else _level_from_env()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Logger for a module; the first positional argument becomes event_type.

        logger = get_logger(__name__)
        logger.warning("listing_fetch_failed", listing_id=3, error_kind="timeout")
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_address(address: str, **context: Any) -> structlog.BoundLogger:
    """Logger with address (and any extra context) bound to every call."""
    return get_logger("backend_enerxchange").bind(address=address, **context)
