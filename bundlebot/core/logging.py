"""Structured logging foundation for bundlebot.

Provides JSON logging (prod) or colored console (dev) via structlog.
Includes an audit channel for execution and limit-order lifecycle events.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, cast

import structlog

_CONFIGURED = False

SECRET_KEYS = frozenset({"private_key", "privateKey", "walletPrivateKeys", "secret", "keypair"})


def redact_secrets(
    logger: Any, method_name: str, event_dict: structlog.typing.EventDict,
) -> structlog.typing.EventDict:
    """structlog processor: mask secret-bearing fields before rendering."""
    for key in SECRET_KEYS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, (list, tuple)):
            event_dict[key] = [mask_secret(str(v)) for v in value]
        else:
            event_dict[key] = mask_secret(str(value))
    return event_dict


def mask_secret(value: str) -> str:
    """Mask all but the last 4 characters of a secret."""
    if len(value) <= 4:
        return "****"
    return "*" * (len(value) - 4) + value[-4:]


def _configure_structlog() -> None:
    """Configure structlog based on BUNDLEBOT_ENV and BUNDLEBOT_LOG_LEVEL."""
    env = os.environ.get("BUNDLEBOT_ENV", "development")
    level_name = os.environ.get("BUNDLEBOT_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelNamesMapping().get(level_name, logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        redact_secrets,
    ]

    if env == "production":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    """Get a named logger instance.

    Args:
        name: Logger name (typically module __name__).

    Returns:
        Configured structlog bound logger.
    """
    global _CONFIGURED
    if not _CONFIGURED:
        _configure_structlog()
        _CONFIGURED = True

    return cast(structlog.typing.FilteringBoundLogger, structlog.get_logger(name))


def get_audit_logger() -> structlog.typing.FilteringBoundLogger:
    """Get the audit trail logger.

    All audit events carry event_type="audit" for downstream filtering.
    """
    return get_logger("bundlebot.audit")


def log_execution_event(
    action: str,
    token_address: str,
    **kwargs: Any,
) -> None:
    """Log an execution lifecycle event to the audit trail.

    Args:
        action: Event type (start, unit_failed, complete, error).
        token_address: Mint of the traded token.
        **kwargs: Additional context (mode, wallets, counts, error).
    """
    get_audit_logger().info(
        "execution_event",
        event_type="audit",
        action=action,
        token_address=token_address,
        **kwargs,
    )


def log_order_event(
    action: str,
    order_id: str,
    **kwargs: Any,
) -> None:
    """Log a limit-order lifecycle event (add, cancel, trigger, resolve)."""
    get_audit_logger().info(
        "limit_order_event",
        event_type="audit",
        action=action,
        order_id=order_id,
        **kwargs,
    )
