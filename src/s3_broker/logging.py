"""Structured logging configuration for the S3 Broker."""

import json
import logging
import sys
from typing import Any

from .utils.context import get_context_dict
from .utils.errors import sanitize_exception


def setup_structured_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def log_operation_event(
    logger: logging.Logger,
    operation: str,
    instance_id: str,
    event: str,
    message: str,
    level: int = logging.INFO,
    error: BaseException | None = None,
    **kwargs: Any,
) -> None:
    """Log a structured broker operation event."""
    log_data = get_context_dict({
        "component": "s3-broker",
        "operation": operation,
        "instance_id": instance_id,
        "event": event,
        "message": message,
    })
    log_data.update(kwargs)
    if error is not None:
        log_data["error"] = sanitize_exception(error)
        log_data["error_type"] = type(error).__name__
    logger.log(level, json.dumps(sanitize_secrets(log_data), default=str))


def sanitize_secrets(log_data: dict[str, Any]) -> dict[str, Any]:
    """Remove secret fields from log data."""
    secret_fields = {"access_key", "secret_key", "secret_access_key", "session_token", "password"}
    sanitized = log_data.copy()
    for field in secret_fields:
        if field in sanitized:
            sanitized[field] = "***REDACTED***"
    return sanitized
