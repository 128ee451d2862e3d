"""Utility functions for the S3 Broker."""

from .context import (
    Deadline,
    get_context_dict,
    get_correlation_id,
    set_correlation_id,
    with_correlation_id,
)
from .errors import sanitize_dict, sanitize_error_message, sanitize_exception

__all__ = [
    "Deadline",
    "get_context_dict",
    "get_correlation_id",
    "set_correlation_id",
    "with_correlation_id",
    "sanitize_dict",
    "sanitize_error_message",
    "sanitize_exception",
]
