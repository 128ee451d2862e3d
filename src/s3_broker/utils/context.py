"""Request-scoped context: correlation IDs and operation deadlines."""

from __future__ import annotations

import contextvars
import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from ..errors import OperationTimeoutError

# Context variable for storing correlation ID
correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)


def set_correlation_id(corr_id: str) -> None:
    """Set the correlation ID in the current context."""
    correlation_id.set(corr_id)


def get_correlation_id() -> str | None:
    """Get the correlation ID from the current context."""
    return correlation_id.get()


@contextmanager
def with_correlation_id(corr_id: str | None = None) -> Iterator[str]:
    """Context manager to set a correlation ID for the duration of a block.

    Args:
        corr_id: Correlation ID to use; a new one is generated when omitted

    Yields:
        The correlation ID
    """
    corr_id = corr_id or str(uuid.uuid4())
    token = correlation_id.set(corr_id)
    try:
        yield corr_id
    finally:
        correlation_id.reset(token)


def get_context_dict(additional: dict[str, Any] | None = None) -> dict[str, Any]:
    """Get a dictionary of context values.

    Args:
        additional: Additional key-value pairs to include

    Returns:
        Dictionary with context values including correlation_id
    """
    ctx = {}

    corr_id = get_correlation_id()
    if corr_id:
        ctx["correlation_id"] = corr_id

    if additional:
        ctx.update(additional)

    return ctx


class Deadline:
    """A point in monotonic time after which an operation must stop."""

    def __init__(self, seconds: float, clock: Any = time.monotonic) -> None:
        self._clock = clock
        self.seconds = seconds
        self.expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._clock() >= self.expires_at

    def check(self, step: str) -> None:
        """Raise OperationTimeoutError if the deadline has passed.

        Args:
            step: Name of the step about to run, used in the error message
        """
        if self.expired:
            raise OperationTimeoutError(
                f"deadline of {self.seconds:.1f}s exceeded before {step}"
            )

    def __repr__(self) -> str:
        return f"Deadline(remaining={self.remaining():.2f}s)"
