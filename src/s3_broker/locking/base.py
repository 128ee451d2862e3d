"""Per-instance locking across broker processes."""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Protocol

from .. import metrics
from ..config import Config
from ..constants import (
    DEFAULT_LOCK_MAX_ATTEMPTS,
    DEFAULT_LOCK_RETRY_INTERVAL_SECONDS,
    DEFAULT_LOCK_TTL_SECONDS,
    LOCK_KEY_PREFIX,
    LOCK_OWNER_PREFIX,
)
from ..errors import ConfigError, LockAcquisitionError, OperationTimeoutError
from ..utils.context import Deadline
from ..utils.errors import sanitize_exception

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceLock:
    instance_id: str
    key: str
    owner: str
    ttl: int


class LockService(Protocol):
    """An external service holding named, owned, expiring locks."""

    def lock(self, key: str, owner: str, ttl: int) -> None:
        """Take the lock for ``owner``.

        Raises:
            LockCollisionError: If another owner holds an unexpired lock
        """
        ...

    def release(self, key: str, owner: str) -> None:
        ...


def lock_key(instance_id: str) -> str:
    return f"{LOCK_KEY_PREFIX}{instance_id}"


def new_owner() -> str:
    return f"{LOCK_OWNER_PREFIX}{uuid.uuid4()}"


class InstanceLock:
    """Serializes lifecycle operations on one service instance.

    Acquisition retries a bounded number of times. Every attempt uses a new
    owner token, so a retry never conflicts with an abandoned earlier attempt
    of the same operation; such a leftover lock simply expires with its TTL.
    """

    def __init__(
        self,
        service: LockService,
        ttl: int = DEFAULT_LOCK_TTL_SECONDS,
        max_attempts: int = DEFAULT_LOCK_MAX_ATTEMPTS,
        retry_interval: float = DEFAULT_LOCK_RETRY_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.service = service
        self.ttl = ttl
        self.max_attempts = max_attempts
        self.retry_interval = retry_interval
        self._sleep = sleep

    @classmethod
    def from_config(cls, service: LockService, config: Config) -> InstanceLock:
        return cls(
            service,
            ttl=config.lock_ttl,
            max_attempts=config.lock_max_attempts,
            retry_interval=config.lock_retry_interval,
        )

    def acquire(self, instance_id: str, deadline: Deadline | None = None) -> ServiceLock:
        """Obtain the lock for an instance.

        Raises:
            LockAcquisitionError: After ``max_attempts`` failed attempts; the
                last lock service error is chained as the cause
            OperationTimeoutError: If the deadline expires while waiting
            ConfigError: If the deadline could outlast the lock TTL
        """
        key = lock_key(instance_id)
        if deadline is not None and deadline.seconds >= self.ttl:
            raise ConfigError(f"deadline of {deadline.seconds:.1f}s does not fit in lock TTL of {self.ttl}s")
        last_error: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            if deadline is not None and deadline.expired:
                raise OperationTimeoutError(f"deadline exceeded waiting for lock {key}") from last_error

            owner = new_owner()
            try:
                self.service.lock(key, owner, self.ttl)
            except Exception as e:
                last_error = e
                metrics.lock_acquire_attempts_total.labels(result="collision").inc()
                logger.debug(f"Lock {key} attempt {attempt}/{self.max_attempts} failed: {sanitize_exception(e)}")
            else:
                metrics.lock_acquire_attempts_total.labels(result="success").inc()
                logger.debug(f"Obtained lock {key} as {owner}")
                return ServiceLock(instance_id=instance_id, key=key, owner=owner, ttl=self.ttl)

            if attempt < self.max_attempts:
                delay = self.retry_interval
                if deadline is not None:
                    delay = min(delay, deadline.remaining())
                self._sleep(delay)

        logger.error(f"Failed to obtain lock {key} after {self.max_attempts} attempts: {last_error}")
        raise LockAcquisitionError(key, self.max_attempts) from last_error

    def release(self, lock: ServiceLock) -> None:
        """Release a lock. Failures are logged; the lock TTL reclaims it."""
        try:
            self.service.release(lock.key, lock.owner)
            metrics.lock_release_total.labels(result="success").inc()
        except Exception as e:
            metrics.lock_release_total.labels(result="error").inc()
            logger.error(f"Failed to release lock {lock.key} held by {lock.owner}: {sanitize_exception(e)}")

    @contextmanager
    def hold(self, instance_id: str, deadline: Deadline | None = None) -> Iterator[ServiceLock]:
        lock = self.acquire(instance_id, deadline)
        try:
            yield lock
        finally:
            self.release(lock)
