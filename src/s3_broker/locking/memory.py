"""In-process lock service for single-process deployments."""

from __future__ import annotations

import threading
import time
from typing import Callable

from ..errors import LockCollisionError


class InMemoryLockService:
    """Lock service backed by a dict; only serializes within one process."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._mutex = threading.Lock()
        self._locks: dict[str, tuple[str, float]] = {}

    def lock(self, key: str, owner: str, ttl: int) -> None:
        now = self._clock()
        with self._mutex:
            held = self._locks.get(key)
            if held is not None:
                holder, expires_at = held
                if holder != owner and expires_at > now:
                    raise LockCollisionError(f"lock {key} is held by {holder}")
            self._locks[key] = (owner, now + ttl)

    def release(self, key: str, owner: str) -> None:
        with self._mutex:
            held = self._locks.get(key)
            if held is None:
                return
            if held[0] != owner:
                raise LockCollisionError(f"lock {key} is held by {held[0]}, not {owner}")
            del self._locks[key]

    def holder(self, key: str) -> str | None:
        """Return the current unexpired owner of ``key``, if any."""
        with self._mutex:
            held = self._locks.get(key)
        if held is None or held[1] <= self._clock():
            return None
        return held[0]
