"""Distributed per-instance locking."""

from .base import InstanceLock, LockService, ServiceLock, lock_key
from .kubernetes import KubernetesLeaseLockService
from .memory import InMemoryLockService

__all__ = [
    "InstanceLock",
    "LockService",
    "ServiceLock",
    "lock_key",
    "KubernetesLeaseLockService",
    "InMemoryLockService",
]
