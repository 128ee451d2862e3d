"""Lock service backed by Kubernetes coordination.k8s.io Leases."""

from __future__ import annotations

import hashlib
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from kubernetes import client

from ..constants import ANNOTATION_LOCK_KEY, DEFAULT_LOCK_NAMESPACE, FIELD_MANAGER, LEASE_NAME_PREFIX
from ..errors import LockCollisionError

logger = logging.getLogger(__name__)

_MAX_NAME_LENGTH = 63
_DIGEST_LENGTH = 10


def lease_name(key: str) -> str:
    """Map a lock key to a valid Lease object name.

    The readable part is lowercased and slugged, so keys differing only in
    case or punctuation would collide; a hash of the exact key keeps them
    apart.

    Args:
        key: Lock key, e.g. ``broker/<instance id>``

    Returns:
        A DNS-1123 label derived from the key
    """
    slug = re.sub(r"[^a-z0-9-]+", "-", key.lower()).strip("-")
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:_DIGEST_LENGTH]
    readable = f"{LEASE_NAME_PREFIX}{slug}"[:_MAX_NAME_LENGTH - _DIGEST_LENGTH - 1].rstrip("-")
    return f"{readable}-{digest}"


def _utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class KubernetesLeaseLockService:
    """Holds one Lease per lock key in a namespace.

    ``holderIdentity`` records the owner and ``renewTime`` plus
    ``leaseDurationSeconds`` its expiry. Writes go through the API server's
    optimistic concurrency, so a 409 Conflict means someone else won.
    """

    def __init__(
        self,
        api: client.CoordinationV1Api | None = None,
        namespace: str = DEFAULT_LOCK_NAMESPACE,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.api = api or client.CoordinationV1Api()
        self.namespace = namespace
        self._now = now or (lambda: datetime.now(timezone.utc))

    def _lease_spec(self, owner: str, ttl: int, now: datetime) -> client.V1LeaseSpec:
        return client.V1LeaseSpec(
            holder_identity=owner,
            lease_duration_seconds=ttl,
            acquire_time=now,
            renew_time=now,
        )

    def _is_expired(self, spec: Any, now: datetime) -> bool:
        renewed = spec.renew_time or spec.acquire_time
        if renewed is None:
            return True
        return _utc(renewed) + timedelta(seconds=spec.lease_duration_seconds or 0) <= now

    def lock(self, key: str, owner: str, ttl: int) -> None:
        name = lease_name(key)
        now = self._now()
        lease = client.V1Lease(
            metadata=client.V1ObjectMeta(
                name=name,
                namespace=self.namespace,
                annotations={ANNOTATION_LOCK_KEY: key},
            ),
            spec=self._lease_spec(owner, ttl, now),
        )

        try:
            self.api.create_namespaced_lease(
                namespace=self.namespace,
                body=lease,
                field_manager=FIELD_MANAGER,
            )
            return
        except client.exceptions.ApiException as e:
            if e.status != 409:
                raise

        existing = self.api.read_namespaced_lease(name=name, namespace=self.namespace)
        holder = existing.spec.holder_identity
        if holder and holder != owner and not self._is_expired(existing.spec, now):
            raise LockCollisionError(f"lock {key} is held by {holder}")

        if holder and holder != owner:
            logger.info(f"Taking over expired lock {key} from {holder}")
        existing.spec = self._lease_spec(owner, ttl, now)
        try:
            self.api.replace_namespaced_lease(
                name=name,
                namespace=self.namespace,
                body=existing,
                field_manager=FIELD_MANAGER,
            )
        except client.exceptions.ApiException as e:
            if e.status == 409:
                raise LockCollisionError(f"lock {key} was taken concurrently") from e
            raise

    def release(self, key: str, owner: str) -> None:
        name = lease_name(key)
        try:
            existing = self.api.read_namespaced_lease(name=name, namespace=self.namespace)
        except client.exceptions.ApiException as e:
            if e.status == 404:
                return
            raise

        holder = existing.spec.holder_identity
        if holder != owner:
            raise LockCollisionError(f"lock {key} is held by {holder}, not {owner}")

        try:
            self.api.delete_namespaced_lease(
                name=name,
                namespace=self.namespace,
                body=client.V1DeleteOptions(
                    preconditions=client.V1Preconditions(
                        resource_version=existing.metadata.resource_version,
                    ),
                ),
            )
        except client.exceptions.ApiException as e:
            if e.status != 404:
                raise
