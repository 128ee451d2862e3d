"""Permission levels and the bucket actions they grant."""

from __future__ import annotations

from enum import Enum

from ..errors import UnknownPermissionError


class Permission(str, Enum):
    READ_ONLY = "read-only"
    READ_WRITE = "read-write"
    PUBLIC_READ = "public-read"
    NONE = "none"

    @property
    def actions(self) -> tuple[str, ...]:
        return _ACTIONS[self]


_ACTIONS: dict[Permission, tuple[str, ...]] = {
    Permission.READ_ONLY: (
        "s3:GetBucketLocation",
        "s3:ListBucket",
        "s3:GetBucketCORS",
        "s3:GetObject",
    ),
    Permission.READ_WRITE: (
        "s3:GetBucketLocation",
        "s3:ListBucket",
        "s3:GetBucketCORS",
        "s3:PutBucketCORS",
        "s3:GetObject",
        "s3:PutObject",
        "s3:DeleteObject",
    ),
    Permission.PUBLIC_READ: ("s3:GetObject",),
    Permission.NONE: (),
}

# Levels a binding may request
BINDABLE_PERMISSIONS = (Permission.READ_ONLY, Permission.READ_WRITE)


def validate_permissions(name: object) -> Permission:
    """Map a requested permission name to a bindable level.

    Raises:
        UnknownPermissionError: For anything other than read-only or read-write
    """
    for permission in BINDABLE_PERMISSIONS:
        if name == permission.value:
            return permission
    raise UnknownPermissionError(name)
