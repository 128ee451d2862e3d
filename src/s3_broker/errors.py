"""Exception types and cloud error classification for the S3 Broker."""

from __future__ import annotations

from botocore.exceptions import ClientError

from .constants import (
    ERR_ACCESS_DENIED,
    ERR_NO_SUCH_BUCKET,
    ERR_NO_SUCH_BUCKET_POLICY,
    ERR_NO_SUCH_ENTITY,
)


class BrokerError(Exception):
    """Base class for all broker errors."""


class ConfigError(BrokerError, ValueError):
    """Raised when the broker configuration is incomplete or malformed."""


class NotFoundError(BrokerError):
    """The resource an operation targets is already absent."""


class ValidationError(BrokerError, ValueError):
    """Input was rejected before any mutation took place."""


class UnknownPermissionError(ValidationError):
    """The requested permission level is not one a binding may ask for."""

    def __init__(self, name: object) -> None:
        super().__init__(f"unknown permission name {name}")
        self.name = name


class PolicyParseError(ValidationError):
    """A policy document is not valid JSON."""


class PolicyShapeError(ValidationError):
    """A policy document is valid JSON but not a policy."""


class NoPolicyStatementError(BrokerError):
    """No policy statement references the given principal."""

    def __init__(self, principal_suffix: str) -> None:
        super().__init__(f"could not find a policy statement for user {principal_suffix}")
        self.principal_suffix = principal_suffix


class LockCollisionError(BrokerError):
    """The lock is currently held by another owner."""


class LockAcquisitionError(BrokerError):
    """The lock could not be obtained within the allowed attempts."""

    def __init__(self, key: str, attempts: int) -> None:
        super().__init__(f"could not acquire lock {key} after {attempts} attempts")
        self.key = key
        self.attempts = attempts


class OperationTimeoutError(BrokerError, TimeoutError):
    """The request-scoped deadline expired before the operation completed."""


class TaggingRollbackError(BrokerError):
    """Tagging a new bucket failed and the bucket was rolled back."""

    def __init__(
        self,
        instance_id: str,
        tagging_error: Exception,
        delete_error: Exception | None = None,
    ) -> None:
        if delete_error is None:
            message = (
                f"error while tagging S3 Bucket {instance_id}: {tagging_error}. "
                "Bucket has been deleted"
            )
        else:
            message = (
                f"error while tagging S3 Bucket {instance_id}: {tagging_error}.\n"
                f"additional error while deleting {instance_id}: {delete_error}"
            )
        super().__init__(message)
        self.instance_id = instance_id
        self.tagging_error = tagging_error
        self.delete_error = delete_error


def error_code(error: BaseException) -> str | None:
    """Return the AWS error code carried by a botocore ClientError."""
    if not isinstance(error, ClientError):
        return None
    return error.response.get("Error", {}).get("Code")


def is_no_such_bucket(error: BaseException) -> bool:
    return error_code(error) == ERR_NO_SUCH_BUCKET


def is_no_such_bucket_policy(error: BaseException) -> bool:
    return error_code(error) == ERR_NO_SUCH_BUCKET_POLICY


def is_iam_entity_absent(error: BaseException) -> bool:
    """Check whether an IAM error means the entity does not exist.

    With path-restricted IAM permissions (the recommended configuration) a
    user that does not exist is indistinguishable from one we may not see,
    because a missing user has no path that would grant us access. Both
    NoSuchEntity and AccessDenied therefore count as absent.
    """
    return error_code(error) in (ERR_NO_SUCH_ENTITY, ERR_ACCESS_DENIED)
