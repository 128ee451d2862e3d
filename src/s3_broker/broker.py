"""Bucket and credential lifecycle for the S3 service broker.

``S3Broker`` implements provision, deprovision, bind and unbind. Each
operation runs under the instance lock, so at most one of them touches a
given instance at a time across every broker process, and each re-reads the
remote bucket policy immediately before changing it.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator

from botocore.exceptions import BotoCoreError, ClientError

from . import metrics
from .builders import build_bucket_tags, build_user_tags, create_provider_from_config
from .config import Config
from .constants import (
    OP_BIND,
    OP_DEPROVISION,
    OP_PROVISION,
    OP_UNBIND,
    POLICY_WRITE_INTERVAL_SECONDS,
    PUBLIC_PRINCIPAL,
    SSE_ALGORITHM,
)
from .errors import (
    NoPolicyStatementError,
    NotFoundError,
    OperationTimeoutError,
    TaggingRollbackError,
    is_iam_entity_absent,
    is_no_such_bucket,
)
from .locking import InstanceLock, LockService
from .logging import log_operation_event
from .models import (
    BindParams,
    BindRequest,
    BucketCredentials,
    DeprovisionRequest,
    ProvisionParams,
    ProvisionRequest,
    UnbindRequest,
)
from .policy import (
    Permission,
    PolicyDocument,
    build_statement,
    merge_statement,
    remove_statement_for_principal,
)
from .services.base import CloudProvider
from .tracing import add_span_attribute, trace_span
from .utils.context import Deadline, get_correlation_id, with_correlation_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleanupOutcome:
    """Result of a rollback: the error that caused it and any cleanup error."""

    primary: BaseException
    secondary: BaseException | None = None


class S3Broker:
    """Drives the S3 and IAM APIs through the broker lifecycle."""

    def __init__(
        self,
        config: Config,
        provider: CloudProvider,
        lock: InstanceLock,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.provider = provider
        self.lock = lock
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_config(cls, config: Config, lock_service: LockService) -> S3Broker:
        return cls(
            config,
            create_provider_from_config(config),
            InstanceLock.from_config(lock_service, config),
        )

    def _cloud(self, deadline: Deadline | None, step: str) -> CloudProvider:
        """Check the deadline and return a provider bounded by what is left of it."""
        if deadline is None:
            return self.provider
        deadline.check(step)
        return self.provider.bounded(deadline.remaining())

    def _event(self, operation: str, instance_id: str, event: str, message: str, **kwargs: Any) -> None:
        log_operation_event(logger, operation, instance_id, event, message, **kwargs)

    @contextmanager
    def _operation(self, operation: str, instance_id: str, timeout: float | None) -> Iterator[Deadline]:
        """Run an operation under its deadline, span, metrics and instance lock."""
        deadline = Deadline(timeout or self.config.request_timeout, clock=self._clock)
        start_time = time.time()
        with with_correlation_id(get_correlation_id()), trace_span(
            f"broker.{operation}", operation=operation, attributes={"instance.id": instance_id}
        ):
            self._event(operation, instance_id, "started", f"{operation} started")
            try:
                with self.lock.hold(instance_id, deadline):
                    yield deadline
            except NotFoundError as e:
                metrics.operation_total.labels(operation=operation, result="not_found").inc()
                self._event(operation, instance_id, "not_found", str(e))
                raise
            except Exception as e:
                metrics.operation_total.labels(operation=operation, result="error").inc()
                log_operation_event(
                    logger, operation, instance_id, "failed", f"{operation} failed",
                    level=logging.ERROR, error=e,
                )
                raise
            else:
                metrics.operation_total.labels(operation=operation, result="success").inc()
                self._event(operation, instance_id, "succeeded", f"{operation} succeeded")
            finally:
                duration = time.time() - start_time
                metrics.operation_duration_seconds.labels(operation=operation).observe(duration)

    # Provision / deprovision

    def provision(self, request: ProvisionRequest, timeout: float | None = None) -> None:
        """Create, lock down, encrypt and tag the bucket for an instance.

        Raises:
            ValidationError: If the provision parameters are malformed
            TaggingRollbackError: If tagging failed; the bucket has been deleted
            ClientError: Any other storage API error, including "already exists"
        """
        params = ProvisionParams.from_raw(request.raw_parameters)
        bucket = self.config.bucket_name(request.instance_id)

        with self._operation(OP_PROVISION, request.instance_id, timeout) as deadline:
            cloud = self._cloud(deadline, "create-bucket")
            self._event(OP_PROVISION, request.instance_id, "create-bucket", "Creating bucket", bucket=bucket)
            cloud.create_bucket(bucket)

            cloud = self._cloud(deadline, "wait-until-bucket-exists")
            cloud.wait_until_bucket_exists(bucket)

            cloud = self._cloud(deadline, "put-public-access-block")
            cloud.put_public_access_block(bucket)

            cloud = self._cloud(deadline, "put-bucket-encryption")
            cloud.set_bucket_encryption(bucket, SSE_ALGORITHM)

            if params.public_bucket:
                self._make_public(request.instance_id, bucket, deadline)

            tags = build_bucket_tags(request, self.config)
            cloud = self._cloud(deadline, "tag-bucket")
            self._event(OP_PROVISION, request.instance_id, "tag-bucket", "Tagging bucket", bucket=bucket, tags=tags)
            try:
                cloud.set_bucket_tags(bucket, tags)
            except Exception as tag_error:
                self._rollback_bucket(request.instance_id, bucket, tag_error)

    def _make_public(self, instance_id: str, bucket: str, deadline: Deadline) -> None:
        cloud = self._cloud(deadline, "delete-public-access-block")
        self._event(OP_PROVISION, instance_id, "make-bucket-public", "Making bucket public", bucket=bucket)
        cloud.delete_public_access_block(bucket)

        statement = build_statement(bucket, PUBLIC_PRINCIPAL, Permission.PUBLIC_READ)
        self._put_policy_with_retry(bucket, merge_statement(None, statement), deadline)

    def _rollback_bucket(self, instance_id: str, bucket: str, tag_error: Exception) -> None:
        log_operation_event(
            logger, OP_PROVISION, instance_id, "tag-bucket", "Tagging failed, deleting bucket",
            level=logging.ERROR, error=tag_error, bucket=bucket,
        )
        try:
            self.provider.delete_bucket(bucket)
        except Exception as delete_error:
            metrics.rollback_total.labels(resource_type="bucket", result="error").inc()
            raise TaggingRollbackError(instance_id, tag_error, delete_error) from tag_error
        metrics.rollback_total.labels(resource_type="bucket", result="success").inc()
        raise TaggingRollbackError(instance_id, tag_error) from tag_error

    def deprovision(self, request: DeprovisionRequest, timeout: float | None = None) -> None:
        """Delete the bucket for an instance.

        Raises:
            NotFoundError: If the bucket does not exist
            ClientError: Any other storage API error
        """
        bucket = self.config.bucket_name(request.instance_id)

        with self._operation(OP_DEPROVISION, request.instance_id, timeout) as deadline:
            cloud = self._cloud(deadline, "delete-bucket")
            try:
                cloud.delete_bucket(bucket)
            except ClientError as e:
                if is_no_such_bucket(e):
                    raise NotFoundError(f"bucket {bucket} does not exist") from e
                raise

    # Bind / unbind

    def bind(self, request: BindRequest, timeout: float | None = None) -> BucketCredentials:
        """Create an IAM user with an access key and grant it access to the bucket.

        Any failure once the user exists deletes the user again before the
        error is raised.

        Raises:
            ValidationError: If the bind parameters are invalid; nothing is created
            ClientError: Any storage or IAM API error
        """
        params = BindParams.from_raw(request.raw_parameters)
        username = self.config.username(request.binding_id)

        with self._operation(OP_BIND, request.instance_id, timeout) as deadline:
            add_span_attribute("binding.id", request.binding_id)
            cloud = self._cloud(deadline, "create-user")
            self._event(
                OP_BIND, request.instance_id, "create-user", "Creating IAM user",
                username=username, path=self.config.iam_user_path,
            )
            user = cloud.create_user(
                username,
                self.config.iam_user_path,
                build_user_tags(request.instance_id, self.config),
                permissions_boundary=self.config.permissions_boundary_arn,
            )
            try:
                return self._grant_access(request.instance_id, username, user["Arn"], params, deadline)
            except Exception as e:
                outcome = self._rollback_user(request.instance_id, username, e)
                raise outcome.primary

    def _grant_access(
        self,
        instance_id: str,
        username: str,
        user_arn: str,
        params: BindParams,
        deadline: Deadline,
    ) -> BucketCredentials:
        bucket = self.config.bucket_name(instance_id)

        cloud = self._cloud(deadline, "wait-until-user-exists")
        cloud.wait_until_user_exists(username)

        if self.config.common_user_policy_arn:
            cloud = self._cloud(deadline, "attach-common-user-policy")
            cloud.attach_user_policy(username, self.config.common_user_policy_arn)

        if not params.allow_external_access:
            cloud = self._cloud(deadline, "attach-ip-restriction-policy")
            self._event(OP_BIND, instance_id, "restrict-access", "Attaching IP restriction policy", username=username)
            cloud.attach_user_policy(username, self.config.ip_restriction_policy_arn)

        cloud = self._cloud(deadline, "create-access-key")
        access_key = cloud.create_access_key(username)

        cloud = self._cloud(deadline, "get-bucket-policy")
        current_policy = cloud.get_bucket_policy(bucket)

        statement = build_statement(bucket, user_arn, params.permissions)
        updated_policy = merge_statement(current_policy, statement)
        self._event(
            OP_BIND, instance_id, "update-bucket-policy", "Adding user to bucket policy",
            bucket=bucket, username=username, permissions=params.permissions.value,
        )
        self._put_policy_with_retry(bucket, updated_policy, deadline)

        return BucketCredentials(
            bucket_name=bucket,
            access_key_id=access_key["AccessKeyId"],
            secret_access_key=access_key["SecretAccessKey"],
            region=self.config.region,
        )

    def _rollback_user(self, instance_id: str, username: str, primary: BaseException) -> CleanupOutcome:
        """Delete a half-bound user, logging rather than raising cleanup errors."""
        try:
            self._delete_user(username)
        except Exception as cleanup_error:
            metrics.rollback_total.labels(resource_type="iam_user", result="error").inc()
            log_operation_event(
                logger, OP_BIND, instance_id, "rollback",
                f"Deleted user {username}, and suppressed error",
                level=logging.ERROR, error=cleanup_error, username=username,
            )
            return CleanupOutcome(primary, cleanup_error)

        metrics.rollback_total.labels(resource_type="iam_user", result="success").inc()
        self._event(OP_BIND, instance_id, "rollback", f"Deleted user {username}", username=username)
        return CleanupOutcome(primary)

    def unbind(self, request: UnbindRequest, timeout: float | None = None) -> None:
        """Remove the binding's user from the bucket policy and delete the user.

        Whatever still exists of the binding is removed. Cleanup already done
        is not undone if a later step fails.

        Raises:
            NotFoundError: If neither the user nor a policy statement for it existed
            ClientError: Any storage or IAM API error
        """
        username = self.config.username(request.binding_id)
        bucket = self.config.bucket_name(request.instance_id)
        principal_suffix = f"{self.config.iam_user_path}{username}"

        with self._operation(OP_UNBIND, request.instance_id, timeout) as deadline:
            add_span_attribute("binding.id", request.binding_id)
            had_effect = False

            cloud = self._cloud(deadline, "get-bucket-policy")
            current_policy = cloud.get_bucket_policy(bucket)
            if current_policy is None:
                self._event(OP_UNBIND, request.instance_id, "get-bucket-policy", "Bucket has no policy", bucket=bucket)
            else:
                had_effect = self._remove_from_policy(
                    request.instance_id, bucket, current_policy, principal_suffix, deadline
                )

            self._event(OP_UNBIND, request.instance_id, "delete-user", "Deleting IAM user", username=username)
            try:
                self._delete_user(username, deadline)
                had_effect = True
            except NotFoundError:
                self._event(OP_UNBIND, request.instance_id, "delete-user", "IAM user already absent", username=username)

            if not had_effect:
                raise NotFoundError(f"binding {request.binding_id} does not exist")

    def _remove_from_policy(
        self,
        instance_id: str,
        bucket: str,
        current_policy: str,
        principal_suffix: str,
        deadline: Deadline,
    ) -> bool:
        try:
            updated_policy = remove_statement_for_principal(current_policy, principal_suffix)
        except NoPolicyStatementError as e:
            self._event(OP_UNBIND, instance_id, "remove-user-from-policy", str(e), bucket=bucket)
            return False

        self._event(
            OP_UNBIND, instance_id, "policy-statements", "Removed user from bucket policy",
            bucket=bucket, count=len(updated_policy.statements),
        )
        if updated_policy.is_empty:
            cloud = self._cloud(deadline, "delete-bucket-policy")
            cloud.delete_bucket_policy(bucket)
        else:
            self._put_policy_with_retry(bucket, updated_policy, deadline)
        return True

    def _delete_user(self, username: str, deadline: Deadline | None = None) -> None:
        """Delete a user's access keys, detach its policies, then delete it.

        Without a deadline, as in rollback, every call gets the provider's
        full timeout.

        Raises:
            NotFoundError: If there was nothing to delete
            ClientError: Any IAM error other than the user being absent
        """
        had_effect = False
        access_keys: list[str] = []
        policy_arns: list[str] = []

        try:
            access_keys = self._cloud(deadline, "list-access-keys").list_access_keys(username)
        except ClientError as e:
            if not is_iam_entity_absent(e):
                raise
            logger.info(f"Access keys of user {username} not listable, treating user as absent")

        try:
            policy_arns = self._cloud(deadline, "list-attached-user-policies").list_attached_user_policies(username)
        except ClientError as e:
            if not is_iam_entity_absent(e):
                raise
            logger.info(f"Policies of user {username} not listable, treating user as absent")

        for access_key_id in access_keys:
            self._cloud(deadline, "delete-access-key").delete_access_key(username, access_key_id)
            had_effect = True

        for policy_arn in policy_arns:
            self._cloud(deadline, "detach-user-policy").detach_user_policy(username, policy_arn)
            had_effect = True

        try:
            self._cloud(deadline, "delete-user").delete_user(username)
            had_effect = True
        except ClientError as e:
            if not is_iam_entity_absent(e):
                raise

        if not had_effect:
            raise NotFoundError(f"IAM user {username} does not exist")

    def _put_policy_with_retry(self, bucket: str, document: PolicyDocument, deadline: Deadline) -> None:
        """Write a bucket policy, retrying until ``config.timeout`` elapses.

        Policy writes can fail transiently right after a previous write to the
        same bucket or a new principal; retrying absorbs that.

        Raises:
            ClientError: The last write error once the timeout is reached
            OperationTimeoutError: If the request deadline expires first
        """
        policy_json = document.to_json()
        stop_at = self._clock() + self.config.timeout
        attempt = 0

        while True:
            attempt += 1
            cloud = self._cloud(deadline, "put-bucket-policy")
            try:
                cloud.put_bucket_policy(bucket, policy_json)
                metrics.policy_write_attempts_total.labels(result="success").inc()
                return
            except (ClientError, BotoCoreError) as e:
                metrics.policy_write_attempts_total.labels(result="error").inc()
                if self._clock() + POLICY_WRITE_INTERVAL_SECONDS >= stop_at:
                    logger.error(f"Giving up writing policy for bucket {bucket} after {attempt} attempts: {e}")
                    raise
                if deadline.remaining() <= POLICY_WRITE_INTERVAL_SECONDS:
                    raise OperationTimeoutError(
                        f"deadline exceeded while retrying policy write for bucket {bucket}"
                    ) from e
                logger.warning(f"Policy write for bucket {bucket} failed (attempt {attempt}), retrying: {e}")

            self._sleep(POLICY_WRITE_INTERVAL_SECONDS)
