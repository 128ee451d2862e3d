"""AWS S3 and IAM client implementation."""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Iterator

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError

from ... import metrics
from ...constants import AWS_MAX_WAIT_ATTEMPTS, AWS_WAIT_DELAY_SECONDS, MIN_CALL_TIMEOUT_SECONDS
from ...errors import is_no_such_bucket_policy

logger = logging.getLogger(__name__)


@contextmanager
def _api_call(api_type: str, operation: str) -> Iterator[None]:
    start_time = time.time()
    try:
        yield
        metrics.api_call_total.labels(api_type=api_type, operation=operation, result="success").inc()
    except Exception:
        metrics.api_call_total.labels(api_type=api_type, operation=operation, result="error").inc()
        raise
    finally:
        duration = time.time() - start_time
        metrics.api_call_duration_seconds.labels(api_type=api_type, operation=operation).observe(duration)


class AWSProvider:
    """S3 and IAM calls used by the broker.

    Methods are thin: they translate arguments to boto3 calls, record
    metrics and let ``ClientError`` propagate. Deciding what an error
    means is left to the caller.
    """

    def __init__(
        self,
        region: str,
        endpoint: str | None = None,
        iam_endpoint: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        session_token: str | None = None,
        timeout: float = 30.0,
        session: boto3.session.Session | None = None,
        retries: dict[str, Any] | None = None,
        session_lock: threading.Lock | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            region: AWS region for the S3 client and new buckets
            endpoint: Optional S3 endpoint URL
            iam_endpoint: Optional IAM endpoint URL
            access_key: Access key ID (falls back to the default credential chain)
            secret_key: Secret access key
            session_token: Optional session token for temporary credentials
            timeout: Connect and read timeout for each API call, in seconds;
                also bounds how long waiters poll
            session: boto3 session to build clients from; one is created from
                the credentials when omitted
            retries: botocore retry configuration
            session_lock: Lock serializing client creation on a shared session
        """
        self.region = region
        self.endpoint = endpoint
        self.iam_endpoint = iam_endpoint
        self.timeout = timeout
        self._session = session or boto3.session.Session(
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            aws_session_token=session_token,
        )

        self._session_lock = session_lock or threading.Lock()

        config = BotoConfig(
            signature_version="s3v4",
            connect_timeout=timeout,
            read_timeout=timeout,
            retries=retries or {"max_attempts": 3, "mode": "standard"},
        )
        # Bounded copies share the session; client creation on it is serialized
        with self._session_lock:
            self.client = self._session.client(
                "s3",
                endpoint_url=endpoint,
                region_name=region,
                config=config,
            )
            self.iam_client = self._session.client(
                "iam",
                endpoint_url=iam_endpoint,
                region_name=region,
                config=config,
            )

    def bounded(self, seconds: float) -> AWSProvider:
        """Return a provider whose calls cannot outlast ``seconds``.

        Connect and read timeouts are capped at ``seconds``, botocore retries
        are disabled and waiters poll only as often as fits. Returns ``self``
        when the existing timeout is already within the bound.
        """
        if seconds >= self.timeout:
            return self
        return AWSProvider(
            region=self.region,
            endpoint=self.endpoint,
            iam_endpoint=self.iam_endpoint,
            timeout=max(seconds, MIN_CALL_TIMEOUT_SECONDS),
            session=self._session,
            session_lock=self._session_lock,
            retries={"total_max_attempts": 1, "mode": "standard"},
        )

    def _waiter_config(self) -> dict[str, int]:
        attempts = int(self.timeout // AWS_WAIT_DELAY_SECONDS)
        return {
            "Delay": AWS_WAIT_DELAY_SECONDS,
            "MaxAttempts": max(1, min(AWS_MAX_WAIT_ATTEMPTS, attempts)),
        }

    # Buckets

    def create_bucket(self, name: str) -> None:
        """Create a bucket in the provider's region."""
        create_params: dict[str, Any] = {"Bucket": name}
        # us-east-1 rejects an explicit location constraint
        if self.region and self.region != "us-east-1":
            create_params["CreateBucketConfiguration"] = {"LocationConstraint": self.region}

        with _api_call("s3", "create_bucket"):
            self.client.create_bucket(**create_params)

    def wait_until_bucket_exists(self, name: str) -> None:
        with _api_call("s3", "wait_bucket_exists"):
            self.client.get_waiter("bucket_exists").wait(
                Bucket=name,
                WaiterConfig=self._waiter_config(),
            )

    def delete_bucket(self, name: str) -> None:
        with _api_call("s3", "delete_bucket"):
            self.client.delete_bucket(Bucket=name)

    def put_public_access_block(self, name: str) -> None:
        """Block every form of public access to a bucket."""
        with _api_call("s3", "put_public_access_block"):
            self.client.put_public_access_block(
                Bucket=name,
                PublicAccessBlockConfiguration={
                    "BlockPublicAcls": True,
                    "BlockPublicPolicy": True,
                    "IgnorePublicAcls": True,
                    "RestrictPublicBuckets": True,
                },
            )

    def delete_public_access_block(self, name: str) -> None:
        with _api_call("s3", "delete_public_access_block"):
            self.client.delete_public_access_block(Bucket=name)

    def set_bucket_encryption(self, name: str, algorithm: str) -> None:
        """Set default server-side encryption for a bucket."""
        with _api_call("s3", "put_bucket_encryption"):
            self.client.put_bucket_encryption(
                Bucket=name,
                ServerSideEncryptionConfiguration={
                    "Rules": [
                        {
                            "ApplyServerSideEncryptionByDefault": {
                                "SSEAlgorithm": algorithm,
                            }
                        }
                    ]
                },
            )

    def set_bucket_tags(self, name: str, tags: dict[str, str]) -> None:
        """Set bucket tags."""
        tag_set = [{"Key": k, "Value": v} for k, v in tags.items()]
        with _api_call("s3", "put_bucket_tagging"):
            self.client.put_bucket_tagging(
                Bucket=name,
                Tagging={"TagSet": tag_set},
            )

    def get_bucket_policy(self, name: str) -> str | None:
        """Get the raw bucket policy JSON.

        Returns:
            Policy document string, or None if no policy is set
        """
        try:
            with _api_call("s3", "get_bucket_policy"):
                response = self.client.get_bucket_policy(Bucket=name)
        except ClientError as e:
            if is_no_such_bucket_policy(e):
                return None
            raise
        return response["Policy"]

    def put_bucket_policy(self, name: str, policy_json: str) -> None:
        with _api_call("s3", "put_bucket_policy"):
            self.client.put_bucket_policy(Bucket=name, Policy=policy_json)

    def delete_bucket_policy(self, name: str) -> None:
        with _api_call("s3", "delete_bucket_policy"):
            self.client.delete_bucket_policy(Bucket=name)

    # IAM users

    def create_user(
        self,
        name: str,
        path: str,
        tags: dict[str, str],
        permissions_boundary: str | None = None,
    ) -> dict[str, Any]:
        """Create an IAM user.

        Returns:
            The ``User`` structure from the create response
        """
        params: dict[str, Any] = {
            "UserName": name,
            "Path": path,
            "Tags": [{"Key": k, "Value": v} for k, v in tags.items()],
        }
        if permissions_boundary:
            params["PermissionsBoundary"] = permissions_boundary

        with _api_call("iam", "create_user"):
            response = self.iam_client.create_user(**params)
        return response["User"]

    def wait_until_user_exists(self, name: str) -> None:
        with _api_call("iam", "wait_user_exists"):
            self.iam_client.get_waiter("user_exists").wait(
                UserName=name,
                WaiterConfig=self._waiter_config(),
            )

    def delete_user(self, name: str) -> None:
        with _api_call("iam", "delete_user"):
            self.iam_client.delete_user(UserName=name)

    def create_access_key(self, user_name: str) -> dict[str, Any]:
        """Create an access key for a user.

        Returns:
            The ``AccessKey`` structure, including the secret
        """
        with _api_call("iam", "create_access_key"):
            response = self.iam_client.create_access_key(UserName=user_name)
        return response["AccessKey"]

    def list_access_keys(self, user_name: str) -> list[str]:
        """List the IDs of every access key a user holds."""
        key_ids: list[str] = []
        with _api_call("iam", "list_access_keys"):
            paginator = self.iam_client.get_paginator("list_access_keys")
            for page in paginator.paginate(UserName=user_name):
                key_ids.extend(key["AccessKeyId"] for key in page.get("AccessKeyMetadata", []))
        return key_ids

    def delete_access_key(self, user_name: str, access_key_id: str) -> None:
        with _api_call("iam", "delete_access_key"):
            self.iam_client.delete_access_key(UserName=user_name, AccessKeyId=access_key_id)

    def attach_user_policy(self, user_name: str, policy_arn: str) -> None:
        with _api_call("iam", "attach_user_policy"):
            self.iam_client.attach_user_policy(UserName=user_name, PolicyArn=policy_arn)

    def detach_user_policy(self, user_name: str, policy_arn: str) -> None:
        with _api_call("iam", "detach_user_policy"):
            self.iam_client.detach_user_policy(UserName=user_name, PolicyArn=policy_arn)

    def list_attached_user_policies(self, user_name: str) -> list[str]:
        """List the ARNs of every managed policy attached to a user."""
        policy_arns: list[str] = []
        with _api_call("iam", "list_attached_user_policies"):
            paginator = self.iam_client.get_paginator("list_attached_user_policies")
            for page in paginator.paginate(UserName=user_name):
                policy_arns.extend(p["PolicyArn"] for p in page.get("AttachedPolicies", []))
        return policy_arns

    def test_connectivity(self) -> bool:
        """Test connectivity to the storage API."""
        try:
            self.client.list_buckets()
            return True
        except Exception as e:
            logger.error(f"Connectivity test failed: {e}")
            return False
