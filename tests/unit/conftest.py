"""Shared fixtures for unit tests."""

from __future__ import annotations

import itertools
import json
import threading
import time
from typing import Any

import pytest
from botocore.exceptions import ClientError

from s3_broker.broker import S3Broker
from s3_broker.config import Config
from s3_broker.locking import InMemoryLockService, InstanceLock

ACCOUNT_ID = "123456789012"


def client_error(code: str, operation: str = "Operation", message: str | None = None) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message or code}}, operation)


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeCloud:
    """In-memory stand-in for the S3 and IAM APIs the broker drives."""

    region = "eu-west-2"

    def __init__(self, policy_read_delay: float = 0.0) -> None:
        self.buckets: dict[str, dict[str, Any]] = {}
        self.users: dict[str, dict[str, Any]] = {}
        self.policy_read_delay = policy_read_delay
        self.calls: list[str] = []
        self.bounds: list[float] = []
        self.failures: dict[str, list[Exception]] = {}
        self._ids = itertools.count(1)
        self._mutex = threading.RLock()

    def fail(self, method: str, *errors: Exception) -> None:
        """Make the next calls of ``method`` raise the given errors in order."""
        self.failures.setdefault(method, []).extend(errors)

    def _record(self, method: str) -> None:
        with self._mutex:
            self.calls.append(method)
            pending = self.failures.get(method)
            if pending:
                raise pending.pop(0)

    def _bucket(self, name: str, operation: str) -> dict[str, Any]:
        if name not in self.buckets:
            raise client_error("NoSuchBucket", operation, "The specified bucket does not exist")
        return self.buckets[name]

    def _user(self, name: str, operation: str) -> dict[str, Any]:
        if name not in self.users:
            raise client_error("NoSuchEntity", operation, f"The user with name {name} cannot be found.")
        return self.users[name]

    def bounded(self, seconds: float) -> FakeCloud:
        self.bounds.append(seconds)
        return self

    # S3

    def create_bucket(self, name: str) -> None:
        self._record("create_bucket")
        with self._mutex:
            if name in self.buckets:
                raise client_error("BucketAlreadyOwnedByYou", "CreateBucket")
            self.buckets[name] = {
                "public_access_block": False,
                "encryption": None,
                "tags": {},
                "policy": None,
            }

    def wait_until_bucket_exists(self, name: str) -> None:
        self._record("wait_until_bucket_exists")

    def delete_bucket(self, name: str) -> None:
        self._record("delete_bucket")
        with self._mutex:
            self._bucket(name, "DeleteBucket")
            del self.buckets[name]

    def put_public_access_block(self, name: str) -> None:
        self._record("put_public_access_block")
        self._bucket(name, "PutPublicAccessBlock")["public_access_block"] = True

    def delete_public_access_block(self, name: str) -> None:
        self._record("delete_public_access_block")
        self._bucket(name, "DeletePublicAccessBlock")["public_access_block"] = False

    def set_bucket_encryption(self, name: str, algorithm: str) -> None:
        self._record("set_bucket_encryption")
        self._bucket(name, "PutBucketEncryption")["encryption"] = algorithm

    def set_bucket_tags(self, name: str, tags: dict[str, str]) -> None:
        self._record("set_bucket_tags")
        self._bucket(name, "PutBucketTagging")["tags"] = dict(tags)

    def get_bucket_policy(self, name: str) -> str | None:
        self._record("get_bucket_policy")
        policy = self._bucket(name, "GetBucketPolicy")["policy"]
        if self.policy_read_delay:
            time.sleep(self.policy_read_delay)
        return policy

    def put_bucket_policy(self, name: str, policy_json: str) -> None:
        self._record("put_bucket_policy")
        json.loads(policy_json)
        self._bucket(name, "PutBucketPolicy")["policy"] = policy_json

    def delete_bucket_policy(self, name: str) -> None:
        self._record("delete_bucket_policy")
        self._bucket(name, "DeleteBucketPolicy")["policy"] = None

    def policy_of(self, name: str) -> dict[str, Any] | None:
        policy = self.buckets[name]["policy"]
        return None if policy is None else json.loads(policy)

    # IAM

    def create_user(
        self,
        name: str,
        path: str,
        tags: dict[str, str],
        permissions_boundary: str | None = None,
    ) -> dict[str, Any]:
        self._record("create_user")
        with self._mutex:
            if name in self.users:
                raise client_error("EntityAlreadyExists", "CreateUser")
            user = {
                "UserName": name,
                "Path": path,
                "Arn": f"arn:aws:iam::{ACCOUNT_ID}:user{path}{name}",
                "tags": dict(tags),
                "boundary": permissions_boundary,
                "keys": [],
                "policies": [],
            }
            self.users[name] = user
        return {"UserName": name, "Path": path, "Arn": user["Arn"]}

    def wait_until_user_exists(self, name: str) -> None:
        self._record("wait_until_user_exists")

    def delete_user(self, name: str) -> None:
        self._record("delete_user")
        with self._mutex:
            user = self._user(name, "DeleteUser")
            if user["keys"] or user["policies"]:
                raise client_error("DeleteConflict", "DeleteUser")
            del self.users[name]

    def create_access_key(self, user_name: str) -> dict[str, Any]:
        self._record("create_access_key")
        user = self._user(user_name, "CreateAccessKey")
        n = next(self._ids)
        key = {
            "UserName": user_name,
            "AccessKeyId": f"AKIAFAKE{n:012d}",
            "SecretAccessKey": f"secret-{n}",
            "Status": "Active",
        }
        user["keys"].append(key["AccessKeyId"])
        return key

    def list_access_keys(self, user_name: str) -> list[str]:
        self._record("list_access_keys")
        return list(self._user(user_name, "ListAccessKeys")["keys"])

    def delete_access_key(self, user_name: str, access_key_id: str) -> None:
        self._record("delete_access_key")
        self._user(user_name, "DeleteAccessKey")["keys"].remove(access_key_id)

    def attach_user_policy(self, user_name: str, policy_arn: str) -> None:
        self._record("attach_user_policy")
        self._user(user_name, "AttachUserPolicy")["policies"].append(policy_arn)

    def detach_user_policy(self, user_name: str, policy_arn: str) -> None:
        self._record("detach_user_policy")
        self._user(user_name, "DetachUserPolicy")["policies"].remove(policy_arn)

    def list_attached_user_policies(self, user_name: str) -> list[str]:
        self._record("list_attached_user_policies")
        return list(self._user(user_name, "ListAttachedUserPolicies")["policies"])


@pytest.fixture
def config() -> Config:
    return Config(
        region="eu-west-2",
        resource_prefix="paas-s3-broker-",
        deploy_environment="test-env",
        ip_restriction_policy_arn=f"arn:aws:iam::{ACCOUNT_ID}:policy/ip-restriction",
        iam_user_path="/paas-s3-broker/",
        timeout=10.0,
    )


@pytest.fixture
def cloud() -> FakeCloud:
    return FakeCloud()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def lock_service() -> InMemoryLockService:
    return InMemoryLockService()


@pytest.fixture
def broker(config: Config, cloud: FakeCloud, clock: FakeClock, lock_service: InMemoryLockService) -> S3Broker:
    lock = InstanceLock(lock_service, ttl=90, max_attempts=3, retry_interval=0.0, sleep=clock.sleep)
    return S3Broker(config, cloud, lock, sleep=clock.sleep, clock=clock)
