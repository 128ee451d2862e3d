"""Cloud provider interface used by the broker."""

from __future__ import annotations

from typing import Any, Protocol


class CloudProvider(Protocol):
    """Protocol defining the S3 and IAM operations the broker drives."""

    region: str

    def bounded(self, seconds: float) -> CloudProvider:
        """Return a provider whose individual calls finish within ``seconds``."""
        ...

    def create_bucket(self, name: str) -> None:
        """Create a bucket in the provider's region."""
        ...

    def wait_until_bucket_exists(self, name: str) -> None:
        ...

    def delete_bucket(self, name: str) -> None:
        ...

    def put_public_access_block(self, name: str) -> None:
        ...

    def delete_public_access_block(self, name: str) -> None:
        ...

    def set_bucket_encryption(self, name: str, algorithm: str) -> None:
        ...

    def set_bucket_tags(self, name: str, tags: dict[str, str]) -> None:
        ...

    def get_bucket_policy(self, name: str) -> str | None:
        """Get the raw bucket policy, or None if the bucket has none."""
        ...

    def put_bucket_policy(self, name: str, policy_json: str) -> None:
        ...

    def delete_bucket_policy(self, name: str) -> None:
        ...

    def create_user(
        self,
        name: str,
        path: str,
        tags: dict[str, str],
        permissions_boundary: str | None = None,
    ) -> dict[str, Any]:
        """Create an IAM user and return its ``User`` structure."""
        ...

    def wait_until_user_exists(self, name: str) -> None:
        ...

    def delete_user(self, name: str) -> None:
        ...

    def create_access_key(self, user_name: str) -> dict[str, Any]:
        """Create an access key and return its ``AccessKey`` structure."""
        ...

    def list_access_keys(self, user_name: str) -> list[str]:
        ...

    def delete_access_key(self, user_name: str, access_key_id: str) -> None:
        ...

    def attach_user_policy(self, user_name: str, policy_arn: str) -> None:
        ...

    def detach_user_policy(self, user_name: str, policy_arn: str) -> None:
        ...

    def list_attached_user_policies(self, user_name: str) -> list[str]:
        ...
