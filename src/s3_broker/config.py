"""Broker configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Mapping

from .constants import (
    DEFAULT_LOCK_MAX_ATTEMPTS,
    DEFAULT_LOCK_NAMESPACE,
    DEFAULT_LOCK_RETRY_INTERVAL_SECONDS,
    DEFAULT_LOCK_TTL_SECONDS,
    DEFAULT_POLICY_WRITE_TIMEOUT_SECONDS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
)
from .errors import ConfigError

ENV_PREFIX = "S3_BROKER_"

# JSON key -> (field name, converter)
_FIELDS: dict[str, tuple[str, Any]] = {
    "aws_region": ("region", str),
    "resource_prefix": ("resource_prefix", str),
    "iam_user_path": ("iam_user_path", str),
    "deploy_env": ("deploy_environment", str),
    "iam_ip_restriction_policy_arn": ("ip_restriction_policy_arn", str),
    "iam_common_user_policy_arn": ("common_user_policy_arn", str),
    "iam_permissions_boundary_arn": ("permissions_boundary_arn", str),
    "timeout_seconds": ("timeout", float),
    "request_timeout_seconds": ("request_timeout", float),
    "lock_ttl_seconds": ("lock_ttl", int),
    "lock_max_attempts": ("lock_max_attempts", int),
    "lock_retry_interval_seconds": ("lock_retry_interval", float),
    "lock_namespace": ("lock_namespace", str),
    "s3_endpoint": ("s3_endpoint", str),
    "iam_endpoint": ("iam_endpoint", str),
}

_REQUIRED = ("aws_region", "resource_prefix", "deploy_env", "iam_ip_restriction_policy_arn")


def normalize_user_path(path: str | None) -> str:
    """Normalize an IAM user path to the ``/segment/`` form IAM expects."""
    stripped = (path or "").strip("/")
    if not stripped:
        return "/"
    return f"/{stripped}/"


@dataclass(frozen=True)
class Config:
    """Process-wide broker settings, loaded once at startup."""

    region: str
    resource_prefix: str
    deploy_environment: str
    ip_restriction_policy_arn: str
    iam_user_path: str = "/"
    common_user_policy_arn: str | None = None
    permissions_boundary_arn: str | None = None
    timeout: float = DEFAULT_POLICY_WRITE_TIMEOUT_SECONDS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    lock_ttl: int = DEFAULT_LOCK_TTL_SECONDS
    lock_max_attempts: int = DEFAULT_LOCK_MAX_ATTEMPTS
    lock_retry_interval: float = DEFAULT_LOCK_RETRY_INTERVAL_SECONDS
    lock_namespace: str = DEFAULT_LOCK_NAMESPACE
    s3_endpoint: str | None = None
    iam_endpoint: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "iam_user_path", normalize_user_path(self.iam_user_path))
        if self.timeout <= 0:
            object.__setattr__(self, "timeout", DEFAULT_POLICY_WRITE_TIMEOUT_SECONDS)
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout_seconds must be positive")
        if self.lock_max_attempts < 1:
            raise ConfigError("lock_max_attempts must be at least 1")
        # The lock is never renewed, so it must outlive any operation it guards
        if self.lock_ttl <= self.request_timeout:
            raise ConfigError(
                f"lock_ttl_seconds ({self.lock_ttl}) must exceed request_timeout_seconds ({self.request_timeout})"
            )

    def bucket_name(self, instance_id: str) -> str:
        return f"{self.resource_prefix}{instance_id}"

    def username(self, binding_id: str) -> str:
        return f"{self.resource_prefix}{binding_id}"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Config:
        """Create a config from a mapping keyed like the broker JSON config.

        Raises:
            ConfigError: If a required key is missing or a value cannot be converted
        """
        missing = [key for key in _REQUIRED if not data.get(key)]
        if missing:
            raise ConfigError(f"missing required config keys: {', '.join(missing)}")

        kwargs: dict[str, Any] = {}
        for key, (field_name, convert) in _FIELDS.items():
            value = data.get(key)
            if value is None or value == "":
                continue
            try:
                kwargs[field_name] = convert(value)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"invalid value for {key}: {value!r}") from e
        return cls(**kwargs)

    @classmethod
    def from_json(cls, raw: str | bytes) -> Config:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigError(f"config is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError("config must be a JSON object")
        return cls.from_mapping(data)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Config:
        """Create a config from ``S3_BROKER_*`` environment variables.

        ``S3_BROKER_AWS_REGION`` maps to ``aws_region`` and so on.
        """
        env = os.environ if environ is None else environ
        data = {
            key: env[f"{ENV_PREFIX}{key.upper()}"]
            for key in _FIELDS
            if f"{ENV_PREFIX}{key.upper()}" in env
        }
        return cls.from_mapping(data)
