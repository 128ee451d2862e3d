"""Request, parameter and credential models."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from .errors import ValidationError
from .policy.permissions import Permission, validate_permissions

RawParameters = Union[Mapping[str, Any], str, bytes, None]


def parse_raw_parameters(raw: RawParameters) -> dict[str, Any]:
    """Decode raw request parameters into a dict.

    Raises:
        ValidationError: If the parameters are not a JSON object
    """
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"invalid parameters: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError("invalid parameters: expected a JSON object")
    return data


def _bool_param(params: dict[str, Any], name: str) -> bool:
    value = params.get(name, False)
    if not isinstance(value, bool):
        raise ValidationError(f"parameter {name} must be a boolean, got {value!r}")
    return value


@dataclass(frozen=True)
class ProvisionParams:
    public_bucket: bool = False

    @classmethod
    def from_raw(cls, raw: RawParameters) -> ProvisionParams:
        params = parse_raw_parameters(raw)
        return cls(public_bucket=_bool_param(params, "public_bucket"))


@dataclass(frozen=True)
class BindParams:
    permissions: Permission = Permission.READ_WRITE
    allow_external_access: bool = False

    @classmethod
    def from_raw(cls, raw: RawParameters) -> BindParams:
        """Parse bind parameters; permissions default to read-write.

        Raises:
            ValidationError: On malformed parameters
            UnknownPermissionError: If the permission level is not bindable
        """
        params = parse_raw_parameters(raw)
        permissions = validate_permissions(params.get("permissions", Permission.READ_WRITE.value))
        return cls(
            permissions=permissions,
            allow_external_access=_bool_param(params, "allow_external_access"),
        )


@dataclass(frozen=True)
class ProvisionRequest:
    instance_id: str
    service_id: str = ""
    plan_id: str = ""
    org_guid: str = ""
    space_guid: str = ""
    raw_parameters: RawParameters = field(default=None, compare=False)


@dataclass(frozen=True)
class DeprovisionRequest:
    instance_id: str
    service_id: str = ""
    plan_id: str = ""


@dataclass(frozen=True)
class BindRequest:
    instance_id: str
    binding_id: str
    service_id: str = ""
    plan_id: str = ""
    raw_parameters: RawParameters = field(default=None, compare=False)


@dataclass(frozen=True)
class UnbindRequest:
    instance_id: str
    binding_id: str
    service_id: str = ""
    plan_id: str = ""


@dataclass(frozen=True)
class BucketCredentials:
    """Credentials handed back on a successful bind. Never persisted."""

    bucket_name: str
    access_key_id: str
    secret_access_key: str = field(repr=False)
    region: str

    def to_dict(self) -> dict[str, str]:
        return {
            "bucket_name": self.bucket_name,
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
            "aws_region": self.region,
        }
