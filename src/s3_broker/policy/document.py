"""Bucket policy documents and the pure operations over them.

A bucket policy is a single JSON document shared by every binding of an
instance. Bindings add and remove their own statement with a whole-document
read-modify-write, so the functions here never touch statements they were
not asked to change, and preserve keys they do not model (``Sid``,
``Condition``, non-AWS principals and so on).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Union

from ..constants import EFFECT_ALLOW, POLICY_VERSION, PRINCIPAL_AWS
from ..errors import (
    NoPolicyStatementError,
    PolicyParseError,
    PolicyShapeError,
    UnknownPermissionError,
    ValidationError,
)
from .permissions import Permission


def bucket_arns(bucket_name: str) -> tuple[str, str]:
    """Return the bucket ARN and the ARN covering every object in it."""
    bare = f"arn:aws:s3:::{bucket_name}"
    return bare, f"{bare}/*"


def _string_list(value: Any, what: str) -> tuple[str, ...]:
    # IAM returns single-element lists as bare strings
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return tuple(value)
    raise PolicyShapeError(f"{what} must be a string or a list of strings, got {value!r}")


@dataclass(frozen=True)
class Principal:
    """The identities a statement applies to.

    ``arns`` holds the ``AWS`` principals in document order; any other
    principal types are carried through untouched in ``other``.
    """

    arns: tuple[str, ...]
    other: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, value: Any) -> Principal:
        if isinstance(value, str):
            return cls(arns=(value,))
        if not isinstance(value, dict):
            raise PolicyShapeError(f"Principal must be a string or an object, got {value!r}")
        other = {k: v for k, v in value.items() if k != PRINCIPAL_AWS}
        arns = _string_list(value[PRINCIPAL_AWS], "Principal.AWS") if PRINCIPAL_AWS in value else ()
        return cls(arns=arns, other=other)

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = dict(self.other)
        if len(self.arns) == 1:
            wire[PRINCIPAL_AWS] = self.arns[0]
        elif self.arns:
            wire[PRINCIPAL_AWS] = list(self.arns)
        return wire

    @property
    def is_empty(self) -> bool:
        return not self.arns and not self.other

    def without_suffix(self, suffix: str) -> Principal:
        return replace(self, arns=tuple(arn for arn in self.arns if not arn.endswith(suffix)))


@dataclass(frozen=True)
class Statement:
    effect: str
    actions: tuple[str, ...]
    resources: tuple[str, ...]
    principal: Principal | None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, value: Any) -> Statement:
        if not isinstance(value, dict):
            raise PolicyShapeError(f"Statement must be an object, got {value!r}")
        effect = value.get("Effect", "")
        if not isinstance(effect, str):
            raise PolicyShapeError(f"Effect must be a string, got {effect!r}")
        principal = Principal.from_wire(value["Principal"]) if "Principal" in value else None
        return cls(
            effect=effect,
            actions=_string_list(value["Action"], "Action") if "Action" in value else (),
            resources=_string_list(value["Resource"], "Resource") if "Resource" in value else (),
            principal=principal,
            extra={
                k: v
                for k, v in value.items()
                if k not in ("Effect", "Action", "Resource", "Principal")
            },
        )

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"Effect": self.effect}
        if self.actions or "NotAction" not in self.extra:
            wire["Action"] = list(self.actions)
        if self.resources or "NotResource" not in self.extra:
            wire["Resource"] = list(self.resources)
        if self.principal is not None:
            wire["Principal"] = self.principal.to_wire()
        wire.update(self.extra)
        return wire


@dataclass(frozen=True)
class PolicyDocument:
    version: str
    statements: tuple[Statement, ...]
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.statements

    def to_dict(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"Version": self.version}
        wire.update(self.extra)
        wire["Statement"] = [stmt.to_wire() for stmt in self.statements]
        return wire

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


PolicyInput = Union[PolicyDocument, Mapping[str, Any], str, bytes, None]


def parse_policy(raw: PolicyDocument | Mapping[str, Any] | str | bytes) -> PolicyDocument:
    """Parse a bucket policy as returned by the storage API.

    Raises:
        PolicyParseError: If ``raw`` is not valid JSON
        PolicyShapeError: If ``raw`` is valid JSON but not a policy document
    """
    if isinstance(raw, PolicyDocument):
        return raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PolicyParseError(f"policy is not valid JSON: {e}") from e
    else:
        data = raw

    if not isinstance(data, Mapping) or ("Version" not in data and "Statement" not in data):
        raise PolicyShapeError(
            "provided json was well-formed, but did not unmarshal into a Policy. "
            f"Provided JSON: {raw!r}"
        )

    version = data.get("Version", "")
    if not isinstance(version, str):
        raise PolicyShapeError(f"Version must be a string, got {version!r}")
    statements = data.get("Statement", [])
    if isinstance(statements, dict):
        statements = [statements]
    if not isinstance(statements, list):
        raise PolicyShapeError(f"Statement must be a list, got {statements!r}")

    return PolicyDocument(
        version=version,
        statements=tuple(Statement.from_wire(stmt) for stmt in statements),
        extra={k: v for k, v in data.items() if k not in ("Version", "Statement")},
    )


def build_statement(
    bucket_name: str,
    principal_arn: str,
    permission: Permission | str,
) -> Statement:
    """Build an Allow statement granting ``principal_arn`` a permission level on a bucket."""
    try:
        level = Permission(permission)
    except ValueError as e:
        raise UnknownPermissionError(permission) from e
    return Statement(
        effect=EFFECT_ALLOW,
        actions=level.actions,
        resources=bucket_arns(bucket_name),
        principal=Principal(arns=(principal_arn,)),
    )


def merge_statement(existing: PolicyInput, statement: Statement) -> PolicyDocument:
    """Append ``statement`` to an existing policy, or start a new one.

    An absent policy (``None`` or an empty string) yields a fresh document.
    """
    if existing is None or (isinstance(existing, (str, bytes)) and not existing.strip()):
        return PolicyDocument(version=POLICY_VERSION, statements=(statement,))

    document = parse_policy(existing)
    return replace(document, statements=document.statements + (statement,))


def remove_statement_for_principal(document: PolicyInput, principal_suffix: str) -> PolicyDocument:
    """Remove every principal ending in ``principal_suffix`` from a policy.

    Statements left without principals are dropped entirely. The result may
    hold no statements at all, in which case callers should delete the policy.

    Raises:
        NoPolicyStatementError: If no statement referenced the suffix
    """
    if not principal_suffix:
        raise ValidationError("principal suffix must not be empty")
    if document is None:
        raise NoPolicyStatementError(principal_suffix)

    policy = parse_policy(document)
    kept: list[Statement] = []
    found = False
    for stmt in policy.statements:
        if stmt.principal is None:
            kept.append(stmt)
            continue
        principal = stmt.principal.without_suffix(principal_suffix)
        if principal == stmt.principal:
            kept.append(stmt)
            continue
        found = True
        if not principal.is_empty:
            kept.append(replace(stmt, principal=principal))

    if not found:
        raise NoPolicyStatementError(principal_suffix)
    return replace(policy, statements=tuple(kept))
