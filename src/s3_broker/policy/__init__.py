"""Bucket policy algebra."""

from .document import (
    PolicyDocument,
    Principal,
    Statement,
    bucket_arns,
    build_statement,
    merge_statement,
    parse_policy,
    remove_statement_for_principal,
)
from .permissions import BINDABLE_PERMISSIONS, Permission, validate_permissions

__all__ = [
    "PolicyDocument",
    "Principal",
    "Statement",
    "bucket_arns",
    "build_statement",
    "merge_statement",
    "parse_policy",
    "remove_statement_for_principal",
    "Permission",
    "BINDABLE_PERMISSIONS",
    "validate_permissions",
]
