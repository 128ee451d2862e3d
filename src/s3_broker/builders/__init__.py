"""Builders for broker resources."""

from .bucket import build_bucket_tags
from .provider import create_provider_from_config
from .user import build_user_tags

__all__ = ["build_bucket_tags", "build_user_tags", "create_provider_from_config"]
