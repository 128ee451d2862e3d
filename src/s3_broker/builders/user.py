"""Builder for binding user tags."""

from __future__ import annotations

from ..config import Config
from ..constants import CREATED_BY, TAG_CREATED_BY, TAG_DEPLOY_ENV, TAG_SERVICE_INSTANCE_GUID


def build_user_tags(instance_id: str, config: Config) -> dict[str, str]:
    return {
        TAG_SERVICE_INSTANCE_GUID: instance_id,
        TAG_CREATED_BY: CREATED_BY,
        TAG_DEPLOY_ENV: config.deploy_environment,
    }
