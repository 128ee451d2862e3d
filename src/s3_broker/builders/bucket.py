"""Builder for bucket tags."""

from __future__ import annotations

from ..config import Config
from ..constants import (
    CREATED_BY,
    TAG_CHARGEABLE_ENTITY,
    TAG_CREATED_BY,
    TAG_DEPLOY_ENV,
    TAG_ORG_GUID,
    TAG_PLAN_GUID,
    TAG_SERVICE_INSTANCE_GUID,
    TAG_SPACE_GUID,
    TAG_TENANT,
)
from ..models import ProvisionRequest


def build_bucket_tags(request: ProvisionRequest, config: Config) -> dict[str, str]:
    """Create the tag set applied to every provisioned bucket.

    Args:
        request: Provision request for the instance
        config: Broker configuration

    Returns:
        Tag key to value mapping, in the order they are applied
    """
    return {
        TAG_SERVICE_INSTANCE_GUID: request.instance_id,
        TAG_ORG_GUID: request.org_guid,
        TAG_SPACE_GUID: request.space_guid,
        TAG_CREATED_BY: CREATED_BY,
        TAG_PLAN_GUID: request.plan_id,
        TAG_DEPLOY_ENV: config.deploy_environment,
        TAG_TENANT: request.org_guid,
        TAG_CHARGEABLE_ENTITY: request.instance_id,
    }
