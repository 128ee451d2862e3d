"""S3 service broker: bucket provisioning and scoped credentials."""

from .broker import CleanupOutcome, S3Broker
from .config import Config
from .errors import (
    BrokerError,
    LockAcquisitionError,
    NotFoundError,
    OperationTimeoutError,
    TaggingRollbackError,
    ValidationError,
)
from .models import (
    BindRequest,
    BucketCredentials,
    DeprovisionRequest,
    ProvisionRequest,
    UnbindRequest,
)

__all__ = [
    "S3Broker",
    "CleanupOutcome",
    "Config",
    "BrokerError",
    "LockAcquisitionError",
    "NotFoundError",
    "OperationTimeoutError",
    "TaggingRollbackError",
    "ValidationError",
    "BindRequest",
    "BucketCredentials",
    "DeprovisionRequest",
    "ProvisionRequest",
    "UnbindRequest",
]
