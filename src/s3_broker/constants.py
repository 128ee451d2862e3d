"""Constants for the S3 Broker."""

# Tags
CREATED_BY = "paas-s3-broker"
TAG_SERVICE_INSTANCE_GUID = "service_instance_guid"
TAG_ORG_GUID = "org_guid"
TAG_SPACE_GUID = "space_guid"
TAG_CREATED_BY = "created_by"
TAG_PLAN_GUID = "plan_guid"
TAG_DEPLOY_ENV = "deploy_env"
TAG_TENANT = "tenant"
TAG_CHARGEABLE_ENTITY = "chargeable_entity"

# Policies
POLICY_VERSION = "2012-10-17"
EFFECT_ALLOW = "Allow"
PRINCIPAL_AWS = "AWS"
PUBLIC_PRINCIPAL = "*"
SSE_ALGORITHM = "AES256"

# Cloud error codes
ERR_NO_SUCH_BUCKET = "NoSuchBucket"
ERR_NO_SUCH_BUCKET_POLICY = "NoSuchBucketPolicy"
ERR_NO_SUCH_ENTITY = "NoSuchEntity"
ERR_ACCESS_DENIED = "AccessDenied"

# Waiters
AWS_WAIT_DELAY_SECONDS = 3
AWS_MAX_WAIT_ATTEMPTS = 15

# Floor for per-call timeouts when little of the request deadline is left
MIN_CALL_TIMEOUT_SECONDS = 0.1

# Policy writes
POLICY_WRITE_INTERVAL_SECONDS = 2.0
DEFAULT_POLICY_WRITE_TIMEOUT_SECONDS = 30.0
DEFAULT_REQUEST_TIMEOUT_SECONDS = 60.0

# Locking
LOCK_KEY_PREFIX = "broker/"
LOCK_OWNER_PREFIX = "broker/"
DEFAULT_LOCK_TTL_SECONDS = 90
DEFAULT_LOCK_MAX_ATTEMPTS = 15
DEFAULT_LOCK_RETRY_INTERVAL_SECONDS = 1.0
DEFAULT_LOCK_NAMESPACE = "default"
LEASE_NAME_PREFIX = "s3-broker-"
ANNOTATION_LOCK_KEY = "s3-broker/lock-key"

# Field Manager
FIELD_MANAGER = "s3-broker"

# Operations
OP_PROVISION = "provision"
OP_DEPROVISION = "deprovision"
OP_BIND = "bind"
OP_UNBIND = "unbind"
