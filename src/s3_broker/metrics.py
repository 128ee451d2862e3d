"""Prometheus metrics for the S3 Broker."""

from prometheus_client import Counter, Histogram

# Broker operation metrics
operation_total = Counter(
    "s3_broker_operation_total",
    "Total number of broker operations",
    ["operation", "result"],
)

operation_duration_seconds = Histogram(
    "s3_broker_operation_duration_seconds",
    "Duration of broker operations in seconds",
    ["operation"],
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

# API call metrics
api_call_total = Counter(
    "s3_broker_api_call_total",
    "Total number of cloud API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "s3_broker_api_call_duration_seconds",
    "Duration of cloud API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)

# Instance lock metrics
lock_acquire_attempts_total = Counter(
    "s3_broker_lock_acquire_attempts_total",
    "Total number of instance lock acquisition attempts",
    ["result"],
)

lock_release_total = Counter(
    "s3_broker_lock_release_total",
    "Total number of instance lock releases",
    ["result"],
)

# Bucket policy write metrics
policy_write_attempts_total = Counter(
    "s3_broker_policy_write_attempts_total",
    "Total number of bucket policy write attempts",
    ["result"],
)

# Rollback metrics
rollback_total = Counter(
    "s3_broker_rollback_total",
    "Total number of rollbacks after a failed operation",
    ["resource_type", "result"],
)
