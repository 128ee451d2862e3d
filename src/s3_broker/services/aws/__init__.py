"""AWS implementations of the cloud provider interface."""

from .client import AWSProvider

__all__ = ["AWSProvider"]
