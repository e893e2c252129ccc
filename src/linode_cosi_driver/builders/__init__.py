"""Builders for request configurations and clients."""

from .bucket import (
    AccessConfig,
    BucketConfig,
    create_access_config_from_parameters,
    create_bucket_config_from_parameters,
)
from .linode import create_linode_client

__all__ = [
    "AccessConfig",
    "BucketConfig",
    "create_access_config_from_parameters",
    "create_bucket_config_from_parameters",
    "create_linode_client",
]
