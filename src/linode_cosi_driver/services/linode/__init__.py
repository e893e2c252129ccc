"""Linode Object Storage client."""

from .base import LinodeClient, LinodeError, is_not_found
from .cache import EndpointCache
from .client import HTTPLinodeClient
from .models import (
    ACL,
    CORS,
    Bucket,
    BucketAccess,
    BucketAccessEntry,
    ObjectStorageEndpoint,
    ObjectStorageKey,
    Permissions,
)

__all__ = [
    "ACL",
    "CORS",
    "Bucket",
    "BucketAccess",
    "BucketAccessEntry",
    "EndpointCache",
    "HTTPLinodeClient",
    "LinodeClient",
    "LinodeError",
    "ObjectStorageEndpoint",
    "ObjectStorageKey",
    "Permissions",
    "is_not_found",
]
