"""S3 policy client."""

from .base import EndpointNotFoundError, ObjectRemovalError, PruneError, S3Client, is_not_found
from .client import BotoS3Client
from .policy import render_policy_template, validate_policy

__all__ = [
    "BotoS3Client",
    "EndpointNotFoundError",
    "ObjectRemovalError",
    "PruneError",
    "S3Client",
    "is_not_found",
    "render_policy_template",
    "validate_policy",
]
