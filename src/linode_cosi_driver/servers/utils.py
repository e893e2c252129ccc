"""Helpers shared by the driver servers."""

from __future__ import annotations

from ..constants import S3, S3_ACCESS_KEY_ID, S3_ACCESS_SECRET_KEY, S3_ENDPOINT, S3_REGION
from .messages import BucketInfo, CredentialDetails, S3Protocol, S3SignatureVersion

BUCKET_ID_SEPARATOR = "/"


def format_bucket_id(region: str, label: str) -> str:
    """Join a region and a bucket label into a bucket id."""
    return f"{region}{BUCKET_ID_SEPARATOR}{label}"


def parse_bucket_id(bucket_id: str) -> tuple[str, str]:
    """Split a bucket id into region and label.

    Args:
        bucket_id: Identifier of the form ``<region>/<label>``

    Returns:
        Tuple of (region, label)

    Raises:
        ValueError: If the id does not contain exactly one separator
            or either part is empty
    """
    parts = bucket_id.split(BUCKET_ID_SEPARATOR)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ValueError(f"invalid bucket id: {bucket_id!r}")
    return parts[0], parts[1]


def bucket_info(region: str) -> BucketInfo:
    return BucketInfo(s3=S3Protocol(region=region, signature_version=S3SignatureVersion.S3V4))


def s3_credentials(region: str, endpoint: str, access_key: str, secret_key: str) -> dict[str, CredentialDetails]:
    """Build the credentials map returned by GrantBucketAccess."""
    return {
        S3: CredentialDetails(
            secrets={
                S3_REGION: region,
                S3_ENDPOINT: endpoint,
                S3_ACCESS_KEY_ID: access_key,
                S3_ACCESS_SECRET_KEY: secret_key,
            }
        )
    }
