"""Linode Object Storage client interface."""

from __future__ import annotations

from typing import Any, Protocol

from ...utils.context import OperationContext
from .models import ACL, Bucket, BucketAccess, BucketAccessEntry, ObjectStorageEndpoint, ObjectStorageKey


class LinodeError(Exception):
    """Linode API request failed.

    Args:
        message: Error message
        status_code: HTTP status code, None for transport failures
        reasons: Reasons reported by the API
    """

    def __init__(self, message: str, status_code: int | None = None, reasons: list[str] | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.reasons = reasons or []

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            base = f"[{self.status_code}] {base}"
        if self.reasons:
            base = f"{base}: {'; '.join(self.reasons)}"
        return base


def is_not_found(error: BaseException | None) -> bool:
    """Check whether an error is a provider 404."""
    return isinstance(error, LinodeError) and error.status_code == 404


class LinodeClient(Protocol):
    """Protocol defining the Linode operations required by the driver."""

    def create_bucket(
        self,
        ctx: OperationContext,
        region: str,
        label: str,
        acl: ACL = ACL.PRIVATE,
        cors_enabled: bool = False,
    ) -> Bucket:
        """Create a bucket, returning the existing one if it is already there."""
        ...

    def get_bucket(self, ctx: OperationContext, region: str, label: str) -> Bucket:
        """Get a bucket."""
        ...

    def delete_bucket(self, ctx: OperationContext, region: str, label: str) -> None:
        """Delete an empty bucket."""
        ...

    def get_bucket_access(self, ctx: OperationContext, region: str, label: str) -> BucketAccess:
        """Get bucket ACL and CORS settings."""
        ...

    def update_bucket_access(
        self,
        ctx: OperationContext,
        region: str,
        label: str,
        acl: ACL | None = None,
        cors_enabled: bool | None = None,
    ) -> None:
        """Update bucket ACL and/or CORS settings."""
        ...

    def create_key(
        self,
        ctx: OperationContext,
        label: str,
        bucket_access: list[BucketAccessEntry] | None = None,
    ) -> ObjectStorageKey:
        """Create an access key, limited when a bucket access list is given."""
        ...

    def list_keys(self, ctx: OperationContext) -> list[ObjectStorageKey]:
        """List all access keys."""
        ...

    def get_key(self, ctx: OperationContext, key_id: int) -> ObjectStorageKey:
        """Get an access key."""
        ...

    def delete_key(self, ctx: OperationContext, key_id: int) -> None:
        """Delete an access key."""
        ...

    def list_endpoints(self, ctx: OperationContext) -> list[ObjectStorageEndpoint]:
        """List regional S3 endpoints."""
        ...


def bucket_access_payload(bucket_access: list[BucketAccessEntry] | None) -> list[dict[str, Any]] | None:
    if bucket_access is None:
        return None
    return [entry.to_api() for entry in bucket_access]
