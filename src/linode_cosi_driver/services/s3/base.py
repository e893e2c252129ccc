"""S3 client interface and error classification."""

from __future__ import annotations

from typing import Protocol

from botocore.exceptions import ClientError

from ...utils.context import OperationContext

NOT_FOUND_CODES = {"404", "NoSuchBucket", "NoSuchBucketPolicy", "NoSuchKey"}


class EndpointNotFoundError(Exception):
    """No S3 endpoint is known for a region."""

    def __init__(self, region: str):
        super().__init__(f"failed to get endpoint for region: {region}")
        self.region = region


class PruneError(Exception):
    """One or more objects could not be removed from a bucket."""

    def __init__(self, bucket: str, errors: list[Exception]):
        details = "; ".join(str(e) for e in errors)
        super().__init__(f"failed to remove {len(errors)} object(s) from bucket {bucket}: {details}")
        self.bucket = bucket
        self.errors = errors


class ObjectRemovalError(Exception):
    """Single object removal failure reported by a batch delete."""

    def __init__(self, key: str, code: str, message: str = ""):
        super().__init__(f"{key}: {code} {message}".strip())
        self.key = key
        self.code = code


def status_code(error: BaseException) -> int | None:
    """HTTP status of an S3 error, if it carries one."""
    if isinstance(error, ClientError):
        return error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return None


def is_not_found(error: BaseException | None) -> bool:
    """Check whether an S3 error is a 404."""
    if error is None:
        return False
    if isinstance(error, PruneError):
        return bool(error.errors) and all(is_not_found(e) for e in error.errors)
    if isinstance(error, ObjectRemovalError):
        return error.code in NOT_FOUND_CODES
    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code", "")
        return status_code(error) == 404 or code in NOT_FOUND_CODES
    return False


class S3Client(Protocol):
    """Protocol defining the S3 operations used by the driver."""

    def prune(self, ctx: OperationContext, region: str, bucket: str) -> None:
        """Remove every object from a bucket."""
        ...

    def set_bucket_policy(self, ctx: OperationContext, region: str, bucket: str, policy: str) -> None:
        """Set bucket policy."""
        ...

    def get_bucket_policy(self, ctx: OperationContext, region: str, bucket: str) -> str:
        """Get bucket policy."""
        ...
