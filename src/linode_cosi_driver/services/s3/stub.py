"""In-memory S3 client for tests."""

from __future__ import annotations

from typing import Callable

from botocore.exceptions import ClientError

from ...utils.context import OperationContext
from .policy import validate_policy

BucketExists = Callable[[OperationContext, str, str], bool]


def _error(code: str, status: int, bucket: str, operation: str) -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": code, "BucketName": bucket},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


class StubS3Client:
    """Policy store keyed by ``region/bucket``.

    Args:
        bucket_exists: Optional callback telling whether a bucket exists;
            buckets it confirms accept policies without being seeded.
    """

    def __init__(self, bucket_exists: BucketExists | None = None) -> None:
        self.bucket_exists = bucket_exists
        self.policies: dict[str, str] = {}
        self.pruned: list[str] = []
        self.failure: Exception | None = None

    def _check(self, ctx: OperationContext) -> None:
        ctx.check()
        if self.failure is not None:
            raise self.failure

    def prune(self, ctx: OperationContext, region: str, bucket: str) -> None:
        self._check(ctx)
        self.pruned.append(f"{region}/{bucket}")

    def set_bucket_policy(self, ctx: OperationContext, region: str, bucket: str, policy: str) -> None:
        self._check(ctx)
        bucket_id = f"{region}/{bucket}"

        if bucket_id not in self.policies and self.bucket_exists is not None:
            if self.bucket_exists(ctx, region, bucket):
                self.policies[bucket_id] = ""

        if bucket_id not in self.policies:
            raise _error("NoSuchBucket", 404, bucket, "PutBucketPolicy")

        if not validate_policy(policy):
            raise _error("InvalidArgument", 400, bucket, "PutBucketPolicy")

        self.policies[bucket_id] = policy

    def get_bucket_policy(self, ctx: OperationContext, region: str, bucket: str) -> str:
        self._check(ctx)
        bucket_id = f"{region}/{bucket}"
        if bucket_id not in self.policies:
            raise _error("NoSuchBucket", 404, bucket, "GetBucketPolicy")
        return self.policies[bucket_id]
