"""S3 client implementation over boto3."""

from __future__ import annotations

import logging
import time
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ... import metrics
from ...constants import DEFAULT_HTTP_TIMEOUT
from ...utils.context import OperationContext
from ..linode.cache import EndpointCache
from .base import EndpointNotFoundError, ObjectRemovalError, PruneError, status_code

logger = logging.getLogger(__name__)

# delete_objects accepts at most 1000 keys per request
DELETE_BATCH_SIZE = 1000


class BotoS3Client:
    """S3 client bound to one access key pair.

    A boto3 client is built per call against the region's endpoint as found
    in the endpoint cache.

    Args:
        cache: Endpoint cache used to resolve regions
        access_key: Access key ID
        secret_key: Secret access key
        ssl: Use HTTPS
    """

    def __init__(
        self,
        cache: EndpointCache,
        access_key: str,
        secret_key: str,
        ssl: bool = True,
    ) -> None:
        self.cache = cache
        self.ssl = ssl
        self._access_key = access_key
        self._secret_key = secret_key

    def __repr__(self) -> str:
        return f"BotoS3Client(ssl={self.ssl})"

    def _client(self, ctx: OperationContext, region: str) -> Any:
        endpoint = self.cache.get(region)
        if not endpoint:
            raise EndpointNotFoundError(region)

        ctx.check()
        timeout = ctx.remaining()
        if timeout is None:
            timeout = DEFAULT_HTTP_TIMEOUT

        scheme = "https" if self.ssl else "http"
        config = Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
            connect_timeout=max(timeout, 1.0),
            read_timeout=max(timeout, 1.0),
        )
        return boto3.client(
            "s3",
            endpoint_url=f"{scheme}://{endpoint}",
            region_name=region,
            aws_access_key_id=self._access_key,
            aws_secret_access_key=self._secret_key,
            config=config,
        )

    def _observe(self, operation: str, result: str, start_time: float) -> None:
        metrics.api_call_total.labels(api_type="s3", operation=operation, result=result).inc()
        metrics.api_call_duration_seconds.labels(api_type="s3", operation=operation).observe(time.time() - start_time)

    def prune(self, ctx: OperationContext, region: str, bucket: str) -> None:
        """Remove every object from a bucket.

        Removal continues past individual failures; all of them are reported
        together at the end.

        Raises:
            PruneError: If any object could not be removed
            ClientError: If the bucket cannot be listed
        """
        client = self._client(ctx, region)
        start_time = time.time()
        errors: list[Exception] = []

        logger.info(f"Pruning bucket {region}/{bucket}")
        paginator = client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=bucket):
                ctx.check()
                keys = [{"Key": obj["Key"]} for obj in page.get("Contents", [])]
                for i in range(0, len(keys), DELETE_BATCH_SIZE):
                    batch = keys[i : i + DELETE_BATCH_SIZE]
                    try:
                        response = client.delete_objects(Bucket=bucket, Delete={"Objects": batch, "Quiet": True})
                    except ClientError as e:
                        logger.warning(f"Failed to delete {len(batch)} object(s) from {bucket}: {e}")
                        errors.append(e)
                        continue
                    for failure in response.get("Errors", []):
                        errors.append(
                            ObjectRemovalError(failure.get("Key", ""), failure.get("Code", ""), failure.get("Message", ""))
                        )
        except (ClientError, BotoCoreError):
            self._observe("prune", "error", start_time)
            raise

        if errors:
            self._observe("prune", "error", start_time)
            raise PruneError(bucket, errors)

        self._observe("prune", "success", start_time)

    def set_bucket_policy(self, ctx: OperationContext, region: str, bucket: str, policy: str) -> None:
        """Set bucket policy.

        Some S3 implementations answer 200 with an error body; that is
        treated as success.
        """
        client = self._client(ctx, region)
        start_time = time.time()
        try:
            if policy:
                client.put_bucket_policy(Bucket=bucket, Policy=policy)
            else:
                client.delete_bucket_policy(Bucket=bucket)
        except ClientError as e:
            if status_code(e) == 200:
                self._observe("set_bucket_policy", "success", start_time)
                return
            logger.error(f"Failed to set policy for bucket {bucket}: {e}")
            self._observe("set_bucket_policy", "error", start_time)
            raise
        self._observe("set_bucket_policy", "success", start_time)

    def get_bucket_policy(self, ctx: OperationContext, region: str, bucket: str) -> str:
        """Get bucket policy JSON.

        Raises:
            ClientError: On failure; use ``is_not_found`` to detect a missing policy
        """
        client = self._client(ctx, region)
        start_time = time.time()
        try:
            response = client.get_bucket_policy(Bucket=bucket)
        except ClientError:
            self._observe("get_bucket_policy", "error", start_time)
            raise
        self._observe("get_bucket_policy", "success", start_time)
        return response.get("Policy", "")
