"""Bucket-scoped ephemeral key broker."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import Callable, Iterator

from .. import metrics
from ..constants import EPHEMERAL_KEY_PREFIX, KEY_CLEANUP_TIMEOUT
from ..logging import log_event
from ..services.linode.base import LinodeClient, is_not_found
from ..services.linode.cache import EndpointCache
from ..services.linode.models import BucketAccessEntry, Permissions
from ..services.s3.base import S3Client
from ..services.s3.client import BotoS3Client
from ..utils.context import OperationContext
from ..utils.errors import sanitize_exception

logger = logging.getLogger(__name__)

Releaser = Callable[[OperationContext], None]
S3ClientFactory = Callable[[EndpointCache, str, str, bool], S3Client]


def _noop_release(ctx: OperationContext) -> None:
    return None


def ephemeral_key_label() -> str:
    """Unique label of a bucket-scoped key."""
    return f"{EPHEMERAL_KEY_PREFIX}-{uuid.uuid4()}"


class BucketKeyBroker:
    """Issues S3 clients authenticated with short-lived bucket-scoped keys.

    Each ``obtain`` creates a read/write key limited to one bucket and returns
    an S3 client bound to it together with a releaser that deletes the key.
    The releaser runs on its own deadline so it still works after the caller
    was cancelled, and it never raises: a key that cannot be deleted is
    logged and left behind.

    When a long-lived S3 client is configured, no keys are created and that
    client is returned with a no-op releaser.

    Args:
        cache: Endpoint cache used by the S3 clients
        s3_client: Optional long-lived S3 client
        ssl: Use HTTPS to reach S3 endpoints
        s3_factory: Builds an S3 client from cache, access key, secret key and ssl flag
        release_timeout: Budget in seconds of each key deletion
    """

    def __init__(
        self,
        cache: EndpointCache,
        s3_client: S3Client | None = None,
        ssl: bool = True,
        s3_factory: S3ClientFactory | None = None,
        release_timeout: float = KEY_CLEANUP_TIMEOUT,
    ) -> None:
        self.cache = cache
        self.s3_client = s3_client
        self.ssl = ssl
        self.s3_factory = s3_factory or BotoS3Client
        self.release_timeout = release_timeout

    def obtain(
        self,
        ctx: OperationContext,
        client: LinodeClient,
        region: str,
        label: str,
    ) -> tuple[S3Client, Releaser]:
        """Get an S3 client scoped to one bucket.

        Args:
            ctx: Operation context
            client: Linode client that owns the bucket
            region: Bucket region
            label: Bucket label

        Returns:
            Tuple of (S3 client, releaser)

        Raises:
            LinodeError: If the key cannot be created
        """
        if self.s3_client is not None:
            return self.s3_client, _noop_release

        key_label = ephemeral_key_label()
        try:
            key = client.create_key(
                ctx,
                key_label,
                bucket_access=[BucketAccessEntry(region=region, bucket_name=label, permissions=Permissions.READ_WRITE)],
            )
        except Exception:
            metrics.ephemeral_keys_total.labels(operation="create", result="error").inc()
            raise
        metrics.ephemeral_keys_total.labels(operation="create", result="success").inc()
        log_event(
            logger,
            logging.DEBUG,
            "Created bucket-scoped key",
            key_id=key.id,
            key_label=key_label,
            bucket_id=f"{region}/{label}",
        )

        def release(caller: OperationContext) -> None:
            cleanup_ctx = caller.detached(self.release_timeout)
            try:
                client.delete_key(cleanup_ctx, key.id)
            except Exception as e:
                if is_not_found(e):
                    metrics.ephemeral_keys_total.labels(operation="delete", result="success").inc()
                    return
                metrics.ephemeral_keys_total.labels(operation="delete", result="error").inc()
                log_event(
                    logger,
                    logging.ERROR,
                    "Failed to delete bucket-scoped key",
                    key_id=key.id,
                    key_label=key_label,
                    error=sanitize_exception(e),
                )
                return
            metrics.ephemeral_keys_total.labels(operation="delete", result="success").inc()
            log_event(logger, logging.DEBUG, "Deleted bucket-scoped key", key_id=key.id, key_label=key_label)

        return self.s3_factory(self.cache, key.access_key, key.secret_key, self.ssl), release

    @contextmanager
    def scoped(
        self,
        ctx: OperationContext,
        client: LinodeClient,
        region: str,
        label: str,
    ) -> Iterator[S3Client]:
        """Context manager form of ``obtain``; the key is released on exit."""
        s3_client, release = self.obtain(ctx, client, region, label)
        try:
            yield s3_client
        finally:
            release(ctx)
