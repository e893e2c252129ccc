"""COSI provisioner server.

Implements the four provisioner calls on top of Linode Object Storage. Every
call is idempotent and keeps no local state: the outcome of a retry is
recomputed from the provider each time.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Iterator, Mapping

import grpc

from ..builders.bucket import (
    BucketConfig,
    create_access_config_from_parameters,
    create_bucket_config_from_parameters,
    force_cleanup_requested,
)
from ..constants import (
    KEY_BUCKET_ACCESS_AUTH,
    KEY_BUCKET_ACCESS_ID,
    KEY_BUCKET_ACCESS_NAME,
    KEY_BUCKET_ACCESS_PERMISSIONS,
    KEY_BUCKET_ACL,
    KEY_BUCKET_CORS,
    KEY_BUCKET_ID,
    KEY_BUCKET_LABEL,
    KEY_BUCKET_REGION,
    KEY_CLEANUP_TIMEOUT,
    METHOD_CREATE_BUCKET,
    METHOD_DELETE_BUCKET,
    METHOD_GRANT_BUCKET_ACCESS,
    METHOD_REVOKE_BUCKET_ACCESS,
)
from ..exceptions import ERR_INVALID_ACCOUNT_ID, ERR_UNSUPPORTED_AUTH, PolicyTemplateError
from ..services.linode import base as linode
from ..services.linode.cache import EndpointCache
from ..services.linode.models import BucketAccessEntry
from ..services.s3 import base as s3
from ..services.s3.base import S3Client
from ..utils.context import ContextCancelled, OperationContext
from ..utils.errors import sanitize_exception
from .base import BaseServer
from .broker import BucketKeyBroker
from .messages import (
    AuthenticationType,
    DriverCreateBucketRequest,
    DriverCreateBucketResponse,
    DriverDeleteBucketRequest,
    DriverDeleteBucketResponse,
    DriverGrantBucketAccessRequest,
    DriverGrantBucketAccessResponse,
    DriverRevokeBucketAccessRequest,
    DriverRevokeBucketAccessResponse,
)
from .tokens import TokenResolver
from .utils import bucket_info, format_bucket_id, parse_bucket_id, s3_credentials

ClientFactory = Callable[[str], linode.LinodeClient]

INVALID_ARGUMENT = grpc.StatusCode.INVALID_ARGUMENT
ALREADY_EXISTS = grpc.StatusCode.ALREADY_EXISTS
INTERNAL = grpc.StatusCode.INTERNAL


class ProvisionerServer(BaseServer):
    """Provisions buckets and bucket access keys.

    Args:
        client: Default Linode client
        cache: Region to S3 endpoint cache
        broker: Source of bucket-scoped S3 clients for policy writes and pruning
        token_resolver: Resolves per-bucket tokens, disabled when None
        client_factory: Builds a Linode client for a resolved token
        allow_force_cleanup: Honour the force cleanup delete parameter
    """

    def __init__(
        self,
        client: linode.LinodeClient,
        cache: EndpointCache,
        broker: BucketKeyBroker | None = None,
        token_resolver: TokenResolver | None = None,
        client_factory: ClientFactory | None = None,
        allow_force_cleanup: bool = False,
    ):
        super().__init__("provisioner")
        self.client = client
        self.cache = cache
        self.broker = broker or BucketKeyBroker(cache)
        self.token_resolver = token_resolver
        self.client_factory = client_factory
        self.allow_force_cleanup = allow_force_cleanup

    @contextmanager
    def _client_for_request(
        self,
        ctx: OperationContext,
        method: str,
        parameters: Mapping[str, str] | None = None,
        bucket_name: str = "",
        bucket_id: str = "",
    ) -> Iterator[linode.LinodeClient]:
        """Yield the Linode client serving a request.

        A client created for a per-bucket token is closed on exit.
        """
        if self.token_resolver is None:
            yield self.client
            return

        try:
            token = self.token_resolver.resolve(ctx, parameters, bucket_name=bucket_name, bucket_id=bucket_id)
        except ContextCancelled:
            raise
        except Exception as e:
            raise self.fail(method, INTERNAL, "failed to resolve linode client", error=e) from e

        if not token:
            yield self.client
            return

        if self.client_factory is None:
            raise self.fail(method, INTERNAL, "failed to resolve linode client: no client factory for token")
        try:
            client = self.client_factory(token)
        except Exception as e:
            raise self.fail(method, INTERNAL, "failed to resolve linode client", error=e) from e

        try:
            yield client
        finally:
            close = getattr(client, "close", None)
            if close is not None:
                close()

    def _with_bucket_s3_client(
        self,
        ctx: OperationContext,
        method: str,
        client: linode.LinodeClient,
        region: str,
        label: str,
        action: Callable[[S3Client], None],
        failure: str,
        fields: dict[str, Any],
    ) -> None:
        """Run ``action`` with a bucket-scoped S3 client, releasing its key afterwards."""
        try:
            s3_client, release = self.broker.obtain(ctx, client, region, label)
        except ContextCancelled:
            raise
        except Exception as e:
            raise self.fail(method, INTERNAL, "failed to create bucket-scoped key", error=e, **fields) from e

        try:
            action(s3_client)
        except ContextCancelled:
            raise
        except Exception as e:
            raise self.fail(method, INTERNAL, failure, error=e, **fields) from e
        finally:
            release(ctx)

    def _apply_policy(
        self,
        ctx: OperationContext,
        method: str,
        client: linode.LinodeClient,
        bucket: BucketConfig,
        fields: dict[str, Any],
    ) -> None:
        self._with_bucket_s3_client(
            ctx,
            method,
            client,
            bucket.region,
            bucket.label,
            lambda s3_client: s3_client.set_bucket_policy(ctx, bucket.region, bucket.label, bucket.policy),
            "failed to set bucket policy",
            fields,
        )
        self.log_debug(method, "Bucket policy set", **fields)

    # CreateBucket

    def driver_create_bucket(
        self, ctx: OperationContext, request: DriverCreateBucketRequest
    ) -> DriverCreateBucketResponse:
        """Create a bucket, or confirm that a matching one exists.

        Args:
            ctx: Operation context of the call
            request: Bucket name and BucketClass parameters

        Returns:
            Bucket id and S3 protocol information

        Raises:
            RPCError: INVALID_ARGUMENT for a missing region or invalid ACL,
                ALREADY_EXISTS when the bucket exists with another ACL or CORS
                setting, INTERNAL for provider and S3 failures
        """
        return self.call_with_metrics(
            METHOD_CREATE_BUCKET, request.name, lambda: self._create_bucket(ctx, request)
        )

    def _create_bucket(self, ctx: OperationContext, request: DriverCreateBucketRequest) -> DriverCreateBucketResponse:
        method = METHOD_CREATE_BUCKET
        parameters = request.parameters or {}

        try:
            bucket = create_bucket_config_from_parameters(request.name, parameters)
        except ValueError as e:
            raise self.fail(method, INVALID_ARGUMENT, str(e), **{KEY_BUCKET_LABEL: request.name}) from e
        except PolicyTemplateError as e:
            raise self.fail(
                method, INTERNAL, "failed to generate bucket policy", error=e, **{KEY_BUCKET_LABEL: request.name}
            ) from e

        fields = {
            KEY_BUCKET_REGION: bucket.region,
            KEY_BUCKET_LABEL: bucket.label,
            KEY_BUCKET_ACL: bucket.acl.value,
            KEY_BUCKET_CORS: bucket.cors.value,
        }
        self.log_info(method, "Bucket creation initiated", **fields)

        with self._client_for_request(ctx, method, parameters, bucket_name=bucket.label) as client:
            try:
                client.get_bucket(ctx, bucket.region, bucket.label)
            except ContextCancelled:
                raise
            except Exception as e:
                if not linode.is_not_found(e):
                    raise self.fail(method, INTERNAL, "failed to check if bucket exists", error=e, **fields) from e
                return self._create_new_bucket(ctx, client, bucket, fields)

            return self._ensure_existing_bucket(ctx, client, bucket, fields)

    def _create_new_bucket(
        self,
        ctx: OperationContext,
        client: linode.LinodeClient,
        bucket: BucketConfig,
        fields: dict[str, Any],
    ) -> DriverCreateBucketResponse:
        method = METHOD_CREATE_BUCKET
        try:
            client.create_bucket(ctx, bucket.region, bucket.label, acl=bucket.acl, cors_enabled=bucket.cors_enabled)
        except ContextCancelled:
            raise
        except Exception as e:
            raise self.fail(method, INTERNAL, "failed to create bucket", error=e, **fields) from e

        self.log_info(method, "Bucket created", **fields)

        if bucket.policy:
            self._apply_policy(ctx, method, client, bucket, fields)

        return DriverCreateBucketResponse(
            bucket_id=format_bucket_id(bucket.region, bucket.label),
            bucket_info=bucket_info(bucket.region),
        )

    def _ensure_existing_bucket(
        self,
        ctx: OperationContext,
        client: linode.LinodeClient,
        bucket: BucketConfig,
        fields: dict[str, Any],
    ) -> DriverCreateBucketResponse:
        method = METHOD_CREATE_BUCKET
        try:
            access = client.get_bucket_access(ctx, bucket.region, bucket.label)
        except ContextCancelled:
            raise
        except Exception as e:
            raise self.fail(method, INTERNAL, "failed to check bucket access", error=e, **fields) from e

        if access.acl != bucket.acl.value or access.cors_enabled != bucket.cors_enabled:
            raise self.fail(
                method,
                ALREADY_EXISTS,
                "bucket exists with different parameters",
                existing_acl=access.acl,
                existing_cors=access.cors_enabled,
                **fields,
            )

        # Policies are always overwritten, a retry converges on the requested one.
        if bucket.policy:
            self._apply_policy(ctx, method, client, bucket, fields)

        self.log_info(method, "Bucket exists", **fields)
        return DriverCreateBucketResponse(
            bucket_id=format_bucket_id(bucket.region, bucket.label),
            bucket_info=bucket_info(bucket.region),
        )

    # DeleteBucket

    def driver_delete_bucket(
        self, ctx: OperationContext, request: DriverDeleteBucketRequest
    ) -> DriverDeleteBucketResponse:
        """Delete a bucket; a bucket that is already gone is not an error.

        Raises:
            RPCError: INVALID_ARGUMENT for a malformed bucket id, INTERNAL for
                any other failure including a non-empty bucket
        """
        return self.call_with_metrics(
            METHOD_DELETE_BUCKET, request.bucket_id, lambda: self._delete_bucket(ctx, request)
        )

    def _delete_bucket(self, ctx: OperationContext, request: DriverDeleteBucketRequest) -> DriverDeleteBucketResponse:
        method = METHOD_DELETE_BUCKET
        try:
            region, label = parse_bucket_id(request.bucket_id)
        except ValueError as e:
            raise self.fail(method, INVALID_ARGUMENT, str(e), **{KEY_BUCKET_ID: request.bucket_id}) from e

        fields = {KEY_BUCKET_ID: request.bucket_id, KEY_BUCKET_REGION: region, KEY_BUCKET_LABEL: label}
        self.log_info(method, "Bucket deletion initiated", **fields)

        with self._client_for_request(ctx, method, request.delete_context, bucket_id=request.bucket_id) as client:
            if self.allow_force_cleanup and force_cleanup_requested(request.delete_context):
                if not self._prune_bucket(ctx, client, region, label, fields):
                    self.log_info(method, "Bucket already deleted", **fields)
                    return DriverDeleteBucketResponse()

            try:
                client.delete_bucket(ctx, region, label)
            except ContextCancelled:
                raise
            except Exception as e:
                if not linode.is_not_found(e):
                    raise self.fail(method, INTERNAL, "failed to delete bucket", error=e, **fields) from e
                self.log_info(method, "Bucket already deleted", **fields)
                return DriverDeleteBucketResponse()

        self.log_info(method, "Bucket deleted", **fields)
        return DriverDeleteBucketResponse()

    def _prune_bucket(
        self,
        ctx: OperationContext,
        client: linode.LinodeClient,
        region: str,
        label: str,
        fields: dict[str, Any],
    ) -> bool:
        """Remove every object of a bucket before it is deleted.

        Returns:
            False when the bucket no longer exists
        """
        method = METHOD_DELETE_BUCKET
        try:
            client.get_bucket(ctx, region, label)
        except ContextCancelled:
            raise
        except Exception as e:
            if linode.is_not_found(e):
                return False
            raise self.fail(method, INTERNAL, "failed to check if bucket exists", error=e, **fields) from e

        gone = False

        def prune(s3_client: S3Client) -> None:
            nonlocal gone
            try:
                s3_client.prune(ctx, region, label)
            except Exception as e:
                if not s3.is_not_found(e):
                    raise
                gone = True

        self.log_info(method, "Removing bucket objects", **fields)
        self._with_bucket_s3_client(ctx, method, client, region, label, prune, "failed to cleanup bucket", fields)
        return not gone

    # GrantBucketAccess

    def driver_grant_bucket_access(
        self, ctx: OperationContext, request: DriverGrantBucketAccessRequest
    ) -> DriverGrantBucketAccessResponse:
        """Create a key limited to one bucket and return its S3 credentials.

        A retry creates another key; the returned account id always names
        the most recent one.

        Raises:
            RPCError: INVALID_ARGUMENT for an unsupported authentication type,
                unknown permissions or a malformed bucket id, INTERNAL for
                provider failures and unknown S3 endpoints
        """
        return self.call_with_metrics(
            METHOD_GRANT_BUCKET_ACCESS, request.bucket_id, lambda: self._grant_bucket_access(ctx, request)
        )

    def _grant_bucket_access(
        self, ctx: OperationContext, request: DriverGrantBucketAccessRequest
    ) -> DriverGrantBucketAccessResponse:
        method = METHOD_GRANT_BUCKET_ACCESS
        parameters = request.parameters or {}
        auth = getattr(request.authentication_type, "value", request.authentication_type)
        fields: dict[str, Any] = {
            KEY_BUCKET_ID: request.bucket_id,
            KEY_BUCKET_ACCESS_NAME: request.name,
            KEY_BUCKET_ACCESS_AUTH: auth,
        }

        try:
            region, label = parse_bucket_id(request.bucket_id)
        except ValueError as e:
            raise self.fail(method, INVALID_ARGUMENT, str(e), **fields) from e

        if request.authentication_type != AuthenticationType.KEY:
            raise self.fail(method, INVALID_ARGUMENT, f"{ERR_UNSUPPORTED_AUTH}: {auth}", **fields)

        try:
            access = create_access_config_from_parameters(parameters)
        except ValueError as e:
            raise self.fail(method, INVALID_ARGUMENT, str(e), **fields) from e

        fields[KEY_BUCKET_ACCESS_PERMISSIONS] = access.permissions.value
        self.log_info(method, "Bucket access granting initiated", **fields)

        with self._client_for_request(ctx, method, parameters, bucket_id=request.bucket_id) as client:
            try:
                key = client.create_key(
                    ctx,
                    request.name,
                    bucket_access=[BucketAccessEntry(region=region, bucket_name=label, permissions=access.permissions)],
                )
            except ContextCancelled:
                raise
            except Exception as e:
                raise self.fail(method, INTERNAL, "failed to create object storage key", error=e, **fields) from e

            fields[KEY_BUCKET_ACCESS_ID] = key.id

            endpoint = self.cache.get(region)
            if not endpoint:
                self._discard_key(ctx, method, client, key.id, fields)
                raise self.fail(method, INTERNAL, f"failed to get endpoint for region: {region}", **fields)

        self.log_info(method, "Bucket access granted", **fields)
        return DriverGrantBucketAccessResponse(
            account_id=str(key.id),
            credentials=s3_credentials(region, f"{label}.{endpoint}", key.access_key, key.secret_key),
        )

    def _discard_key(
        self,
        ctx: OperationContext,
        method: str,
        client: linode.LinodeClient,
        key_id: int,
        fields: dict[str, Any],
    ) -> None:
        """Delete a key whose credentials cannot be handed out."""
        try:
            client.delete_key(ctx.detached(KEY_CLEANUP_TIMEOUT), key_id)
        except Exception as e:
            self.log_warning(method, "Failed to delete unused key", error=sanitize_exception(e), **fields)

    # RevokeBucketAccess

    def driver_revoke_bucket_access(
        self, ctx: OperationContext, request: DriverRevokeBucketAccessRequest
    ) -> DriverRevokeBucketAccessResponse:
        """Delete a key; a key that is already gone is not an error.

        Raises:
            RPCError: INVALID_ARGUMENT for a non-numeric account id, INTERNAL
                for any other failure
        """
        return self.call_with_metrics(
            METHOD_REVOKE_BUCKET_ACCESS, request.account_id, lambda: self._revoke_bucket_access(ctx, request)
        )

    def _revoke_bucket_access(
        self, ctx: OperationContext, request: DriverRevokeBucketAccessRequest
    ) -> DriverRevokeBucketAccessResponse:
        method = METHOD_REVOKE_BUCKET_ACCESS
        fields: dict[str, Any] = {KEY_BUCKET_ID: request.bucket_id, KEY_BUCKET_ACCESS_ID: request.account_id}

        account_id = request.account_id
        if not (account_id.isascii() and account_id.isdigit()):
            raise self.fail(method, INVALID_ARGUMENT, f"{ERR_INVALID_ACCOUNT_ID}: {account_id!r}", **fields)
        key_id = int(account_id)

        self.log_info(method, "Bucket access revoking initiated", **fields)

        with self._client_for_request(ctx, method, bucket_id=request.bucket_id) as client:
            try:
                client.delete_key(ctx, key_id)
            except ContextCancelled:
                raise
            except Exception as e:
                if not linode.is_not_found(e):
                    raise self.fail(method, INTERNAL, "failed to delete key", error=e, **fields) from e
                self.log_info(method, "Key already deleted", **fields)
                return DriverRevokeBucketAccessResponse()

        self.log_info(method, "Bucket access revoked", **fields)
        return DriverRevokeBucketAccessResponse()
