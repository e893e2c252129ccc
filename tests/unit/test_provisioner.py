"""Tests for the provisioner server."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import grpc
import httpx
import pytest

from linode_cosi_driver.constants import (
    PARAM_ACL,
    PARAM_CLEANUP,
    PARAM_CORS,
    PARAM_PERMISSIONS,
    PARAM_POLICY,
    PARAM_REGION,
    S3,
    S3_ACCESS_KEY_ID,
    S3_ACCESS_SECRET_KEY,
    S3_ENDPOINT,
    S3_REGION,
)
from linode_cosi_driver.exceptions import RPCError
from linode_cosi_driver.servers.messages import (
    AuthenticationType,
    DriverCreateBucketRequest,
    DriverDeleteBucketRequest,
    DriverGrantBucketAccessRequest,
    DriverRevokeBucketAccessRequest,
    S3SignatureVersion,
)
from linode_cosi_driver.servers.provisioner import ProvisionerServer
from linode_cosi_driver.services.linode.base import LinodeError
from linode_cosi_driver.services.linode.cache import EndpointCache
from linode_cosi_driver.services.linode.client import HTTPLinodeClient
from linode_cosi_driver.services.linode.models import ACL, Bucket, BucketAccess, Permissions
from linode_cosi_driver.services.linode.stub import TEST_ACCESS_KEY, TEST_SECRET_KEY
from linode_cosi_driver.utils.context import OperationContext

REGION = "test-region"
BUCKET = "test-bucket"
BUCKET_ID = f"{REGION}/{BUCKET}"
ENDPOINT = "test-region-1.linodeobjects.com"

POLICY_TEMPLATE = json.dumps({
    "Version": "2012-10-17",
    "Statement": [{
        "Effect": "Allow",
        "Principal": {"AWS": ["*"]},
        "Action": ["s3:GetObject"],
        "Resource": ["arn:aws:s3:::{{ .BucketName }}/*"],
    }],
})


def create_request(**parameters: str) -> DriverCreateBucketRequest:
    params = {PARAM_REGION: REGION}
    params.update(parameters)
    return DriverCreateBucketRequest(name=BUCKET, parameters=params)


def grant_request(**parameters: str) -> DriverGrantBucketAccessRequest:
    return DriverGrantBucketAccessRequest(
        bucket_id=BUCKET_ID,
        name="test-access",
        authentication_type=AuthenticationType.KEY,
        parameters=dict(parameters),
    )


class TestCreateBucket:
    """Test cases for DriverCreateBucket."""

    def test_create_bucket(self, ctx, provisioner, linode_client):
        """Test creating a bucket on an empty provider."""
        response = provisioner.driver_create_bucket(ctx, create_request())

        assert response.bucket_id == BUCKET_ID
        assert response.bucket_info.s3 is not None
        assert response.bucket_info.s3.region == REGION
        assert response.bucket_info.s3.signature_version == S3SignatureVersion.S3V4
        assert (REGION, BUCKET) in linode_client.buckets
        assert linode_client.calls == ["get_bucket", "create_bucket"]

    def test_create_bucket_is_idempotent(self, ctx, provisioner, linode_client):
        """Test that replaying a create returns the same response and state."""
        first = provisioner.driver_create_bucket(ctx, create_request())
        state = (dict(linode_client.buckets), {k: (v.acl, v.cors_enabled) for k, v in linode_client.accesses.items()})

        second = provisioner.driver_create_bucket(ctx, create_request())
        third = provisioner.driver_create_bucket(ctx, create_request())

        assert first == second == third
        assert state == (
            dict(linode_client.buckets),
            {k: (v.acl, v.cors_enabled) for k, v in linode_client.accesses.items()},
        )

    def test_create_bucket_missing_region(self, ctx, provisioner, linode_client):
        """Test that a missing region is rejected before any provider call."""
        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_create_bucket(ctx, DriverCreateBucketRequest(name=BUCKET, parameters={}))

        assert exc_info.value.code == grpc.StatusCode.INVALID_ARGUMENT
        assert exc_info.value.message == "region was not provided"
        assert linode_client.calls == []

    def test_create_bucket_invalid_acl(self, ctx, provisioner, linode_client):
        """Test that an unknown ACL is rejected before any provider call."""
        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_create_bucket(ctx, create_request(**{PARAM_ACL: "everyone"}))

        assert exc_info.value.code == grpc.StatusCode.INVALID_ARGUMENT
        assert linode_client.calls == []

    def test_create_bucket_applies_acl_and_cors(self, ctx, provisioner, linode_client):
        """Test that ACL and CORS parameters reach the provider."""
        provisioner.driver_create_bucket(ctx, create_request(**{PARAM_ACL: "public-read", PARAM_CORS: "enabled"}))

        access = linode_client.accesses[(REGION, BUCKET)]
        assert access.acl == ACL.PUBLIC_READ
        assert access.cors_enabled is True

    def test_create_bucket_conflicting_acl(self, ctx, provisioner, linode_client):
        """Test that an existing bucket with another ACL is a conflict."""
        linode_client.with_bucket(Bucket(region=REGION, label=BUCKET), BucketAccess(acl=ACL.PRIVATE))

        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_create_bucket(ctx, create_request(**{PARAM_ACL: "public-read"}))

        assert exc_info.value.code == grpc.StatusCode.ALREADY_EXISTS
        assert exc_info.value.message == "bucket exists with different parameters"

    def test_create_bucket_conflicting_cors(self, ctx, provisioner, linode_client):
        """Test that an existing bucket with another CORS setting is a conflict."""
        linode_client.with_bucket(Bucket(region=REGION, label=BUCKET), BucketAccess(cors_enabled=False))

        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_create_bucket(ctx, create_request(**{PARAM_CORS: "enabled"}))

        assert exc_info.value.code == grpc.StatusCode.ALREADY_EXISTS

    def test_create_bucket_existing_matching(self, ctx, provisioner, linode_client):
        """Test that an existing bucket with matching settings is accepted."""
        linode_client.with_bucket(
            Bucket(region=REGION, label=BUCKET), BucketAccess(acl=ACL.PUBLIC_READ, cors_enabled=True)
        )

        response = provisioner.driver_create_bucket(
            ctx, create_request(**{PARAM_ACL: "public-read", PARAM_CORS: "enabled"})
        )

        assert response.bucket_id == BUCKET_ID
        assert "create_bucket" not in linode_client.calls

    def test_create_bucket_with_policy(self, ctx, provisioner, linode_client, s3_client):
        """Test that the rendered policy is set and the scoped key removed."""
        provisioner.driver_create_bucket(ctx, create_request(**{PARAM_POLICY: POLICY_TEMPLATE}))

        policy = json.loads(s3_client.policies[BUCKET_ID])
        assert policy["Statement"][0]["Resource"] == [f"arn:aws:s3:::{BUCKET}/*"]
        assert linode_client.calls.count("create_key") == 1
        assert linode_client.calls.count("delete_key") == 1
        assert linode_client.keys == {}

    def test_create_bucket_reapplies_policy(self, ctx, provisioner, linode_client, s3_client):
        """Test that the policy is overwritten when the bucket already exists."""
        linode_client.with_bucket(Bucket(region=REGION, label=BUCKET))
        s3_client.policies[BUCKET_ID] = "stale"

        provisioner.driver_create_bucket(ctx, create_request(**{PARAM_POLICY: POLICY_TEMPLATE}))

        assert s3_client.policies[BUCKET_ID] != "stale"
        assert linode_client.keys == {}

    def test_create_bucket_without_policy_skips_s3(self, ctx, provisioner, linode_client, s3_client):
        """Test that no key is minted when no policy is requested."""
        provisioner.driver_create_bucket(ctx, create_request())

        assert "create_key" not in linode_client.calls
        assert BUCKET_ID not in s3_client.policies

    def test_create_bucket_policy_failure_releases_key(self, ctx, provisioner, linode_client, s3_client):
        """Test that the scoped key is deleted even when setting the policy fails."""
        s3_client.failure = RuntimeError("s3 unavailable")

        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_create_bucket(ctx, create_request(**{PARAM_POLICY: POLICY_TEMPLATE}))

        assert exc_info.value.code == grpc.StatusCode.INTERNAL
        assert exc_info.value.message == "failed to set bucket policy"
        assert linode_client.calls.count("delete_key") == 1
        assert linode_client.keys == {}

    def test_create_bucket_invalid_policy_template(self, ctx, provisioner, linode_client):
        """Test that an unsupported template action is an internal error."""
        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_create_bucket(ctx, create_request(**{PARAM_POLICY: '{"a": "{{ .Other }}"}'}))

        assert exc_info.value.code == grpc.StatusCode.INTERNAL
        assert linode_client.calls == []

    def test_create_bucket_provider_error(self, ctx, provisioner, linode_client):
        """Test that a provider failure other than not found is internal."""
        linode_client.fail_on("get_bucket")

        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_create_bucket(ctx, create_request())

        assert exc_info.value.code == grpc.StatusCode.INTERNAL
        assert "create_bucket" not in linode_client.calls

    def test_create_bucket_access_error(self, ctx, provisioner, linode_client):
        """Test that failing to read access settings is internal."""
        linode_client.with_bucket(Bucket(region=REGION, label=BUCKET))
        linode_client.fail_on("get_bucket_access")

        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_create_bucket(ctx, create_request())

        assert exc_info.value.code == grpc.StatusCode.INTERNAL

    def test_create_bucket_cancelled(self, provisioner, linode_client):
        """Test that a cancelled context maps to CANCELLED."""
        ctx = OperationContext.background()
        ctx.cancel()

        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_create_bucket(ctx, create_request())

        assert exc_info.value.code == grpc.StatusCode.CANCELLED


class TestCreateBucketReportedAccess:
    """Test cases for bucket access as reported by the Linode API."""

    @staticmethod
    def make_provisioner(access: dict) -> ProvisionerServer:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/access"):
                return httpx.Response(200, json=access)
            return httpx.Response(200, json={"region": REGION, "label": BUCKET})

        client = HTTPLinodeClient("test-token", transport=httpx.MockTransport(handler))
        return ProvisionerServer(client, EndpointCache(client))

    @pytest.mark.parametrize("acl", ["custom", None, ""])
    def test_unknown_acl_conflicts(self, ctx, acl):
        """Test that an ACL outside the canned set is a parameter conflict."""
        provisioner = self.make_provisioner({"acl": acl, "cors_enabled": False})

        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_create_bucket(ctx, create_request())

        assert exc_info.value.code == grpc.StatusCode.ALREADY_EXISTS

    def test_matching_access(self, ctx):
        provisioner = self.make_provisioner({"acl": "private", "cors_enabled": False})

        response = provisioner.driver_create_bucket(ctx, create_request())

        assert response.bucket_id == BUCKET_ID


class TestDeleteBucket:
    """Test cases for DriverDeleteBucket."""

    def test_delete_bucket(self, ctx, provisioner, linode_client):
        """Test deleting an existing bucket."""
        linode_client.with_bucket(Bucket(region=REGION, label=BUCKET))

        provisioner.driver_delete_bucket(ctx, DriverDeleteBucketRequest(bucket_id=BUCKET_ID))

        assert (REGION, BUCKET) not in linode_client.buckets

    def test_delete_missing_bucket_repeatedly(self, ctx, provisioner):
        """Test that deleting a missing bucket succeeds every time."""
        for _ in range(3):
            provisioner.driver_delete_bucket(ctx, DriverDeleteBucketRequest(bucket_id=BUCKET_ID))

    def test_delete_non_empty_bucket(self, ctx, provisioner, linode_client):
        """Test that a non-empty bucket cannot be deleted."""
        linode_client.with_bucket(Bucket(region=REGION, label=BUCKET, objects=3, size=10))

        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_delete_bucket(ctx, DriverDeleteBucketRequest(bucket_id=BUCKET_ID))

        assert exc_info.value.code == grpc.StatusCode.INTERNAL
        assert (REGION, BUCKET) in linode_client.buckets

    def test_delete_bucket_invalid_id(self, ctx, provisioner, linode_client):
        """Test that a malformed bucket id is rejected."""
        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_delete_bucket(ctx, DriverDeleteBucketRequest(bucket_id="no-separator"))

        assert exc_info.value.code == grpc.StatusCode.INVALID_ARGUMENT
        assert linode_client.calls == []

    def test_force_cleanup_disabled_by_default(self, ctx, provisioner, linode_client, s3_client):
        """Test that the cleanup parameter is ignored unless allowed."""
        linode_client.with_bucket(Bucket(region=REGION, label=BUCKET))

        provisioner.driver_delete_bucket(
            ctx, DriverDeleteBucketRequest(bucket_id=BUCKET_ID, delete_context={PARAM_CLEANUP: "force"})
        )

        assert s3_client.pruned == []
        assert "create_key" not in linode_client.calls

    def test_force_cleanup_prunes_first(self, ctx, linode_client, cache, broker, s3_client):
        """Test that force cleanup empties the bucket before deleting it."""
        provisioner = ProvisionerServer(linode_client, cache, broker=broker, allow_force_cleanup=True)
        linode_client.with_bucket(Bucket(region=REGION, label=BUCKET))

        provisioner.driver_delete_bucket(
            ctx, DriverDeleteBucketRequest(bucket_id=BUCKET_ID, delete_context={PARAM_CLEANUP: "force"})
        )

        assert s3_client.pruned == [BUCKET_ID]
        assert linode_client.calls.index("delete_key") < linode_client.calls.index("delete_bucket")
        assert (REGION, BUCKET) not in linode_client.buckets
        assert linode_client.keys == {}

    def test_force_cleanup_missing_bucket(self, ctx, linode_client, cache, broker, s3_client):
        """Test that force cleanup of a missing bucket succeeds without pruning."""
        provisioner = ProvisionerServer(linode_client, cache, broker=broker, allow_force_cleanup=True)

        provisioner.driver_delete_bucket(
            ctx, DriverDeleteBucketRequest(bucket_id=BUCKET_ID, delete_context={PARAM_CLEANUP: "force"})
        )

        assert s3_client.pruned == []
        assert "create_key" not in linode_client.calls

    def test_force_cleanup_prune_failure(self, ctx, linode_client, cache, broker, s3_client):
        """Test that a prune failure is internal and the key is still removed."""
        provisioner = ProvisionerServer(linode_client, cache, broker=broker, allow_force_cleanup=True)
        linode_client.with_bucket(Bucket(region=REGION, label=BUCKET))
        s3_client.failure = RuntimeError("listing failed")

        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_delete_bucket(
                ctx, DriverDeleteBucketRequest(bucket_id=BUCKET_ID, delete_context={PARAM_CLEANUP: "force"})
            )

        assert exc_info.value.code == grpc.StatusCode.INTERNAL
        assert exc_info.value.message == "failed to cleanup bucket"
        assert "delete_bucket" not in linode_client.calls
        assert linode_client.keys == {}


class TestGrantBucketAccess:
    """Test cases for DriverGrantBucketAccess."""

    def test_grant_access(self, ctx, provisioner, linode_client):
        """Test granting access returns S3 credentials for the bucket."""
        linode_client.with_bucket(Bucket(region=REGION, label=BUCKET))

        response = provisioner.driver_grant_bucket_access(ctx, grant_request())

        key = linode_client.keys[int(response.account_id)]
        assert key.label == "test-access"
        assert key.limited is True
        assert key.bucket_access[0].permissions == Permissions.READ_ONLY
        assert response.credentials[S3].secrets == {
            S3_REGION: REGION,
            S3_ENDPOINT: f"{BUCKET}.{ENDPOINT}",
            S3_ACCESS_KEY_ID: TEST_ACCESS_KEY,
            S3_ACCESS_SECRET_KEY: TEST_SECRET_KEY,
        }

    def test_grant_read_write(self, ctx, provisioner, linode_client):
        """Test that read_write permissions are passed to the key."""
        linode_client.with_bucket(Bucket(region=REGION, label=BUCKET))

        response = provisioner.driver_grant_bucket_access(ctx, grant_request(**{PARAM_PERMISSIONS: "read_write"}))

        key = linode_client.keys[int(response.account_id)]
        assert key.bucket_access[0].permissions == Permissions.READ_WRITE

    def test_grant_retry_returns_new_key(self, ctx, provisioner, linode_client):
        """Test that a retry mints another key with a newer account id."""
        linode_client.with_bucket(Bucket(region=REGION, label=BUCKET))

        first = provisioner.driver_grant_bucket_access(ctx, grant_request())
        second = provisioner.driver_grant_bucket_access(ctx, grant_request())

        assert int(second.account_id) > int(first.account_id)

    @pytest.mark.parametrize("auth", [AuthenticationType.IAM, AuthenticationType.UNKNOWN])
    def test_grant_unsupported_auth(self, ctx, provisioner, linode_client, auth):
        """Test that only key authentication is accepted."""
        request = grant_request()
        request.authentication_type = auth

        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_grant_bucket_access(ctx, request)

        assert exc_info.value.code == grpc.StatusCode.INVALID_ARGUMENT
        assert exc_info.value.message.startswith("unsupported authentication type")
        assert "create_key" not in linode_client.calls

    def test_grant_unknown_permissions(self, ctx, provisioner, linode_client):
        """Test that unknown permissions are rejected without creating a key."""
        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_grant_bucket_access(ctx, grant_request(**{PARAM_PERMISSIONS: "admin"}))

        assert exc_info.value.code == grpc.StatusCode.INVALID_ARGUMENT
        assert "create_key" not in linode_client.calls
        assert linode_client.keys == {}

    def test_grant_unknown_endpoint(self, ctx, linode_client, broker):
        """Test that a region without a cached endpoint is internal."""
        from linode_cosi_driver.services.linode.cache import EndpointCache

        provisioner = ProvisionerServer(linode_client, EndpointCache(linode_client), broker=broker)
        linode_client.with_bucket(Bucket(region=REGION, label=BUCKET))

        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_grant_bucket_access(ctx, grant_request())

        assert exc_info.value.code == grpc.StatusCode.INTERNAL
        assert exc_info.value.message == f"failed to get endpoint for region: {REGION}"
        assert linode_client.keys == {}

    def test_grant_provider_error(self, ctx, provisioner, linode_client):
        """Test that a key creation failure is internal."""
        linode_client.fail_on("create_key", LinodeError("boom", status_code=500))

        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_grant_bucket_access(ctx, grant_request())

        assert exc_info.value.code == grpc.StatusCode.INTERNAL


class TestRevokeBucketAccess:
    """Test cases for DriverRevokeBucketAccess."""

    def test_revoke_access(self, ctx, provisioner, linode_client):
        """Test that revoking deletes the key."""
        linode_client.with_bucket(Bucket(region=REGION, label=BUCKET))
        granted = provisioner.driver_grant_bucket_access(ctx, grant_request())

        provisioner.driver_revoke_bucket_access(
            ctx, DriverRevokeBucketAccessRequest(bucket_id=BUCKET_ID, account_id=granted.account_id)
        )

        assert linode_client.keys == {}

    def test_revoke_missing_key_repeatedly(self, ctx, provisioner):
        """Test that revoking a missing key succeeds every time."""
        for _ in range(3):
            provisioner.driver_revoke_bucket_access(
                ctx, DriverRevokeBucketAccessRequest(bucket_id=BUCKET_ID, account_id="42")
            )

    @pytest.mark.parametrize("account_id", ["", "abc", "-1", "1.5", " 7"])
    def test_revoke_invalid_account_id(self, ctx, provisioner, linode_client, account_id):
        """Test that a non-numeric account id is rejected."""
        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_revoke_bucket_access(
                ctx, DriverRevokeBucketAccessRequest(bucket_id=BUCKET_ID, account_id=account_id)
            )

        assert exc_info.value.code == grpc.StatusCode.INVALID_ARGUMENT
        assert linode_client.calls == []

    def test_revoke_provider_error(self, ctx, provisioner, linode_client):
        """Test that a failure other than not found is internal."""
        linode_client.fail_on("delete_key")

        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_revoke_bucket_access(
                ctx, DriverRevokeBucketAccessRequest(bucket_id=BUCKET_ID, account_id="1")
            )

        assert exc_info.value.code == grpc.StatusCode.INTERNAL


class TestPerBucketTokens:
    """Test cases for per-bucket provider clients."""

    def test_default_client_without_token(self, ctx, linode_client, cache, broker):
        """Test that the default client serves requests without a token."""
        resolver = MagicMock()
        resolver.resolve.return_value = None
        factory = MagicMock()
        provisioner = ProvisionerServer(
            linode_client, cache, broker=broker, token_resolver=resolver, client_factory=factory
        )

        provisioner.driver_create_bucket(ctx, create_request())

        factory.assert_not_called()
        resolver.resolve.assert_called_once_with(ctx, create_request().parameters, bucket_name=BUCKET, bucket_id="")
        assert (REGION, BUCKET) in linode_client.buckets

    def test_token_client_used_and_closed(self, ctx, linode_client, cache, broker):
        """Test that a resolved token yields a fresh client that is closed afterwards."""
        resolver = MagicMock()
        resolver.resolve.return_value = "bucket-token"
        token_client = MagicMock()
        factory = MagicMock(return_value=token_client)
        provisioner = ProvisionerServer(
            linode_client, cache, broker=broker, token_resolver=resolver, client_factory=factory
        )

        provisioner.driver_revoke_bucket_access(ctx, DriverRevokeBucketAccessRequest(bucket_id=BUCKET_ID, account_id="5"))

        factory.assert_called_once_with("bucket-token")
        token_client.delete_key.assert_called_once_with(ctx, 5)
        token_client.close.assert_called_once()
        assert "delete_key" not in linode_client.calls

    def test_token_resolution_failure(self, ctx, linode_client, cache, broker):
        """Test that failing to resolve a token is internal."""
        resolver = MagicMock()
        resolver.resolve.side_effect = ValueError("secret namespace is required")
        provisioner = ProvisionerServer(linode_client, cache, broker=broker, token_resolver=resolver)

        with pytest.raises(RPCError) as exc_info:
            provisioner.driver_delete_bucket(ctx, DriverDeleteBucketRequest(bucket_id=BUCKET_ID))

        assert exc_info.value.code == grpc.StatusCode.INTERNAL
        assert linode_client.calls == []
