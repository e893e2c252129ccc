"""Shared fixtures for unit tests."""

from __future__ import annotations

import pytest

from linode_cosi_driver.servers.broker import BucketKeyBroker
from linode_cosi_driver.servers.provisioner import ProvisionerServer
from linode_cosi_driver.services.linode.cache import EndpointCache
from linode_cosi_driver.services.linode.models import ObjectStorageEndpoint
from linode_cosi_driver.services.linode.stub import StubLinodeClient
from linode_cosi_driver.services.s3.stub import StubS3Client
from linode_cosi_driver.utils.context import OperationContext

TEST_REGION = "test-region"
TEST_BUCKET = "test-bucket"
TEST_ENDPOINT = "test-region-1.linodeobjects.com"


@pytest.fixture
def ctx() -> OperationContext:
    return OperationContext.with_deadline_in(30)


@pytest.fixture
def linode_client() -> StubLinodeClient:
    return StubLinodeClient(
        endpoints=[ObjectStorageEndpoint(region=TEST_REGION, endpoint_type="E1", s3_endpoint=TEST_ENDPOINT)]
    )


@pytest.fixture
def cache(linode_client: StubLinodeClient) -> EndpointCache:
    cache = EndpointCache(linode_client)
    cache.set(TEST_REGION, TEST_ENDPOINT)
    return cache


@pytest.fixture
def s3_client(linode_client: StubLinodeClient) -> StubS3Client:
    def bucket_exists(ctx: OperationContext, region: str, bucket: str) -> bool:
        return (region, bucket) in linode_client.buckets

    return StubS3Client(bucket_exists=bucket_exists)


@pytest.fixture
def broker(cache: EndpointCache, s3_client: StubS3Client) -> BucketKeyBroker:
    return BucketKeyBroker(cache, s3_factory=lambda *args: s3_client)


@pytest.fixture
def provisioner(
    linode_client: StubLinodeClient, cache: EndpointCache, broker: BucketKeyBroker
) -> ProvisionerServer:
    return ProvisionerServer(linode_client, cache, broker=broker)
