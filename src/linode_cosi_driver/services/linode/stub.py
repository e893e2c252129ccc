"""In-memory Linode client for tests."""

from __future__ import annotations

import itertools
import threading

from ...utils.context import OperationContext
from .base import LinodeError
from .models import ACL, Bucket, BucketAccess, BucketAccessEntry, ObjectStorageEndpoint, ObjectStorageKey

TEST_ACCESS_KEY = "TEST_ACCESS_KEY"
TEST_SECRET_KEY = "TEST_SECRET_KEY"


class StubLinodeClient:
    """In-memory stand-in for the Linode API.

    Buckets, bucket access settings, keys and endpoints live in dictionaries.
    Every call is recorded in ``calls`` and any operation can be made to fail
    with ``fail_on``.
    """

    def __init__(
        self,
        buckets: list[Bucket] | None = None,
        keys: list[ObjectStorageKey] | None = None,
        endpoints: list[ObjectStorageEndpoint] | None = None,
        accesses: dict[tuple[str, str], BucketAccess] | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self.buckets: dict[tuple[str, str], Bucket] = {}
        self.accesses: dict[tuple[str, str], BucketAccess] = dict(accesses or {})
        self.keys: dict[int, ObjectStorageKey] = {}
        self.endpoints: list[ObjectStorageEndpoint] = list(endpoints or [])
        self.calls: list[str] = []
        self.failures: dict[str, Exception] = {}

        for bucket in buckets or []:
            self.with_bucket(bucket)
        for key in keys or []:
            self.keys[key.id] = key
        self._ids = itertools.count(max(self.keys, default=0) + 1)

    def with_bucket(self, bucket: Bucket, access: BucketAccess | None = None) -> StubLinodeClient:
        """Seed a bucket, with private/no-CORS access unless given."""
        key = (bucket.region, bucket.label)
        self.buckets[key] = bucket
        if access is not None or key not in self.accesses:
            self.accesses[key] = access or BucketAccess()
        return self

    def fail_on(self, operation: str, error: Exception | None = None) -> StubLinodeClient:
        """Make ``operation`` raise ``error`` (a 500 LinodeError by default)."""
        self.failures[operation] = error or LinodeError("unexpected error", status_code=500)
        return self

    def _enter(self, ctx: OperationContext, operation: str) -> None:
        ctx.check()
        self.calls.append(operation)
        if operation in self.failures:
            raise self.failures[operation]

    @staticmethod
    def _not_found() -> LinodeError:
        return LinodeError("Not found", status_code=404)

    def create_bucket(
        self,
        ctx: OperationContext,
        region: str,
        label: str,
        acl: ACL = ACL.PRIVATE,
        cors_enabled: bool = False,
    ) -> Bucket:
        self._enter(ctx, "create_bucket")
        if not isinstance(acl, ACL) and acl not in {a.value for a in ACL}:
            raise LinodeError("invalid acl", status_code=400, reasons=[f"acl: {acl}"])
        with self._lock:
            existing = self.buckets.get((region, label))
            if existing is not None:
                return existing
            bucket = Bucket(region=region, label=label, hostname=f"{label}.{region}.linodeobjects.com")
            self.buckets[(region, label)] = bucket
            self.accesses[(region, label)] = BucketAccess(acl=ACL(acl).value, cors_enabled=cors_enabled)
            return bucket

    def get_bucket(self, ctx: OperationContext, region: str, label: str) -> Bucket:
        self._enter(ctx, "get_bucket")
        bucket = self.buckets.get((region, label))
        if bucket is None:
            raise self._not_found()
        return bucket

    def delete_bucket(self, ctx: OperationContext, region: str, label: str) -> None:
        self._enter(ctx, "delete_bucket")
        with self._lock:
            bucket = self.buckets.get((region, label))
            if bucket is None:
                raise self._not_found()
            if bucket.objects != 0 or bucket.size > 0:
                raise LinodeError("Bucket not empty", status_code=400)
            del self.buckets[(region, label)]
            self.accesses.pop((region, label), None)

    def get_bucket_access(self, ctx: OperationContext, region: str, label: str) -> BucketAccess:
        self._enter(ctx, "get_bucket_access")
        if (region, label) not in self.buckets:
            raise self._not_found()
        return self.accesses.get((region, label), BucketAccess())

    def update_bucket_access(
        self,
        ctx: OperationContext,
        region: str,
        label: str,
        acl: ACL | None = None,
        cors_enabled: bool | None = None,
    ) -> None:
        self._enter(ctx, "update_bucket_access")
        if acl is not None and not isinstance(acl, ACL) and acl not in {a.value for a in ACL}:
            raise LinodeError("invalid acl", status_code=400, reasons=[f"acl: {acl}"])
        with self._lock:
            if (region, label) not in self.buckets:
                raise self._not_found()
            access = self.accesses.setdefault((region, label), BucketAccess())
            if acl is not None:
                access.acl = ACL(acl).value
            if cors_enabled is not None:
                access.cors_enabled = cors_enabled

    def create_key(
        self,
        ctx: OperationContext,
        label: str,
        bucket_access: list[BucketAccessEntry] | None = None,
    ) -> ObjectStorageKey:
        self._enter(ctx, "create_key")
        with self._lock:
            for entry in bucket_access or []:
                if (entry.region, entry.bucket_name) not in self.buckets:
                    raise LinodeError(
                        "bucket not found",
                        status_code=400,
                        reasons=[f"bucket_access: {entry.region}/{entry.bucket_name}"],
                    )
            key = ObjectStorageKey(
                id=next(self._ids),
                label=label,
                access_key=TEST_ACCESS_KEY,
                secret_key=TEST_SECRET_KEY,
                bucket_access=list(bucket_access or []),
            )
            self.keys[key.id] = key
            return key

    def list_keys(self, ctx: OperationContext) -> list[ObjectStorageKey]:
        self._enter(ctx, "list_keys")
        return list(self.keys.values())

    def get_key(self, ctx: OperationContext, key_id: int) -> ObjectStorageKey:
        self._enter(ctx, "get_key")
        key = self.keys.get(key_id)
        if key is None:
            raise self._not_found()
        return key

    def delete_key(self, ctx: OperationContext, key_id: int) -> None:
        self._enter(ctx, "delete_key")
        with self._lock:
            if key_id not in self.keys:
                raise self._not_found()
            del self.keys[key_id]

    def list_endpoints(self, ctx: OperationContext) -> list[ObjectStorageEndpoint]:
        self._enter(ctx, "list_endpoints")
        return list(self.endpoints)
