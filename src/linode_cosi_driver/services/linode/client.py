"""Linode Object Storage REST client."""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from ... import __version__, metrics
from ...constants import DEFAULT_HTTP_TIMEOUT
from ...utils.context import OperationContext
from .base import LinodeError, bucket_access_payload
from .models import ACL, Bucket, BucketAccess, BucketAccessEntry, ObjectStorageEndpoint, ObjectStorageKey

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.linode.com"
DEFAULT_API_VERSION = "v4"
DEFAULT_USER_AGENT = f"linode-cosi-driver/{__version__}"
PAGE_SIZE = 500


class HTTPLinodeClient:
    """Linode API client over HTTP.

    Args:
        token: Personal access token, requests carry no Authorization header when empty
        base_url: API base URL
        api_version: API version path segment
        user_agent: User-Agent header value
        timeout: Request timeout used when the context has no deadline
        transport: Optional httpx transport (tests)
    """

    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        api_version: str | None = None,
        user_agent: str | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = f"{(base_url or DEFAULT_API_URL).rstrip('/')}/{(api_version or DEFAULT_API_VERSION).strip('/')}"
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.timeout = timeout

        headers = {"User-Agent": self.user_agent, "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> HTTPLinodeClient:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def _request(
        self,
        ctx: OperationContext,
        method: str,
        path: str,
        operation: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Make a request to the Linode API.

        Raises:
            LinodeError: For API errors and transport failures
            ContextCancelled: If the context is already done
        """
        ctx.check()
        timeout = ctx.remaining()
        if timeout is None:
            timeout = self.timeout

        start_time = time.time()
        try:
            response = self._client.request(method, path, params=params, json=json, timeout=timeout)
        except httpx.HTTPError as e:
            metrics.api_call_total.labels(api_type="linode", operation=operation, result="error").inc()
            raise LinodeError(f"{operation} failed: {e}") from e
        finally:
            duration = time.time() - start_time
            metrics.api_call_duration_seconds.labels(api_type="linode", operation=operation).observe(duration)

        if response.status_code >= 400:
            metrics.api_call_total.labels(api_type="linode", operation=operation, result="error").inc()
            self._handle_error_response(operation, response)

        metrics.api_call_total.labels(api_type="linode", operation=operation, result="success").inc()
        if not response.content:
            return {}
        return response.json()

    def _handle_error_response(self, operation: str, response: httpx.Response) -> None:
        """Raise a LinodeError built from an error response."""
        reasons: list[str] = []
        try:
            for error in response.json().get("errors", []):
                reason = error.get("reason", "")
                if error.get("field"):
                    reason = f"{error['field']}: {reason}"
                reasons.append(reason)
        except ValueError:
            pass
        raise LinodeError(f"{operation} failed", status_code=response.status_code, reasons=reasons)

    def _list_all(self, ctx: OperationContext, path: str, operation: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            body = self._request(ctx, "GET", path, operation, params={"page": page, "page_size": PAGE_SIZE})
            items.extend(body.get("data", []))
            if page >= int(body.get("pages") or 1):
                return items
            page += 1

    def create_bucket(
        self,
        ctx: OperationContext,
        region: str,
        label: str,
        acl: ACL = ACL.PRIVATE,
        cors_enabled: bool = False,
    ) -> Bucket:
        body = self._request(
            ctx,
            "POST",
            "/object-storage/buckets",
            "create_bucket",
            json={"region": region, "label": label, "acl": acl.value, "cors_enabled": cors_enabled},
        )
        return Bucket.from_api(body)

    def get_bucket(self, ctx: OperationContext, region: str, label: str) -> Bucket:
        body = self._request(ctx, "GET", f"/object-storage/buckets/{region}/{label}", "get_bucket")
        return Bucket.from_api(body)

    def delete_bucket(self, ctx: OperationContext, region: str, label: str) -> None:
        self._request(ctx, "DELETE", f"/object-storage/buckets/{region}/{label}", "delete_bucket")

    def get_bucket_access(self, ctx: OperationContext, region: str, label: str) -> BucketAccess:
        body = self._request(ctx, "GET", f"/object-storage/buckets/{region}/{label}/access", "get_bucket_access")
        return BucketAccess.from_api(body)

    def update_bucket_access(
        self,
        ctx: OperationContext,
        region: str,
        label: str,
        acl: ACL | None = None,
        cors_enabled: bool | None = None,
    ) -> None:
        payload: dict[str, Any] = {}
        if acl is not None:
            payload["acl"] = acl.value
        if cors_enabled is not None:
            payload["cors_enabled"] = cors_enabled
        self._request(
            ctx,
            "POST",
            f"/object-storage/buckets/{region}/{label}/access",
            "update_bucket_access",
            json=payload,
        )

    def create_key(
        self,
        ctx: OperationContext,
        label: str,
        bucket_access: list[BucketAccessEntry] | None = None,
    ) -> ObjectStorageKey:
        payload: dict[str, Any] = {"label": label}
        entries = bucket_access_payload(bucket_access)
        if entries:
            payload["bucket_access"] = entries
        body = self._request(ctx, "POST", "/object-storage/keys", "create_key", json=payload)
        return ObjectStorageKey.from_api(body)

    def list_keys(self, ctx: OperationContext) -> list[ObjectStorageKey]:
        return [ObjectStorageKey.from_api(item) for item in self._list_all(ctx, "/object-storage/keys", "list_keys")]

    def get_key(self, ctx: OperationContext, key_id: int) -> ObjectStorageKey:
        body = self._request(ctx, "GET", f"/object-storage/keys/{key_id}", "get_key")
        return ObjectStorageKey.from_api(body)

    def delete_key(self, ctx: OperationContext, key_id: int) -> None:
        self._request(ctx, "DELETE", f"/object-storage/keys/{key_id}", "delete_key")

    def list_endpoints(self, ctx: OperationContext) -> list[ObjectStorageEndpoint]:
        items = self._list_all(ctx, "/object-storage/endpoints", "list_endpoints")
        return [ObjectStorageEndpoint.from_api(item) for item in items]
