"""Per-bucket Linode token resolution from Kubernetes objects."""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping

from kubernetes import client, config

from .. import metrics
from ..constants import (
    ANNOTATION_LINODE_TOKEN_SECRET_NAME,
    ANNOTATION_LINODE_TOKEN_SECRET_NAMESPACE,
    COSI_API_GROUP,
    COSI_API_VERSION,
    LINODE_TOKEN_SECRET_KEY,
    PARAM_LINODE_TOKEN_SECRET_NAME,
    PARAM_LINODE_TOKEN_SECRET_NAMESPACE,
    PLURAL_BUCKET_CLAIMS,
    PLURAL_BUCKET_CLASSES,
    PLURAL_BUCKETS,
)
from ..utils.context import OperationContext
from ..utils.secrets import get_secret_value
from .utils import parse_bucket_id

logger = logging.getLogger(__name__)


def load_kube_config() -> None:
    """Load in-cluster configuration, falling back to kubeconfig."""
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


def request_options(ctx: OperationContext) -> dict[str, Any]:
    """Keyword arguments bounding a Kubernetes API call by the context deadline."""
    ctx.check()
    remaining = ctx.remaining()
    if remaining is None:
        return {}
    return {"_request_timeout": remaining}


class TokenResolver:
    """Find the Linode token that applies to a COSI request.

    The token comes from a Secret named either by the request parameters,
    by annotations on the BucketClaim, or by the parameters of the
    BucketClass of the Bucket with a matching bucket id.

    Args:
        core_api: Kubernetes core API, used to read Secrets
        custom_api: Kubernetes custom objects API, used to read COSI objects
    """

    def __init__(self, core_api: client.CoreV1Api, custom_api: client.CustomObjectsApi) -> None:
        self.core_api = core_api
        self.custom_api = custom_api

    @classmethod
    def from_cluster(cls) -> TokenResolver:
        load_kube_config()
        return cls(client.CoreV1Api(), client.CustomObjectsApi())

    def resolve(
        self,
        ctx: OperationContext,
        parameters: Mapping[str, str] | None = None,
        bucket_name: str = "",
        bucket_id: str = "",
    ) -> str | None:
        """Resolve the token for a request.

        Args:
            ctx: Operation context
            parameters: Request parameters
            bucket_name: Bucket name, known for CreateBucket
            bucket_id: Bucket id, known for the other calls

        Returns:
            The token, or None when the default token applies

        Raises:
            ValueError: If a referenced Secret is incomplete or ambiguous
            kubernetes.client.exceptions.ApiException: If the API call fails
        """
        ctx.check()
        parameters = parameters or {}

        name = parameters.get(PARAM_LINODE_TOKEN_SECRET_NAME, "")
        if name:
            return self.token_from_secret(ctx, parameters.get(PARAM_LINODE_TOKEN_SECRET_NAMESPACE, ""), name)
        if bucket_name:
            return self.token_from_bucket_claim(ctx, bucket_name)
        if bucket_id:
            return self.token_from_bucket_id(ctx, bucket_id)
        return None

    def token_from_secret(self, ctx: OperationContext, namespace: str, name: str) -> str | None:
        if not name:
            return None
        if not namespace:
            raise ValueError("secret namespace is required")
        ctx.check()
        return self._timed(
            "get_secret",
            get_secret_value,
            self.core_api,
            namespace,
            name,
            LINODE_TOKEN_SECRET_KEY,
            timeout=ctx.remaining(),
        )

    def token_from_bucket_claim(self, ctx: OperationContext, claim_name: str) -> str | None:
        """Resolve a token through the annotations of a BucketClaim."""
        if not claim_name:
            return None

        claims = self._timed(
            "list_bucket_claims",
            self.custom_api.list_cluster_custom_object,
            group=COSI_API_GROUP,
            version=COSI_API_VERSION,
            plural=PLURAL_BUCKET_CLAIMS,
            field_selector=f"metadata.name={claim_name}",
            **request_options(ctx),
        )
        items = claims.get("items", [])
        if not items:
            return None
        if len(items) > 1:
            raise ValueError(f"multiple bucketclaims named {claim_name}")

        meta = items[0].get("metadata", {})
        annotations = meta.get("annotations") or {}
        name = annotations.get(ANNOTATION_LINODE_TOKEN_SECRET_NAME, "")
        if not name:
            return None
        namespace = annotations.get(ANNOTATION_LINODE_TOKEN_SECRET_NAMESPACE) or meta.get("namespace", "")
        return self.token_from_secret(ctx, namespace, name)

    def token_from_bucket_id(self, ctx: OperationContext, bucket_id: str) -> str | None:
        """Resolve a token for an existing bucket.

        The label part of the id is first tried as a BucketClaim name, then
        the Bucket carrying the id in its status leads to its BucketClass.
        """
        try:
            _, label = parse_bucket_id(bucket_id)
        except ValueError:
            label = ""
        if label:
            token = self.token_from_bucket_claim(ctx, label)
            if token:
                return token

        buckets = self._timed(
            "list_buckets",
            self.custom_api.list_cluster_custom_object,
            group=COSI_API_GROUP,
            version=COSI_API_VERSION,
            plural=PLURAL_BUCKETS,
            **request_options(ctx),
        )
        for item in buckets.get("items", []):
            if (item.get("status") or {}).get("bucketID") != bucket_id:
                continue
            class_name = (item.get("spec") or {}).get("bucketClassName", "")
            if not class_name:
                return None
            return self.token_from_bucket_class(ctx, class_name)
        return None

    def token_from_bucket_class(self, ctx: OperationContext, class_name: str) -> str | None:
        bucket_class = self._timed(
            "get_bucket_class",
            self.custom_api.get_cluster_custom_object,
            group=COSI_API_GROUP,
            version=COSI_API_VERSION,
            plural=PLURAL_BUCKET_CLASSES,
            name=class_name,
            **request_options(ctx),
        )
        parameters = bucket_class.get("parameters") or {}
        name = parameters.get(PARAM_LINODE_TOKEN_SECRET_NAME, "")
        if not name:
            return None
        return self.token_from_secret(ctx, parameters.get(PARAM_LINODE_TOKEN_SECRET_NAMESPACE, ""), name)

    @staticmethod
    def _timed(operation: str, fn: Any, *args: Any, **kwargs: Any) -> Any:
        start_time = time.time()
        try:
            result = fn(*args, **kwargs)
            metrics.api_call_total.labels(api_type="k8s", operation=operation, result="success").inc()
            return result
        except Exception:
            metrics.api_call_total.labels(api_type="k8s", operation=operation, result="error").inc()
            raise
        finally:
            duration = time.time() - start_time
            metrics.api_call_duration_seconds.labels(api_type="k8s", operation=operation).observe(duration)
