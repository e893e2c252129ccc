"""Region to S3 endpoint cache, refreshed from the Linode API."""

from __future__ import annotations

import logging
import threading
from typing import Iterable

from ... import metrics
from ...constants import ENDPOINT_CACHE_DEFAULT_TTL, ENDPOINT_CACHE_REFRESH_TIMEOUT
from ...logging import log_event
from ...utils.context import ContextCancelled, OperationContext
from ...utils.errors import sanitize_exception
from .base import LinodeClient

logger = logging.getLogger(__name__)


class EndpointCache:
    """Mapping of region to S3 endpoint hostname.

    A single refresh loop writes, any number of handlers read. Entries are
    only ever inserted or overwritten: an endpoint that disappears from the
    provider listing stays cached so a provider outage never empties the map.

    Args:
        client: Linode client used to list endpoints
        ttl: Refresh interval in seconds, never below 30
    """

    def __init__(self, client: LinodeClient, ttl: float | None = None) -> None:
        if not ttl or ttl < ENDPOINT_CACHE_DEFAULT_TTL:
            ttl = ENDPOINT_CACHE_DEFAULT_TTL
        self.ttl = ttl
        self.client = client
        self._lock = threading.Lock()
        self._data: dict[str, str] = {}

    def get(self, region: str) -> str | None:
        """Return the S3 endpoint of a region, or None when unknown."""
        with self._lock:
            return self._data.get(region)

    def set(self, region: str, endpoint: str) -> None:
        with self._lock:
            self._data[region] = endpoint
            size = len(self._data)
        metrics.endpoint_cache_entries.set(size)

    def insert(self, entries: Iterable[tuple[str, str]]) -> None:
        """Insert many region/endpoint pairs at once."""
        with self._lock:
            self._data.update(entries)
            size = len(self._data)
        metrics.endpoint_cache_entries.set(size)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    @property
    def ready(self) -> bool:
        """True once at least one endpoint is known."""
        return len(self) > 0

    def refresh(self, ctx: OperationContext) -> None:
        """Fetch the endpoint listing and merge it into the cache.

        Raises:
            LinodeError: If the endpoints cannot be listed
        """
        log_event(logger, logging.DEBUG, "Syncing endpoint cache")
        try:
            endpoints = self.client.list_endpoints(ctx)
        except Exception:
            metrics.endpoint_cache_refresh_total.labels(result="error").inc()
            raise

        self.insert((ep.region, ep.s3_endpoint) for ep in endpoints if ep.s3_endpoint)
        metrics.endpoint_cache_refresh_total.labels(result="success").inc()

    def _refresh_logged(self, ctx: OperationContext) -> None:
        try:
            self.refresh(ctx)
        except ContextCancelled:
            if not ctx.expired:
                raise
            log_event(logger, logging.ERROR, "Failed to refresh endpoint cache", error="refresh timed out")
        except Exception as e:
            log_event(logger, logging.ERROR, "Failed to refresh endpoint cache", error=sanitize_exception(e))

    def start(self, ctx: OperationContext) -> None:
        """Refresh once, then every ``ttl`` seconds until ``ctx`` is cancelled.

        Refresh failures are logged and the loop continues.

        Raises:
            ContextCancelled: When ``ctx`` is cancelled
        """
        self._refresh_logged(ctx)

        while not ctx.wait(self.ttl):
            self._refresh_logged(ctx.with_timeout(ENDPOINT_CACHE_REFRESH_TIMEOUT))

        ctx.check()

    def start_background(self, ctx: OperationContext) -> threading.Thread:
        """Run ``start`` on a daemon thread."""

        def run() -> None:
            try:
                self.start(ctx)
            except ContextCancelled:
                log_event(logger, logging.INFO, "Endpoint cache refresh loop stopped")

        thread = threading.Thread(target=run, name="endpoint-cache", daemon=True)
        thread.start()
        return thread
