"""Main entry point for the Linode COSI driver."""

from __future__ import annotations

import logging
import os
import signal
import sys
import threading
from typing import Any

from . import DRIVER_NAME, __version__
from . import logging as structured_logging
from .builders.linode import create_linode_client
from .config import DriverConfig
from .endpoint import Endpoint
from .exceptions import ConfigError
from .health import start_metrics_server
from .services.linode.base import LinodeClient
from .services.linode.cache import EndpointCache
from .services.s3.client import BotoS3Client
from .servers import BucketKeyBroker, IdentityServer, ProvisionerServer, TokenResolver
from .tracing import initialize_tracing, shutdown_tracing
from .utils.context import OperationContext

logger = logging.getLogger(__name__)

CACHE_THREAD_JOIN_TIMEOUT = 5.0


class Driver:
    """Wires the driver components together.

    The identity and provisioner servers are exposed for registration with a
    COSI gRPC transport.

    Args:
        config: Driver configuration
        linode_client: Default Linode client, built from the configuration when None
        token_resolver: Per-bucket token resolver, built from the cluster
            configuration when per-bucket tokens are enabled and None is given
    """

    def __init__(
        self,
        config: DriverConfig,
        linode_client: LinodeClient | None = None,
        token_resolver: TokenResolver | None = None,
    ) -> None:
        self.config = config
        self.endpoint = Endpoint(config.cosi_endpoint)
        self.client = linode_client or create_linode_client(config)
        self.cache = EndpointCache(self.client, ttl=config.endpoint_cache_ttl)

        s3_client = None
        if not config.s3_ephemeral_credentials:
            s3_client = BotoS3Client(
                self.cache, config.s3_access_key, config.s3_secret_key, ssl=config.s3_ssl_enabled
            )

        if config.per_bucket_tokens and token_resolver is None:
            token_resolver = TokenResolver.from_cluster()

        self.identity = IdentityServer(DRIVER_NAME)
        self.provisioner = ProvisionerServer(
            self.client,
            self.cache,
            broker=BucketKeyBroker(self.cache, s3_client=s3_client, ssl=config.s3_ssl_enabled),
            token_resolver=token_resolver if config.per_bucket_tokens else None,
            client_factory=lambda token: create_linode_client(config, token),
            allow_force_cleanup=config.allow_force_cleanup,
        )

        self.ctx = OperationContext.background()
        self._stop = threading.Event()
        self._cache_thread: threading.Thread | None = None
        self._metrics_server: Any = None

    def start(self) -> None:
        """Start the metrics server and the endpoint cache refresh loop."""
        self._metrics_server = start_metrics_server(self.config.metrics_port, ready=lambda: self.cache.ready)
        self._cache_thread = self.cache.start_background(self.ctx)
        logger.info(f"Driver {DRIVER_NAME} {__version__} ready, COSI endpoint {self.endpoint.address()}")

    def stop(self) -> None:
        self._stop.set()

    def wait(self) -> None:
        """Block until ``stop`` is called."""
        self._stop.wait()

    def shutdown(self) -> None:
        """Stop background work and release resources."""
        logger.info("Shutting down")
        self.ctx.cancel("shutdown")
        if self._cache_thread is not None:
            self._cache_thread.join(timeout=CACHE_THREAD_JOIN_TIMEOUT)
        if self._metrics_server is not None:
            self._metrics_server.shutdown()
        self.endpoint.close()
        close = getattr(self.client, "close", None)
        if close is not None:
            close()
        shutdown_tracing()


def main() -> int:
    """Run the driver until SIGINT or SIGTERM."""
    structured_logging.setup_structured_logging(os.getenv("LOG_LEVEL", "INFO"))

    try:
        config = DriverConfig.from_env()
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    initialize_tracing()

    try:
        driver = Driver(config)
    except (ConfigError, ValueError) as e:
        logger.error(f"Failed to initialize driver: {e}")
        shutdown_tracing()
        return 1

    def handle_signal(signum: int, frame: Any) -> None:
        logger.info(f"Received signal {signal.Signals(signum).name}")
        driver.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    driver.start()
    try:
        driver.wait()
    finally:
        driver.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
