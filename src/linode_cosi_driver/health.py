"""Health, readiness and metrics endpoints."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from prometheus_client import make_wsgi_app
from werkzeug.serving import BaseWSGIServer, make_server
from werkzeug.wrappers import Response

logger = logging.getLogger(__name__)


def create_combined_wsgi_app(ready: Callable[[], bool] | None = None) -> Any:
    """Create a WSGI app serving health checks and delegating the rest to prometheus.

    Args:
        ready: Readiness probe, the driver is ready when it returns True

    Returns:
        Combined WSGI application
    """
    metrics_app = make_wsgi_app()

    def combined_app(environ: dict[str, Any], start_response: Any) -> Any:
        """Route /healthz and /readyz, delegate /metrics to prometheus."""
        path = environ.get("PATH_INFO", "")

        if path == "/healthz":
            response = Response('{"status":"ok"}', mimetype="application/json", status=200)
            return response(environ, start_response)
        if path == "/readyz":
            if ready is None or ready():
                response = Response('{"status":"ready"}', mimetype="application/json", status=200)
            else:
                response = Response('{"status":"not ready"}', mimetype="application/json", status=503)
            return response(environ, start_response)
        return metrics_app(environ, start_response)

    return combined_app


def start_metrics_server(port: int, ready: Callable[[], bool] | None = None) -> BaseWSGIServer:
    """Serve health checks and metrics on ``port`` from a daemon thread.

    Returns:
        The running server, stop it with ``shutdown()``
    """
    server = make_server("", port, create_combined_wsgi_app(ready), threaded=True)
    thread = threading.Thread(target=server.serve_forever, name="metrics", daemon=True)
    thread.start()
    logger.info(f"Metrics and health endpoints listening on port {port}")
    return server
