"""Tests for health check endpoints."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from linode_cosi_driver.health import create_combined_wsgi_app, start_metrics_server


def environ_for(path: str) -> dict:
    return {
        "REQUEST_METHOD": "GET",
        "PATH_INFO": path,
        "SCRIPT_NAME": "",
        "SERVER_NAME": "localhost",
        "SERVER_PORT": "8080",
        "wsgi.url_scheme": "http",
    }


def call(app, path: str) -> tuple[str, bytes]:
    start_response = MagicMock()
    body = b"".join(app(environ_for(path), start_response))
    return start_response.call_args[0][0], body


class TestCombinedWsgiApp:
    """Test cases for create_combined_wsgi_app."""

    def test_healthz(self):
        """Test that /healthz is always ok."""
        status, body = call(create_combined_wsgi_app(ready=lambda: False), "/healthz")

        assert status.startswith("200")
        assert b'"status":"ok"' in body

    def test_readyz_ready(self):
        """Test that /readyz is 200 once ready."""
        status, body = call(create_combined_wsgi_app(ready=lambda: True), "/readyz")

        assert status.startswith("200")
        assert b'"status":"ready"' in body

    def test_readyz_not_ready(self):
        """Test that /readyz is 503 before the endpoint cache is populated."""
        status, body = call(create_combined_wsgi_app(ready=lambda: False), "/readyz")

        assert status.startswith("503")
        assert b"not ready" in body

    def test_readyz_without_probe(self):
        status, _ = call(create_combined_wsgi_app(), "/readyz")

        assert status.startswith("200")

    def test_metrics_delegated(self):
        """Test that /metrics is served by prometheus."""
        status, body = call(create_combined_wsgi_app(), "/metrics")

        assert status.startswith("200")
        assert b"linode_cosi_driver_rpc_total" in body or b"# HELP" in body


class TestStartMetricsServer:
    """Test cases for start_metrics_server."""

    @patch("linode_cosi_driver.health.threading.Thread")
    @patch("linode_cosi_driver.health.make_server")
    def test_start(self, mock_make_server, mock_thread):
        """Test that the server runs on a daemon thread."""
        server = MagicMock()
        mock_make_server.return_value = server

        result = start_metrics_server(9090)

        assert result is server
        assert mock_make_server.call_args.args[:2] == ("", 9090)
        assert mock_thread.call_args.kwargs["daemon"] is True
        mock_thread.return_value.start.assert_called_once()
