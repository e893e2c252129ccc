"""Builder for Linode client instances."""

from __future__ import annotations

from ..config import DriverConfig
from ..services.linode.client import HTTPLinodeClient


def create_linode_client(config: DriverConfig, token: str | None = None) -> HTTPLinodeClient:
    """Create a Linode client from driver configuration.

    Args:
        config: Driver configuration
        token: Token to use instead of the configured one

    Returns:
        Configured Linode client

    Raises:
        ValueError: If no token is available and per-bucket tokens are disabled,
            or a token override is requested without a user agent
    """
    if token:
        if not config.user_agent:
            raise ValueError("user agent not set for token-based client")
    else:
        token = config.linode_token
        if not token and not config.per_bucket_tokens:
            raise ValueError("linode token is required")

    return HTTPLinodeClient(
        token=token,
        base_url=config.linode_api_url,
        api_version=config.linode_api_version,
        user_agent=config.user_agent,
    )
