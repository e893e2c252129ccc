"""COSI listener endpoint."""

from __future__ import annotations

import logging
import os
from urllib.parse import urlparse

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

SCHEME_UNIX = "unix"
SCHEME_TCP = "tcp"


class Endpoint:
    """Listener address parsed from ``COSI_ENDPOINT``.

    Args:
        url: ``unix:///path/to/socket`` or ``tcp://host:port``

    Raises:
        ConfigError: If the scheme is unsupported or the address is empty
    """

    def __init__(self, url: str) -> None:
        parsed = urlparse(url)
        self.url = url
        self.scheme = parsed.scheme.lower()

        if self.scheme == SCHEME_UNIX:
            self.path = parsed.path or parsed.netloc
            if not self.path:
                raise ConfigError(f"COSI_ENDPOINT: missing socket path in {url!r}")
        elif self.scheme == SCHEME_TCP:
            self.path = ""
            if not parsed.netloc:
                raise ConfigError(f"COSI_ENDPOINT: missing host in {url!r}")
        else:
            raise ConfigError(f"COSI_ENDPOINT: unsupported scheme {parsed.scheme!r}")
        self._netloc = parsed.netloc

    def address(self) -> str:
        """Transport address: ``unix:///path`` or ``host:port``."""
        if self.scheme == SCHEME_UNIX:
            return f"unix://{self.path}"
        return self._netloc

    def close(self) -> None:
        """Remove a left-over UNIX socket file."""
        if self.scheme != SCHEME_UNIX:
            return
        try:
            os.remove(self.path)
        except FileNotFoundError:
            return
        logger.info(f"Removed socket {self.path}")

    def __repr__(self) -> str:
        return f"Endpoint({self.url!r})"
