"""Driver configuration loaded from the environment."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Mapping

from . import __version__
from .constants import ENDPOINT_CACHE_DEFAULT_TTL
from .exceptions import ConfigError

DEFAULT_COSI_ENDPOINT = "unix:///var/lib/cosi/cosi.sock"

_TRUE = {"1", "true", "yes", "on", "t", "y"}
_FALSE = {"0", "false", "no", "off", "f", "n"}
_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_bool(name: str, value: str | None, default: bool) -> bool:
    """Parse a boolean environment value.

    Raises:
        ConfigError: If the value is not a recognised boolean
    """
    if value is None or value.strip() == "":
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigError(f"{name}: invalid boolean value {value!r}")


def parse_duration(name: str, value: str | None, default: float) -> float:
    """Parse seconds given as a number or a duration such as ``1m30s``.

    Raises:
        ConfigError: If the value cannot be parsed
    """
    if value is None or value.strip() == "":
        return default
    value = value.strip()
    try:
        return float(value)
    except ValueError:
        pass

    total = 0.0
    position = 0
    for match in _DURATION_RE.finditer(value):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(value) or position == 0:
        raise ConfigError(f"{name}: invalid duration {value!r}")
    return total


@dataclass
class DriverConfig:
    """Configuration of the driver process."""

    linode_token: str = ""
    linode_api_url: str | None = None
    linode_api_version: str | None = None
    cosi_endpoint: str = DEFAULT_COSI_ENDPOINT
    endpoint_cache_ttl: float = ENDPOINT_CACHE_DEFAULT_TTL
    s3_ssl_enabled: bool = True
    s3_ephemeral_credentials: bool = True
    s3_access_key: str = ""
    s3_secret_key: str = ""
    per_bucket_tokens: bool = False
    allow_force_cleanup: bool = False
    metrics_port: int = 8080
    log_level: str = "INFO"
    user_agent: str = f"linode-cosi-driver/{__version__}"

    def __post_init__(self) -> None:
        if self.endpoint_cache_ttl < ENDPOINT_CACHE_DEFAULT_TTL:
            self.endpoint_cache_ttl = ENDPOINT_CACHE_DEFAULT_TTL

    def __repr__(self) -> str:
        return (
            f"DriverConfig(cosi_endpoint={self.cosi_endpoint!r}, linode_api_url={self.linode_api_url!r}, "
            f"endpoint_cache_ttl={self.endpoint_cache_ttl}, s3_ssl_enabled={self.s3_ssl_enabled}, "
            f"s3_ephemeral_credentials={self.s3_ephemeral_credentials}, per_bucket_tokens={self.per_bucket_tokens})"
        )

    def validate(self) -> None:
        """Check that required values are present.

        Raises:
            ConfigError: If the configuration is incomplete
        """
        if not self.linode_token and not self.per_bucket_tokens:
            raise ConfigError("LINODE_TOKEN is required")
        if not self.s3_ephemeral_credentials and (not self.s3_access_key or not self.s3_secret_key):
            raise ConfigError("S3_ACCESS_KEY and S3_SECRET_KEY are required when ephemeral credentials are disabled")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DriverConfig:
        """Load and validate configuration from environment variables.

        Args:
            environ: Environment mapping, defaults to ``os.environ``

        Raises:
            ConfigError: If a value is invalid or a required one is missing
        """
        env = os.environ if environ is None else environ

        try:
            metrics_port = int(env.get("METRICS_PORT", "8080"))
        except ValueError as e:
            raise ConfigError(f"METRICS_PORT: invalid port {env.get('METRICS_PORT')!r}") from e

        config = cls(
            linode_token=env.get("LINODE_TOKEN", "").strip(),
            linode_api_url=env.get("LINODE_API_URL") or None,
            linode_api_version=env.get("LINODE_API_VERSION") or None,
            cosi_endpoint=env.get("COSI_ENDPOINT") or DEFAULT_COSI_ENDPOINT,
            endpoint_cache_ttl=parse_duration(
                "LINODE_OBJECT_STORAGE_ENDPOINT_CACHE_TTL",
                env.get("LINODE_OBJECT_STORAGE_ENDPOINT_CACHE_TTL"),
                ENDPOINT_CACHE_DEFAULT_TTL,
            ),
            s3_ssl_enabled=parse_bool("S3_CLIENT_SSL_ENABLED", env.get("S3_CLIENT_SSL_ENABLED"), True),
            s3_ephemeral_credentials=parse_bool(
                "S3_CLIENT_EPHEMERAL_CREDENTIALS", env.get("S3_CLIENT_EPHEMERAL_CREDENTIALS"), True
            ),
            s3_access_key=env.get("S3_ACCESS_KEY", ""),
            s3_secret_key=env.get("S3_SECRET_KEY", ""),
            per_bucket_tokens=parse_bool("LINODE_PER_BUCKET_TOKENS", env.get("LINODE_PER_BUCKET_TOKENS"), False),
            allow_force_cleanup=parse_bool("COSI_ALLOW_FORCE_CLEANUP", env.get("COSI_ALLOW_FORCE_CLEANUP"), False),
            metrics_port=metrics_port,
            log_level=env.get("LOG_LEVEL", "INFO"),
        )
        config.validate()
        return config
