"""Structured logging configuration for the Linode COSI driver."""

import json
import logging
import sys
from typing import Any

from . import DRIVER_NAME
from .utils.context import get_context_dict
from .utils.errors import sanitize_dict

# Client libraries that log request details at INFO and below
QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "httpx", "httpcore", "kubernetes")


def setup_structured_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging on stdout."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_event(logger: logging.Logger, level: int, message: str, **kwargs: Any) -> None:
    """Log one JSON line outside a specific COSI method.

    Background work and helpers shared by several calls log through here so
    the correlation id of the enclosing call, if any, is kept.
    """
    log_data = {"driver": DRIVER_NAME, "message": message}
    log_data.update(get_context_dict())
    log_data.update(sanitize_dict(kwargs))
    logger.log(level, json.dumps(log_data, default=str))


def log_request_event(
    logger: logging.Logger,
    level: int,
    method: str,
    message: str,
    **kwargs: Any,
) -> None:
    """Log one JSON line for a COSI call.

    The correlation id of the current call is included when set, and
    credential-bearing fields are redacted.
    """
    log_event(logger, level, message, method=method, **kwargs)
