"""Utility functions for the Linode COSI driver."""

from .context import (
    ContextCancelled,
    DeadlineExceeded,
    OperationContext,
    get_context_dict,
    get_correlation_id,
    set_correlation_id,
    with_correlation_id,
)
from .errors import sanitize_dict, sanitize_error_message, sanitize_exception

__all__ = [
    "OperationContext",
    "ContextCancelled",
    "DeadlineExceeded",
    "set_correlation_id",
    "get_correlation_id",
    "with_correlation_id",
    "get_context_dict",
    "sanitize_error_message",
    "sanitize_exception",
    "sanitize_dict",
]
