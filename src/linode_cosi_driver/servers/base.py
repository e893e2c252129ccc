"""Base server class with common functionality for all COSI servers."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, TypeVar

import grpc

from .. import metrics
from ..exceptions import RPCError
from ..logging import log_request_event
from ..tracing import add_span_attribute, trace_span
from ..utils.context import ContextCancelled, DeadlineExceeded, with_correlation_id
from ..utils.errors import sanitize_exception

T = TypeVar("T")


class BaseServer:
    """Base class for COSI servers: structured logging, metrics and error mapping."""

    def __init__(self, name: str):
        """Initialize base server.

        Args:
            name: Server name used in span names (e.g., "provisioner")
        """
        self.name = name
        self.logger = logging.getLogger(__name__)

    def log_debug(self, method: str, message: str, **kwargs: Any) -> None:
        log_request_event(self.logger, logging.DEBUG, method, message, **kwargs)

    def log_info(self, method: str, message: str, **kwargs: Any) -> None:
        """Log an info-level structured log message.

        Args:
            method: COSI method name
            message: Log message
            **kwargs: Additional fields to include in the log
        """
        log_request_event(self.logger, logging.INFO, method, message, **kwargs)

    def log_warning(self, method: str, message: str, **kwargs: Any) -> None:
        log_request_event(self.logger, logging.WARNING, method, message, **kwargs)

    def log_error(
        self,
        method: str,
        message: str,
        error: BaseException | None = None,
        **kwargs: Any,
    ) -> None:
        """Log an error-level structured log message.

        Args:
            method: COSI method name
            message: Log message
            error: Optional exception to include sanitized error details
            **kwargs: Additional fields to include in the log
        """
        log_data = kwargs.copy()
        if error is not None:
            log_data["error"] = sanitize_exception(error)
            log_data["error_type"] = type(error).__name__
        log_request_event(self.logger, logging.ERROR, method, message, **log_data)

    def fail(
        self,
        method: str,
        code: grpc.StatusCode,
        message: str,
        error: BaseException | None = None,
        **kwargs: Any,
    ) -> RPCError:
        """Log a failure and build the RPC error returned for it.

        The detail of ``error`` goes to the log, the caller only sees ``message``.
        """
        self.log_error(method, message, error=error, code=code.name, **kwargs)
        return RPCError(code, message)

    def call_with_metrics(self, method: str, request_id: str, call: Callable[[], T]) -> T:
        """Run a COSI call with correlation id, tracing, metrics and error mapping.

        Args:
            method: COSI method name
            request_id: Correlation id attached to every log line of the call
            call: Function implementing the call

        Returns:
            Result of ``call``

        Raises:
            RPCError: For every failure; cancellation becomes CANCELLED or
                DEADLINE_EXCEEDED and unexpected errors become INTERNAL
        """
        code = grpc.StatusCode.OK
        start_time = time.time()
        with with_correlation_id(request_id), trace_span(
            f"{self.name}/{method}", attributes={"cosi.method": method, "cosi.request_id": request_id}
        ):
            try:
                return call()
            except RPCError as e:
                code = e.code
                raise
            except DeadlineExceeded as e:
                code = grpc.StatusCode.DEADLINE_EXCEEDED
                raise self.fail(method, code, "context deadline exceeded", error=e) from e
            except ContextCancelled as e:
                code = grpc.StatusCode.CANCELLED
                raise self.fail(method, code, "context canceled", error=e) from e
            except Exception as e:
                code = grpc.StatusCode.INTERNAL
                raise self.fail(method, code, "internal error", error=e) from e
            finally:
                add_span_attribute("rpc.grpc.status_code", code.name)
                metrics.rpc_total.labels(method=method, code=code.name).inc()
                metrics.rpc_duration_seconds.labels(method=method).observe(time.time() - start_time)
