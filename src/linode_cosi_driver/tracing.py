"""OpenTelemetry tracing support for the Linode COSI driver."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Tracer

from . import DRIVER_NAME, __version__
from .config import parse_bool
from .constants import OBSERVABILITY_SHUTDOWN_TIMEOUT
from .exceptions import ConfigError

logger = logging.getLogger(__name__)

# Global tracer instance
_tracer: Tracer | None = None
_provider: TracerProvider | None = None


def initialize_tracing(service_name: str = "linode-cosi-driver") -> None:
    """Initialize OpenTelemetry tracing.

    Args:
        service_name: Name of the service for tracing

    Environment Variables:
        OTEL_EXPORTER_OTLP_ENDPOINT: OTLP endpoint URL (default: http://localhost:4317)
        OTEL_SERVICE_NAME: Service name (default: linode-cosi-driver)
        OTEL_TRACES_ENABLED: Enable/disable tracing (default: true)
    """
    global _tracer, _provider

    try:
        enabled = parse_bool("OTEL_TRACES_ENABLED", os.getenv("OTEL_TRACES_ENABLED"), True)
    except ConfigError as e:
        logger.warning(f"Tracing disabled: {e}")
        return
    if not enabled:
        return

    try:
        service_name = os.getenv("OTEL_SERVICE_NAME", service_name)
        endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")

        resource = Resource.create({
            "service.name": service_name,
            "service.version": __version__,
            "cosi.driver": DRIVER_NAME,
        })

        provider = TracerProvider(resource=resource)
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        trace.set_tracer_provider(provider)

        _provider = provider
        _tracer = trace.get_tracer(service_name)
    except Exception as e:
        # Tracing initialization failures should not break the driver
        logger.warning(f"Failed to initialize tracing: {e}")


def shutdown_tracing(timeout: float = OBSERVABILITY_SHUTDOWN_TIMEOUT) -> None:
    """Flush pending spans, waiting at most ``timeout`` seconds."""
    global _tracer, _provider

    if _provider is None:
        return
    if not _provider.force_flush(timeout_millis=int(timeout * 1000)):
        logger.warning("Timed out flushing traces")
    _provider.shutdown()
    _provider = None
    _tracer = None


def get_tracer() -> Tracer | None:
    """Get the global tracer instance.

    Returns:
        Tracer instance or None if tracing is disabled or not initialized
    """
    return _tracer


@contextmanager
def trace_span(name: str, attributes: dict[str, Any] | None = None) -> Iterator[Span | None]:
    """Context manager for creating a trace span.

    Args:
        name: Name of the span
        attributes: Additional span attributes

    Yields:
        Span object or None if tracing is not initialized
    """
    tracer = get_tracer()
    if tracer is None:
        yield None
        return

    with tracer.start_as_current_span(
        name, attributes=attributes or {}, record_exception=False, set_status_on_exception=False
    ) as span:
        try:
            yield span
        except Exception as e:
            if span.is_recording():
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
            raise


def add_span_attribute(key: str, value: Any) -> None:
    """Add an attribute to the current span."""
    span = trace.get_current_span()
    if span and span.is_recording():
        span.set_attribute(key, value)
