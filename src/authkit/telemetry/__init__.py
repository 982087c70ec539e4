"""OpenTelemetry utilities for tracing outbound token operations."""

from .otel import get_tracer, init_tracing, record_error

__all__ = [
    "init_tracing",
    "get_tracer",
    "record_error",
]
