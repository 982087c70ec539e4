import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from .. import __version__
from ..config.settings import Settings, get_settings
from ..errors import AuthKitError

ERROR_CODE_ATTRIBUTE = "authkit.error_code"


def init_tracing(
    service_name: str | None = None,
    service_version: str = __version__,
    endpoint: str | None = None,
    instrument_httpx: bool = True,
    settings: Settings | None = None,
) -> TracerProvider | None:
    """
    Install a tracer provider for key fetches, token exchanges and signing calls

    Args:
        service_name: Host service name; defaults to SERVICE_NAME
        service_version: Reported service version
        endpoint: OTLP endpoint URL; defaults to OTEL_EXPORTER_OTLP_ENDPOINT
        instrument_httpx: Also trace the underlying httpx requests

    Returns:
        The SDK provider, or None when no endpoint is configured and a
        no-op provider was installed instead
    """
    settings = settings or get_settings()
    endpoint = endpoint or settings.otel_exporter_otlp_endpoint

    if not endpoint:
        trace.set_tracer_provider(trace.NoOpTracerProvider())
        return None

    resource = Resource.create(
        {
            SERVICE_NAME: service_name or settings.service_name,
            SERVICE_VERSION: service_version,
            "deployment.environment": os.getenv("ENV", "development"),
        }
    )

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=endpoint.startswith("http://")))
    )
    trace.set_tracer_provider(tracer_provider)

    if instrument_httpx:
        HTTPXClientInstrumentor().instrument()
    return tracer_provider


def get_tracer(name: str | None = None) -> trace.Tracer:
    return trace.get_tracer(name or __name__)


def record_error(span: trace.Span, error: Exception) -> None:
    """Mark span as failed and tag it with the error code when one is known"""
    span.record_exception(error)
    span.set_status(trace.Status(trace.StatusCode.ERROR, str(error)))
    if isinstance(error, AuthKitError) and error.code:
        span.set_attribute(ERROR_CODE_ATTRIBUTE, error.code)
