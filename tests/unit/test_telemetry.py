# Assumptions:
# - Using pytest for testing framework
# - Spans are captured with the SDK in-memory exporter, never exported over the network

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from authkit.config import Settings
from authkit.errors import KeyFetchError
from authkit.telemetry import init_tracing, record_error
from authkit.telemetry.otel import ERROR_CODE_ATTRIBUTE


@pytest.fixture
def exporter():
    return InMemorySpanExporter()


@pytest.fixture
def tracer(exporter):
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    return provider.get_tracer(__name__)


class TestRecordError:
    def test_auth_error_code_tagged(self, tracer, exporter):
        with tracer.start_as_current_span("keys.fetch") as span:
            record_error(span, KeyFetchError("certs endpoint unavailable"))

        (finished,) = exporter.get_finished_spans()
        assert finished.status.status_code == StatusCode.ERROR
        assert finished.attributes[ERROR_CODE_ATTRIBUTE] == "key-fetch-error"
        assert finished.events[0].name == "exception"

    def test_plain_exception_untagged(self, tracer, exporter):
        with tracer.start_as_current_span("keys.fetch") as span:
            record_error(span, ValueError("boom"))

        (finished,) = exporter.get_finished_spans()
        assert finished.status.status_code == StatusCode.ERROR
        assert ERROR_CODE_ATTRIBUTE not in finished.attributes


class TestInitTracing:
    def test_no_endpoint_installs_noop(self, monkeypatch):
        monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)

        assert init_tracing(settings=Settings(_env_file=None), instrument_httpx=False) is None

    def test_endpoint_installs_sdk_provider(self):
        settings = Settings(_env_file=None, service_name="token-service")

        provider = init_tracing(endpoint="http://localhost:4317", instrument_httpx=False, settings=settings)

        try:
            assert isinstance(provider, TracerProvider)
            assert provider.resource.attributes["service.name"] == "token-service"
        finally:
            provider.shutdown()
