"""OpenTelemetry wiring: provider setup, FastAPI spans, outbound processor spans."""

from contextlib import contextmanager

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor


tracer = trace.get_tracer("tixpay")


def setup_tracing(service_name: str, endpoint: str) -> None:
    """Register a tracer provider exporting to `endpoint` over OTLP/HTTP."""

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(provider)


def instrument_app(app: FastAPI) -> None:
    FastAPIInstrumentor.instrument_app(app)


@contextmanager
def processor_span(operation: str, method: str):
    """Span around one call to the payment processor.

    Without a registered provider this is a no-op span.
    """

    with tracer.start_as_current_span(f"dwolla.{operation}") as span:
        span.set_attribute("dwolla.operation", operation)
        span.set_attribute("http.request.method", method)
        yield span
