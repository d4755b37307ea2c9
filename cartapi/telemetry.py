from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.flask import FlaskInstrumentor
from opentelemetry.instrumentation.requests import RequestsInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.propagate import set_global_textmap
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from models import db

# Spans around cart mutations; catalog and storage spans come from the instrumentations.
tracer = trace.get_tracer("cartapi")

_provider = None


def _span_processor(app):
    endpoint = app.config.get("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
    return BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint))


def init_tracing(app):
    """Install the tracer provider once per process and instrument ``app``."""
    global _provider
    if _provider is None:
        resource = Resource.create({
            "service.name": app.config.get("OTEL_SERVICE_NAME", "cart-api"),
            "service.namespace": "cart",
        })
        _provider = TracerProvider(resource=resource)
        # Test apps still get valid spans for traceparent, just no exporter.
        if not app.config.get("TESTING"):
            _provider.add_span_processor(_span_processor(app))
        trace.set_tracer_provider(_provider)
        set_global_textmap(TraceContextTextMapPropagator())
        RequestsInstrumentor().instrument()

    FlaskInstrumentor().instrument_app(app)
    with app.app_context():
        SQLAlchemyInstrumentor().instrument(engine=db.engine)
