"""OpenTelemetry wiring: OTLP export of traces, metrics and logs

Everything here is a no-op unless OTEL_EXPORTER_OTLP_ENDPOINT is set. The
``tracer`` is always usable; without a configured provider its spans are
discarded.
"""
import logging

from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from mailrelay.core.config import settings

logger = logging.getLogger(__name__)

# Spans around provider calls (see EmailService._dispatch)
tracer = trace.get_tracer("mailrelay.email")

METRIC_EXPORT_INTERVAL_MS = 15000


def is_enabled() -> bool:
    return bool(settings.OTEL_EXPORTER_OTLP_ENDPOINT)


def _resource() -> Resource:
    return Resource.create({
        "service.name": settings.OTEL_SERVICE_NAME,
        "deployment.environment": settings.OTEL_ENVIRONMENT,
    })


def _export_traces_and_metrics(resource: Resource) -> None:
    endpoint = settings.OTEL_EXPORTER_OTLP_ENDPOINT

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))
    trace.set_tracer_provider(tracer_provider)

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=endpoint, insecure=True),
        export_interval_millis=METRIC_EXPORT_INTERVAL_MS
    )
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))


def _export_logs(resource: Resource) -> None:
    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(BatchLogRecordProcessor(
        OTLPLogExporter(endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True)
    ))
    set_logger_provider(logger_provider)

    # Ship the named email/webhook/security loggers along with everything else
    logging.getLogger().addHandler(LoggingHandler(level=logging.NOTSET, logger_provider=logger_provider))


def setup_telemetry(engine) -> bool:
    """Start OTLP exporters and instrument outbound HTTP and the database.

    Returns False (and leaves the app untraced) when no endpoint is configured
    or the exporters cannot be created.
    """
    if not is_enabled():
        return False

    resource = _resource()
    try:
        _export_traces_and_metrics(resource)
    except Exception as e:
        logger.warning(f"Failed to initialize OpenTelemetry exporters: {e}")
        return False

    try:
        _export_logs(resource)
    except Exception as e:
        logger.warning(f"OpenTelemetry log export disabled: {e}")

    # Provider calls from the SendGrid/Brevo adapters
    HTTPXClientInstrumentor().instrument()
    SQLAlchemyInstrumentor().instrument(engine=engine)

    logger.info(f"OpenTelemetry exporting to {settings.OTEL_EXPORTER_OTLP_ENDPOINT}")
    return True


def instrument_app(app) -> None:
    """Request spans for every route; must run before the app starts serving"""
    if is_enabled():
        FastAPIInstrumentor.instrument_app(app)
