"""OpenTelemetry setup and initialization."""

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import ParentBasedTraceIdRatio

from src.config import Settings
from src.infrastructure.observability.logging_config import configure_logging

logger = structlog.get_logger()

# Module-level state for cleanup
_tracer_provider: TracerProvider | None = None
_initialized: bool = False


def init_observability(
    service_name: str,
    service_version: str,
    *,
    otlp_endpoint: str | None = None,
    console_export: bool = False,
    enabled: bool = True,
    sample_rate: float = 1.0,
    debug: bool = False,
) -> None:
    """Initialize logging and OpenTelemetry tracing.

    Calling this more than once has no effect until shutdown_observability().

    Args:
        service_name: Name of the service for resource attribution.
        service_version: Version of the service.
        otlp_endpoint: OTLP collector endpoint (e.g., "http://localhost:4318").
        console_export: If True, export spans to console (for development).
        enabled: If False, tracing uses a no-op provider; logging is still set up.
        sample_rate: Sampling rate between 0.0 and 1.0.
        debug: Log at DEBUG level.
    """
    global _tracer_provider, _initialized

    if _initialized:
        return

    configure_logging(debug=debug)

    if not enabled:
        trace.set_tracer_provider(trace.NoOpTracerProvider())
        _initialized = True
        return

    resource = Resource.create(
        {
            SERVICE_NAME: service_name,
            SERVICE_VERSION: service_version,
        }
    )
    _tracer_provider = TracerProvider(
        resource=resource, sampler=ParentBasedTraceIdRatio(sample_rate)
    )

    if console_export:
        _tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    if otlp_endpoint:
        otlp_exporter = OTLPSpanExporter(endpoint=f"{otlp_endpoint}/v1/traces")
        _tracer_provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

    trace.set_tracer_provider(_tracer_provider)

    # Outgoing ML scorer calls
    HTTPXClientInstrumentor().instrument()

    _initialized = True
    logger.info("observability_initialized", service=service_name, otlp=bool(otlp_endpoint))


def init_from_settings(settings: Settings) -> None:
    """Initialize observability from application settings."""
    init_observability(
        settings.app_name,
        settings.app_version,
        otlp_endpoint=settings.otlp_endpoint,
        console_export=settings.tracing_console_export,
        enabled=settings.tracing_enabled,
        sample_rate=settings.tracing_sample_rate,
        debug=settings.debug,
    )


def shutdown_observability() -> None:
    """Flush pending spans and shut the tracer provider down."""
    global _tracer_provider, _initialized

    if _tracer_provider is not None:
        _tracer_provider.shutdown()
        _tracer_provider = None

    _initialized = False
