"""
Observability setup:
  - OpenTelemetry distributed tracing → Jaeger (via OTLP gRPC)
  - Prometheus metrics: engagement actions, notification fan-out, reaper

Both are initialised once at startup and injected into FastAPI via middleware.
"""
import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import Counter

from recipeshare.config import settings

logger = logging.getLogger(__name__)

# ─────────────────────────── Prometheus Metrics ───────────────────────────
ENGAGEMENT_ACTIONS_TOTAL = Counter(
    "engagement_actions_total",
    "Engagement mutations applied",
    ["action"],  # rate, like, unlike, follow, unfollow, comment, ...
)

NOTIFICATIONS_CREATED_TOTAL = Counter(
    "notifications_created_total",
    "Notifications persisted by the fan-out pipeline",
    ["type"],
)

NOTIFICATIONS_SUPPRESSED_TOTAL = Counter(
    "notifications_suppressed_total",
    "Notifications skipped because sender and recipient are the same user",
)

NOTIFICATIONS_FAILED_TOTAL = Counter(
    "notifications_failed_total",
    "Notification writes that failed and were dropped",
)

NOTIFICATIONS_REAPED_TOTAL = Counter(
    "notifications_reaped_total",
    "Expired notifications physically deleted by the reaper",
)

SHARE_EMAILS_FAILED_TOTAL = Counter(
    "share_emails_failed_total",
    "Recipe share emails that could not be handed to the mail pipeline",
)


# ─────────────────────────── OpenTelemetry Setup ──────────────────────────
def setup_tracing() -> None:
    """Configure the global OTel TracerProvider with OTLP/Jaeger export."""
    if not settings.tracing_enabled:
        logger.info("Tracing disabled")
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(resource=resource)

    try:
        otlp_exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        logger.info(
            "OTel tracing configured → %s", settings.otel_exporter_otlp_endpoint
        )
    except Exception as exc:
        logger.warning("Could not connect to OTLP exporter: %s — traces disabled", exc)

    trace.set_tracer_provider(provider)

    # The engine already exists by now, so hand it over explicitly
    from recipeshare.database import engine

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def instrument_app(app) -> None:  # noqa: ANN001
    """Call after app is created to add FastAPI request spans."""
    if settings.tracing_enabled:
        FastAPIInstrumentor.instrument_app(app)
