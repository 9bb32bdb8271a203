# ==== PROMETHEUS METRICS ==== #

"""
Prometheus metrics for Kundedata.

Request latency, lead capture, automation execution, email delivery,
scheduled processing and invoicing counters exposed on ``/metrics``.
"""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    REGISTRY
)


# ==== REQUEST METRICS ==== #

http_request_latency_seconds = Histogram(
    "kundedata_http_request_latency_seconds",
    "HTTP request latency in seconds",
    ["method", "route_group", "status"]
)


# ==== LEAD CAPTURE METRICS ==== #

submissions_total = Counter(
    "kundedata_submissions_total",
    "Total public form submissions by outcome",
    ["outcome"]  # accepted, invalid, rejected
)


# ==== AUTOMATION METRICS ==== #

automation_runs_total = Counter(
    "kundedata_automation_runs_total",
    "Total automation executions by trigger type",
    ["trigger_type"]
)

automation_failures_total = Counter(
    "kundedata_automation_failures_total",
    "Total automation or action failures",
    ["stage"]  # automation, action, job
)

scheduled_jobs_processed_total = Counter(
    "kundedata_scheduled_jobs_processed_total",
    "Total scheduled jobs processed by final status",
    ["status"]
)

emails_sent_total = Counter(
    "kundedata_emails_sent_total",
    "Total outbound emails by kind and status",
    ["kind", "status"]
)


# ==== INVOICING METRICS ==== #

recurring_invoices_generated_total = Counter(
    "kundedata_recurring_invoices_generated_total",
    "Invoices generated from recurring templates by outcome",
    ["outcome"]
)

invoice_payments_total = Counter(
    "kundedata_invoice_payments_total",
    "Total registered invoice payments"
)

invoice_payment_amount_cents = Histogram(
    "kundedata_invoice_payment_amount_cents",
    "Registered payment amounts in øre",
    buckets=[10_000, 50_000, 100_000, 500_000, 1_000_000, 5_000_000, 10_000_000]
)


# ==== DATABASE METRICS ==== #

db_connections_active = Gauge(
    "kundedata_db_connections_active",
    "Number of active database sessions"
)


# System metrics
app_info = Gauge(
    "kundedata_app_info",
    "Application information",
    ["version", "environment", "service_name"]
)


def init_metrics(app) -> None:
    """Initialize metrics collection.

    Args:
        app: FastAPI application instance
    """
    from kundedata import __version__
    from kundedata.settings import settings
    app_info.labels(
        version=__version__,
        environment=settings.APP_ENV,
        service_name=settings.SERVICE_NAME
    ).set(1)


# Metrics router for Prometheus scraping
metrics_router = APIRouter()


@metrics_router.get("/metrics")
def get_metrics() -> PlainTextResponse:
    """Expose Prometheus metrics for scraping."""
    return PlainTextResponse(
        generate_latest(REGISTRY).decode("utf-8"),
        media_type="text/plain"
    )
