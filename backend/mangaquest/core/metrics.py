"""Prometheus metrics configuration."""

from __future__ import annotations

import structlog
from fastapi import FastAPI
from prometheus_client import Counter, Gauge, Histogram
from prometheus_fastapi_instrumentator import Instrumentator

logger = structlog.get_logger("mangaquest.metrics")

app_info = Gauge(
    "app_info",
    "Application information",
    ["version"],
)

# Enrichment outcomes
enrichment_total = Counter(
    "mangadex_enrichment_total",
    "Total number of manga enrichment attempts by outcome",
    ["outcome"],  # matched, not_matched, skipped, failed
)
enrichment_batch_duration_seconds = Histogram(
    "mangadex_enrichment_batch_duration_seconds",
    "Duration of batch enrichment runs in seconds",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
)

# MangaDex API client
mangadex_requests_total = Counter(
    "mangadex_requests_total",
    "Total number of requests sent to the MangaDex API",
    ["status"],  # HTTP status code, or "error" for network failures
)
mangadex_request_duration_seconds = Histogram(
    "mangadex_request_duration_seconds",
    "Duration of MangaDex API requests in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0),
)
mangadex_rate_limit_waits_total = Counter(
    "mangadex_rate_limit_waits_total",
    "Number of times a MangaDex request waited for the client-side rate limiter",
)

# Database retry metrics
db_retry_attempts_total = Counter(
    "db_retry_attempts_total",
    "Total number of database operation retry attempts",
    ["operation_type"],
)
db_retries_failed_total = Counter(
    "db_retries_failed_total",
    "Total number of database operations that failed after all retries",
    ["operation_type"],
)


def setup_metrics(app: FastAPI, app_version: str) -> None:
    """Instrument the app with prometheus-fastapi-instrumentator and expose /metrics.

    Args:
        app: FastAPI application instance
        app_version: Application version
    """
    if getattr(app.state, "_metrics_initialized", False):
        logger.debug("Metrics already initialized for this app instance, skipping")
        return

    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=[
            "/metrics",
            "/docs",
            "/openapi.json",
            "/redoc",
        ],
    )
    instrumentator.instrument(app).expose(app, endpoint="/metrics")

    app.state._metrics_initialized = True
    app_info.labels(version=app_version).set(1)

    logger.info("Metrics initialized", version=app_version)
