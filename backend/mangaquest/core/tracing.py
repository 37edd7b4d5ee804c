"""Request and job tracing using structlog contextvars."""

from __future__ import annotations

import uuid
from collections.abc import Generator
from contextlib import contextmanager

import structlog.contextvars as contextvars

TRACE_HEADER = "X-Trace-ID"


def generate_trace_id() -> str:
    """Generate a 32 character hex trace ID."""
    return uuid.uuid4().hex


def get_trace_id() -> str | None:
    """Get the current trace ID from context, if any."""
    return contextvars.get_contextvars().get("trace_id")


@contextmanager
def trace_context(trace_id: str | None = None, **extra: str) -> Generator[str, None, None]:
    """Bind a trace ID (and optional extra fields) for the duration of the block.

    Every log line emitted inside the block carries ``trace_id``. The previous
    context is restored on exit, so scheduled jobs started from inside a request
    don't leak into it.

    Example:
        >>> with trace_context(job="scheduled_enrichment") as trace_id:
        ...     logger.info("Starting batch")  # includes trace_id and job
    """
    old_context = dict(contextvars.get_contextvars())

    if trace_id is None:
        trace_id = generate_trace_id()

    contextvars.clear_contextvars()
    contextvars.bind_contextvars(trace_id=trace_id, **extra)

    try:
        yield trace_id
    finally:
        contextvars.clear_contextvars()
        if old_context:
            contextvars.bind_contextvars(**old_context)
