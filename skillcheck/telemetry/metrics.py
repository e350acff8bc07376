"""Prometheus metrics definitions and helpers."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests processed",
    ("method", "route", "status"),
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ("method", "route"),
    buckets=(
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
    ),
)

ERROR_COUNTER = Counter(
    "app_internal_errors_total",
    "Number of requests ending in internal server error responses",
    ("method", "route"),
)

DECISION_COUNTER = Counter(
    "assessment_auto_decisions_total",
    "Automated assessment decisions by outcome",
    ("decision",),
)

PIPELINE_LATENCY = Histogram(
    "assessment_pipeline_duration_seconds",
    "End-to-end duration of one assessment pipeline run",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0, 300.0),
)

STAGE_FAILURE_COUNTER = Counter(
    "assessment_stage_failures_total",
    "Pipeline stage failures downgraded to flags",
    ("stage", "kind"),
)

GATEWAY_FAILURE_COUNTER = Counter(
    "text_generation_backend_failures_total",
    "Text-generation backend calls that failed and triggered failover",
    ("backend",),
)

RETENTION_COUNTER = Counter(
    "assessment_media_retention_total",
    "Media deletion attempts after analysis",
    ("outcome",),
)


def _non_negative(seconds: float) -> float:
    return seconds if seconds >= 0 else 0.0


def observe_request(
    method: str,
    route: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """Record metrics for a completed HTTP request."""

    labels = {"method": method or "UNKNOWN", "route": route or "unknown"}
    REQUEST_COUNT.labels(status=str(status_code), **labels).inc()
    REQUEST_LATENCY.labels(**labels).observe(_non_negative(duration_seconds))
    if status_code >= 500:
        ERROR_COUNTER.labels(**labels).inc()


def observe_decision(decision: str, duration_seconds: float) -> None:
    """Record the outcome and latency of a pipeline run."""

    DECISION_COUNTER.labels(decision=decision).inc()
    PIPELINE_LATENCY.observe(_non_negative(duration_seconds))


def record_stage_failure(stage: str, kind: str = "error") -> None:
    """Count a stage failure that was downgraded to a flag."""

    STAGE_FAILURE_COUNTER.labels(stage=stage, kind=kind).inc()


def record_backend_failure(backend: str) -> None:
    """Count a failed text-generation backend call."""

    GATEWAY_FAILURE_COUNTER.labels(backend=backend).inc()


def record_retention(outcome: str) -> None:
    """Count a media retention outcome (deleted, failed, skipped, dropped)."""

    RETENTION_COUNTER.labels(outcome=outcome).inc()
