"""Telemetry helpers and metrics."""

from .metrics import (
    DECISION_COUNTER,
    ERROR_COUNTER,
    GATEWAY_FAILURE_COUNTER,
    PIPELINE_LATENCY,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    RETENTION_COUNTER,
    STAGE_FAILURE_COUNTER,
    observe_decision,
    observe_request,
    record_backend_failure,
    record_retention,
    record_stage_failure,
)

__all__ = [
    "DECISION_COUNTER",
    "ERROR_COUNTER",
    "GATEWAY_FAILURE_COUNTER",
    "PIPELINE_LATENCY",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "RETENTION_COUNTER",
    "STAGE_FAILURE_COUNTER",
    "observe_decision",
    "observe_request",
    "record_backend_failure",
    "record_retention",
    "record_stage_failure",
]
