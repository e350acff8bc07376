"""Request logging middleware.

Every request gets an ``X-Request-ID`` (taken from the caller when present)
that is echoed on the response. One coloured summary line is written per
request; the full record is emitted as compact JSON at DEBUG level.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

logger = logging.getLogger("skillcheck.middleware.structured")

REQUEST_ID_HEADER = "X-Request-ID"

# Requests slower than this are logged as warnings.
SLOW_REQUEST_MS = 60_000

_STATUS_COLORS = (
    (500, "\u001b[31m"),
    (400, "\u001b[33m"),
    (200, "\u001b[32m"),
)
_DEFAULT_COLOR = "\u001b[36m"
_RESET = "\u001b[0m"


def _colour_for(status: int) -> str:
    for floor, colour in _STATUS_COLORS:
        if status >= floor:
            return colour
    return _DEFAULT_COLOR


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Emit one summary line per HTTP request and tag it with a request id."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        started = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.request_id = request_id

        record: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
        }

        try:
            response = await call_next(request)
        except Exception as exc:
            record.update(status=500, duration_ms=_elapsed_ms(started), error=repr(exc))
            logger.exception(self._summary(record, request))
            raise

        record.update(status=response.status_code, duration_ms=_elapsed_ms(started))
        response.headers[REQUEST_ID_HEADER] = request_id

        if record["duration_ms"] >= SLOW_REQUEST_MS:
            logger.warning(self._summary(record, request))
        else:
            logger.info(self._summary(record, request))
        logger.debug(json.dumps(record, default=str, separators=(",", ":")))
        return response

    @staticmethod
    def _summary(record: dict[str, Any], request: Request) -> str:
        route = request.scope.get("route")
        template = getattr(route, "path", None) or record["path"]
        status = record.get("status") or 0
        message = (
            f"[{record['request_id'][:8]}] {record['method']} {template} "
            f"-> {status} in {record['duration_ms']}ms "
            f"from {record.get('client_ip') or '-'}"
        )
        return f"{_colour_for(status)}{message}{_RESET}"


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


__all__ = ["REQUEST_ID_HEADER", "StructuredLoggingMiddleware"]
