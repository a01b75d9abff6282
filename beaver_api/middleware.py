"""Request middleware: request ids, sync-outcome reporting, trace headers.

Mutating routes report the graph side of their write through
:func:`record_sync_outcome`. The request middleware folds those outcomes
into the ``X-Beaver-Sync`` response header, the sync metrics and a
``graph_sync_lagging`` log line, so a best-effort write that left the
graph behind is visible without parsing the body.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Any, Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from beaver_api.metrics import get_metrics_collector
from beaver_api.schemas.common import ErrorResponse
from beaver_core.models.types import SyncResult

logger = logging.getLogger("beaver.api")

SYNC_HEADER = "X-Beaver-Sync"

# Holds the current request's outcome list. The list itself is shared, so
# appends made from the endpoint's worker thread reach the middleware.
_sync_outcomes: ContextVar[list[SyncResult] | None] = ContextVar("sync_outcomes", default=None)


def record_sync_outcome(outcome: SyncResult) -> None:
    """Report the graph sync outcome of a write made in this request."""
    outcomes = _sync_outcomes.get()
    if outcomes is not None:
        outcomes.append(outcome)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Attach a request id, time the request and report its sync outcomes."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        context: dict[str, Any] = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }

        metrics = get_metrics_collector()
        metrics.increment_active_requests()
        outcomes: list[SyncResult] = []
        token = _sync_outcomes.set(outcomes)
        start_time = time.time()
        logger.info("request_start", extra={**context, "event": "request_start"})

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            metrics.record_request(request.method, request.url.path, duration_ms, status_code=500)
            logger.exception(
                "request_error",
                extra={**context, "event": "request_error", "error_type": type(e).__name__},
            )
            raise
        finally:
            _sync_outcomes.reset(token)
            metrics.decrement_active_requests()

        duration_ms = (time.time() - start_time) * 1000
        metrics.record_request(request.method, request.url.path, duration_ms, status_code=response.status_code)
        self._report_sync(outcomes, response, context)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time-ms"] = f"{duration_ms:.2f}"
        logger.info(
            "request_complete",
            extra={
                **context,
                "event": "request_complete",
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response

    def _report_sync(self, outcomes: list[SyncResult], response: Response, context: dict[str, Any]) -> None:
        if not outcomes:
            return

        metrics = get_metrics_collector()
        for outcome in outcomes:
            metrics.record_targeted_sync(outcome.sync_failed)

        lagging = [outcome.warning for outcome in outcomes if outcome.sync_failed]
        response.headers[SYNC_HEADER] = "warning" if lagging else "ok"
        if lagging:
            logger.warning(
                "graph_sync_lagging",
                extra={**context, "event": "graph_sync_lagging", "warnings": lagging},
            )


class TracingMiddleware(BaseHTTPMiddleware):
    """Echo the W3C trace id, generating a trace context when absent."""

    def __init__(self, app: Any, service_name: str = "beaver-api") -> None:
        super().__init__(app)
        self.service_name = service_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        parts = (request.headers.get("traceparent") or "").split("-")
        trace_id = parts[1] if len(parts) == 4 else uuid.uuid4().hex

        response = await call_next(request)
        response.headers["X-Trace-Id"] = trace_id
        return response


def create_error_response(
    status_code: int,
    title: str,
    detail: str | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    """Create RFC 7807 Problem Details error response."""
    error = ErrorResponse(
        type=f"https://httpstatuses.com/{status_code}",
        title=title,
        status=status_code,
        detail=detail,
        instance=request_id,
    )
    return JSONResponse(
        status_code=status_code,
        content=error.model_dump(exclude_none=True),
        headers={"X-Request-ID": request_id} if request_id else {},
    )
