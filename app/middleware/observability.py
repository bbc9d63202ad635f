from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.metrics import request_metrics
from app.core.request_context import clear_request_context, set_request_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_QUIET_PATHS = {"/health"}


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Request id propagation, per-route metrics and one log line per request."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        response = None
        try:
            response = await call_next(request)
            return response
        finally:
            status_code = response.status_code if response is not None else 500
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            endpoint = _route_template(request)
            request_metrics.observe(
                endpoint=endpoint,
                method=request.method,
                status_code=status_code,
                duration_ms=duration_ms,
            )
            _log_request(request, endpoint, status_code, duration_ms)
            if response is not None:
                response.headers[REQUEST_ID_HEADER] = request_id
            clear_request_context()


def _route_template(request: Request) -> str:
    # agrupa /api/orders/12 e /api/orders/13 na mesma métrica
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def _log_request(request: Request, endpoint: str, status_code: int, duration_ms: float) -> None:
    if endpoint in _QUIET_PATHS and status_code < 400:
        return
    user_id = getattr(request.state, "user_id", None)
    level = logging.ERROR if status_code >= 500 else logging.INFO
    logger.log(
        level,
        "request completed %s %s -> %s",
        request.method,
        endpoint,
        status_code,
        extra={
            "request_id": request.state.request_id,
            "session_id": getattr(request.state, "cart_session_id", None),
            "user_id": str(user_id) if user_id is not None else None,
            "endpoint": endpoint,
            "method": request.method,
            "status_code": status_code,
            "duration_ms": duration_ms,
        },
    )
