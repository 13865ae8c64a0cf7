"""Request middleware: request ids, log context, latency metrics and one access line."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from sessionpool.obs import logging as obs_logging
from sessionpool.obs import metrics

REQUEST_ID_HEADER = "X-Request-Id"

_access_log = obs_logging.get_logger("sessionpool.http")


def _route_label(request: Request) -> str:
    # Templated path once routing has run, so metrics stay low-cardinality.
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.request_id = request_id
        tokens = obs_logging.bind_context(
            request_id=request_id,
            route=request.url.path,
            user_id=request.headers.get("X-User-Id"),
        )
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            elapsed = time.perf_counter() - started
            metrics.observe_request(_route_label(request), request.method, status_code, elapsed)
            _access_log.info(
                "http_request",
                extra={
                    "method": request.method,
                    "status": status_code,
                    "latency_ms": round(elapsed * 1000, 3),
                },
            )
            obs_logging.reset_context(tokens)
        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        return response


def install(app: FastAPI) -> None:
    app.add_middleware(ObservabilityMiddleware)
