"""
Cadastro API — Request Logging Middleware
===========================================

What:  One access-log line per request: method, route, status, duration,
       request id, client address.
Level: 5xx → ERROR, 4xx → WARNING, everything else → INFO.

The route is the matched template (/users/{usuario_id}), so log lines for
different users group together and ids stay out of the message. Requests
that match no route fall back to the raw path.

Request bodies are never logged. POST /users, PUT/PATCH /users/{id} and
POST /login all carry a plaintext senha.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.middleware.request_id import request_id_var

logger = logging.getLogger("cadastro.access")

# Liveness checks hit these every few seconds
QUIET_PATHS = {"/"}


def level_for_status(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


def route_template(request: Request) -> str:
    """Path template of the route the router matched, else the raw path."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        # The router fills scope["route"] while handling the request
        route = route_template(request)
        client = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")

        logger.log(
            level_for_status(response.status_code),
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            route,
            response.status_code,
            elapsed_ms,
            rid,
            client,
            extra={
                "request_id": rid,
                "method": request.method,
                "route": route,
                "status": response.status_code,
                "duration_ms": round(elapsed_ms, 2),
                "client_ip": client,
            },
        )
        return response
