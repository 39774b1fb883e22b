"""
Cadastro API — Request ID Middleware
======================================

What:  Tags every request with a short correlation id.
How:   Reuses the client's X-Request-ID header when it is a plain token
       (letters, digits, '.', '_', '-', at most 64 characters), otherwise
       generates one. The id is stored in a ContextVar (read by the access
       log and the exception handlers) and echoed in the response header.

Error bodies carry only {"error": ...}, so X-Request-ID is how a client
reports which request failed.
"""

import re
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ContextVar, not threading.local: concurrent requests share one thread
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"

# Client ids end up verbatim in log lines
_VALID_REQUEST_ID = re.compile(r"[A-Za-z0-9._-]{1,64}")


def resolve_request_id(header_value: Optional[str]) -> str:
    """Client-supplied id if it is a safe token, else a fresh 8-char hex id."""
    if header_value and _VALID_REQUEST_ID.fullmatch(header_value):
        return header_value
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns request_id_var and sets the X-Request-ID response header."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
