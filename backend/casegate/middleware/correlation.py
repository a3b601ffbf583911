"""
Correlation ID middleware
=========================
Injects an X-Correlation-ID into every request so that all log lines for a
single HTTP call, including background work it triggers, share the same
identifier.
"""
from __future__ import annotations

import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from casegate.core.logger import correlation_id_var, logger


class CorrelationMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        # Accept from client or generate fresh
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        token = correlation_id_var.set(correlation_id)

        request.state.correlation_id = correlation_id
        logger.info("%s %s", request.method, request.url.path)

        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(token)

        response.headers["X-Correlation-ID"] = correlation_id
        return response
