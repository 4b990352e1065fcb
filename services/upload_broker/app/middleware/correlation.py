"""Correlation ID middleware for request tracing."""

from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from shared.utils.logging import correlation_scope

CORRELATION_ID_HEADER = "X-Correlation-ID"


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Reads or generates the request correlation ID and echoes it back."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        with correlation_scope(request.headers.get(CORRELATION_ID_HEADER)) as correlation_id:
            # request.state outlives the scope, for handlers rendered outside it
            request.state.correlation_id = correlation_id
            response = await call_next(request)

        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
