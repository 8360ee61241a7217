"""Request correlation for logs, error envelopes and the streaming endpoint."""

import re
import uuid
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from core.error_handler import set_correlation_id


CORRELATION_HEADER = "X-Correlation-ID"

# Caller-supplied ids are echoed back in headers and logs
_VALID_CORRELATION_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def resolve_correlation_id(incoming: str | None) -> str:
    """Reuse a well-formed incoming id, otherwise mint a UUID4."""
    if incoming and _VALID_CORRELATION_ID.match(incoming):
        return incoming
    return str(uuid.uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id to the request context and echo it on the response.

    The builder front end sends its own id so a failed generation can be
    matched against the backend logs.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = resolve_correlation_id(request.headers.get(CORRELATION_HEADER))
        set_correlation_id(correlation_id)
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
