"""Middleware HTTP que abre o contexto de log de cada request."""

from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from karen_ai.observability.logging import bind_log_context

CORRELATION_HEADER = "x-correlation-id"
USER_HEADER = "user-id"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Propaga (ou gera) o correlation_id e associa o usuário aos logs.

    O correlation_id volta no header da resposta; o user-id do chat entra
    truncado no contexto.
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        with bind_log_context(
            correlation_id=correlation_id,
            user_id=request.headers.get(USER_HEADER),
        ):
            response = await call_next(request)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
