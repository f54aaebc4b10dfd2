"""Request ID middleware: bind X-Request-ID (or a fresh one) to every log line."""

from __future__ import annotations

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

log = structlog.get_logger("codeatlas.api")

# health checks hit these every few seconds
_QUIET_PATHS = frozenset({"/health"})


def _request_id_from(raw: str) -> str:
    try:
        return str(uuid.UUID(raw))
    except ValueError:
        return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _request_id_from(request.headers.get("x-request-id", ""))
        # GitHub's delivery id ties webhook log lines to the queue row
        delivery_id = request.headers.get("x-github-delivery")
        context: dict[str, str] = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
        if delivery_id:
            context["delivery_id"] = delivery_id
        tokens = structlog.contextvars.bind_contextvars(**context)
        quiet = request.url.path in _QUIET_PATHS
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            log.exception("request.failed", duration_ms=_elapsed_ms(start))
            raise
        else:
            if not quiet:
                log.info(
                    "request.completed",
                    status_code=response.status_code,
                    duration_ms=_elapsed_ms(start),
                )
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            structlog.contextvars.reset_contextvars(**tokens)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 1)
