import uuid
from time import perf_counter

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ticket_notifications.core.logging import get_logger, log_context

logger = get_logger("api.request")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request's log records and response with an ``X-Request-ID``."""

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = perf_counter()
        fields = {"component": "api", "method": request.method, "path": request.url.path}

        with log_context(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception:
                logger.exception("request.error", extra=fields)
                raise

            logger.info(
                "request.end",
                extra={
                    **fields,
                    "status_code": response.status_code,
                    "duration_ms": int((perf_counter() - started) * 1000),
                },
            )
        response.headers["X-Request-ID"] = request_id
        return response
