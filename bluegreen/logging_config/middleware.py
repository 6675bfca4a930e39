"""Request tracing middleware for the controller API."""

import logging
import time
from typing import Optional

from bluegreen.logging_config.config import DEFAULT_LOGGING_CONFIG, LoggingConfig
from bluegreen.logging_config.context import RequestContext, generate_request_id

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
CORRELATION_ID_HEADER = "X-Correlation-ID"


class RequestTracingMiddleware:
    """ASGI middleware binding a request ID to every log line of a request.

    Incoming ``X-Request-ID`` / ``X-Correlation-ID`` headers are honored and
    echoed back; requests slower than ``slow_threshold_ms`` log at WARNING.

    Usage:
        app.add_middleware(RequestTracingMiddleware)
    """

    def __init__(self, app, config: Optional[LoggingConfig] = None):
        self.app = app
        self.config = config or DEFAULT_LOGGING_CONFIG

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        request_id = _header(headers, REQUEST_ID_HEADER) or generate_request_id()
        correlation_id = _header(headers, CORRELATION_ID_HEADER) or request_id
        method = scope.get("method", "")
        path = scope.get("path", "")
        traced = path not in self.config.exclude_paths
        started = time.perf_counter()
        status_code = 500

        async def send_with_ids(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 500)
                message = {
                    **message,
                    "headers": list(message.get("headers", []))
                    + [
                        (REQUEST_ID_HEADER.lower().encode(), request_id.encode()),
                        (CORRELATION_ID_HEADER.lower().encode(), correlation_id.encode()),
                    ],
                }
            await send(message)

        with RequestContext(request_id=request_id, correlation_id=correlation_id):
            try:
                await self.app(scope, receive, send_with_ids)
            finally:
                if traced:
                    duration_ms = round((time.perf_counter() - started) * 1000, 2)
                    slow = duration_ms >= self.config.slow_threshold_ms
                    level = logging.WARNING if status_code >= 500 or slow else logging.INFO
                    logger.log(
                        level,
                        "%s %s -> %d",
                        method,
                        path,
                        status_code,
                        extra={
                            "method": method,
                            "path": path,
                            "status_code": status_code,
                            "duration_ms": duration_ms,
                        },
                    )


def _header(headers: dict, name: str) -> Optional[str]:
    value = headers.get(name.lower().encode())
    if value:
        return value.decode("utf-8", errors="replace")
    return None
