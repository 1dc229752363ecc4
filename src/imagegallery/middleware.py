"""Middleware for HTTP error logging."""

import logging
import time

from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)


class HTTPErrorLoggingMiddleware:
    """Middleware to ensure all HTTP errors are logged.

    - 4xx responses: logged at WARN level
    - 5xx responses and unhandled exceptions: logged at ERROR level

    Written against plain ASGI: ``receive`` is handed to the app untouched, so
    routes can stream the body and see a client disconnect themselves.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        status_code = None

        async def send_with_status(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_with_status)
        except Exception:
            self._log(scope, 500, start_time)
            raise

        if status_code is not None:
            self._log(scope, status_code, start_time)

    @staticmethod
    def _log(scope: Scope, status_code: int, start_time: float) -> None:
        if status_code < 400:
            return

        request = Request(scope)
        details = {
            "http_status": status_code,
            "method": request.method,
            "path": request.url.path,
            "image_id": request.query_params.get("id"),
            "duration_ms": (time.time() - start_time) * 1000,
        }

        if status_code < 500:
            logger.warning("Client error response", extra=details)
        else:
            logger.error("Server error response", extra=details)
