"""HTTP middleware: request context and body size limit."""

import uuid
from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from dataset_viewer.observability import request_id_var


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a request id to the logging context for each request.

    The id comes from the ``X-Request-ID`` header when the client sends
    one, and is echoed back on the response.
    """

    def __init__(self, app: Any, header_name: str = "X-Request-ID") -> None:
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Any],
    ) -> Response:
        request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = request_id

        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[self.header_name] = request_id
        return response


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Rejects requests whose declared body exceeds a limit."""

    def __init__(self, app: Any, max_body_bytes: int) -> None:
        """Initialize body size middleware.

        Args:
            app: The ASGI application
            max_body_bytes: Largest accepted Content-Length
        """
        super().__init__(app)
        self.max_body_bytes = max_body_bytes

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Any],
    ) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_body_bytes:
            return JSONResponse(
                {
                    "status": "error",
                    "error": "VALIDATION_ERROR",
                    "message": f"Request body exceeds {self.max_body_bytes} bytes",
                },
                status_code=413,
            )
        return await call_next(request)
