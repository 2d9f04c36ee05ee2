import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from presskit.core.logging import bind_request_id, get_logger, latency_bucket_ms

REQUEST_ID_HEADER = "x-request-id"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Correlate each request with an id (client-supplied or fresh) and log its outcome."""

    def __init__(self, app, header_name: str = REQUEST_ID_HEADER):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get(self.header_name) or uuid4().hex
        request.state.request_id = rid

        started = time.perf_counter()
        with bind_request_id(rid):
            response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers[self.header_name] = rid
        get_logger().info(
            "request.complete",
            extra={
                "request_id": rid,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "user_id": getattr(request.state, "user_id", None),
                "client_ip": request.client.host if request.client else None,
                "latency_bucket": latency_bucket_ms(elapsed_ms),
            },
        )
        return response
