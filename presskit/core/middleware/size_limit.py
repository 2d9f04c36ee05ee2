from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from presskit.core.errors import PayloadTooLargeError, app_error_handler


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject bodies whose declared length exceeds the ceiling for their content type.

    Multipart uploads get the larger ``max_upload_bytes``; the media pipeline
    still bounds each file on its own.
    """

    def __init__(self, app, max_bytes: int, max_upload_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes
        self.max_upload_bytes = max_upload_bytes

    async def dispatch(self, request: Request, call_next):
        multipart = request.headers.get("content-type", "").startswith("multipart/form-data")
        ceiling = self.max_upload_bytes if multipart else self.max_bytes

        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > ceiling:
            return await app_error_handler(request, PayloadTooLargeError("Request entity too large"))
        return await call_next(request)
