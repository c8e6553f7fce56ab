"""
Middleware to limit request body size for attachment uploads.

Uses pure ASGI instead of BaseHTTPMiddleware to properly support WebSocket connections.
"""
import logging
from starlette.types import ASGIApp, Receive, Scope, Send
from starlette.responses import JSONResponse
from crm_backend.storage_config import MAX_UPLOAD_SIZE, MAX_ATTACHMENTS_PER_MESSAGE, format_bytes

logger = logging.getLogger(__name__)

# Allowance for multipart boundaries and form fields
FORM_OVERHEAD = 1 * 1024 * 1024


class UploadSizeLimiterMiddleware:
    """
    Pure ASGI middleware rejecting oversized request bodies by Content-Length.

    A message may carry several attachments, so the limit is the per-file
    limit times the attachment cap plus form overhead.
    """

    def __init__(self, app: ASGIApp, max_size: int = MAX_UPLOAD_SIZE, max_files: int = MAX_ATTACHMENTS_PER_MESSAGE):
        self.app = app
        self.max_size = max_size
        self.max_total_size = max_size * max(max_files, 1) + FORM_OVERHEAD

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        # Pass through non-HTTP requests (WebSocket, lifespan, etc.)
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "")
        if method in ("POST", "PUT", "PATCH"):
            headers = dict(scope.get("headers", []))
            content_length = headers.get(b"content-length")

            if content_length and content_length.isdigit() and int(content_length) > self.max_total_size:
                content_length = int(content_length)
                client = scope.get("client") or ("unknown", 0)

                logger.warning(
                    f"Request rejected: size {format_bytes(content_length)} "
                    f"exceeds limit {format_bytes(self.max_total_size)} "
                    f"from {client[0]}"
                )

                response = JSONResponse(
                    status_code=413,
                    content={
                        "success": False,
                        "error_code": "VAL_004",
                        "message": f"Request body too large. Maximum allowed size is "
                                   f"{format_bytes(self.max_total_size)} (received {format_bytes(content_length)})",
                    }
                )
                await response(scope, receive, send)
                return

        await self.app(scope, receive, send)
