"""Gateway middleware: request correlation and request size limits.

``RequestIdMiddleware`` gives every request an identifier, taken from the
incoming ``X-Request-Id`` header or generated as a UUIDv4. The id is stored
on the request, in a ContextVar read by the logging filter and by the
outbound HTTP clients, and echoed back in the ``X-Request-ID`` response
header. It also logs one structured line per handled request.

``ApiSizeLimitMiddleware`` rejects oversized bodies on the API and webhook
paths before they reach a view.
"""

import contextvars
import logging
import os
import time
import uuid

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
MAX_API_BYTES = int(os.getenv("API_MAX_BYTES", str(1 * 1024 * 1024)))
LIMITED_PREFIXES = ("/api/", "/webhook/")

logger = logging.getLogger("gateway.requests")


class RequestIdMiddleware(MiddlewareMixin):
    """Django middleware that sets and returns a per-request identifier.

    Attributes:
        HEADER (str): Incoming header name in ``request.META`` casing.
        RESPONSE_HEADER (str): Header added to every response.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER)
        if not rid:
            rid = str(uuid.uuid4())
        request.request_id = rid
        request._started_at = time.monotonic()
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        """Attach the request id header and log the handled request.

        Streaming responses (the order event stream) are logged when the
        stream is opened, not when it ends.
        """
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        started = getattr(request, "_started_at", None)
        logger.info(
            "request handled",
            extra={
                "path": request.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": round((time.monotonic() - started) * 1000, 2) if started else None,
            },
        )
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    def process_request(self, request):
        if request.path.startswith(LIMITED_PREFIXES):
            clen = request.META.get("CONTENT_LENGTH")
            if clen and clen.isdigit() and int(clen) > MAX_API_BYTES:
                return JsonResponse(
                    {"detail": "PAYLOAD_TOO_LARGE", "message": f"Body exceeds {MAX_API_BYTES} bytes"},
                    status=413,
                )
