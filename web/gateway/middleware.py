"""Gateway middleware: request correlation, access log and API body limit.

``RequestIdMiddleware`` gives every request an identifier. It reuses the
incoming ``X-Request-Id`` header when the caller sends one and generates a
UUIDv4 otherwise. The id is stored on ``request.request_id`` and in the
``REQUEST_ID_CTX`` context variable, so the HTTP adapters can forward it to
the hosted backend and the log filter can stamp it on every record without
passing it around. The response echoes it in ``X-Request-ID`` and one
structured access line is logged per request.

``ApiSizeLimitMiddleware`` rejects ``/api/`` requests whose declared body is
larger than ``API_MAX_BYTES`` with 413.
"""

import logging
import time
import uuid
import os
import contextvars
from django.http import JsonResponse

from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
MAX_API_BYTES = int(os.getenv("API_MAX_BYTES", str(1 * 1024 * 1024)))

access_logger = logging.getLogger("gateway.access")


class RequestIdMiddleware(MiddlewareMixin):
    """Set, propagate and log a per-request identifier.

    Attributes:
        HEADER (str): Incoming header, in ``request.META`` casing.
        RESPONSE_HEADER (str): Header added to every response.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        request._started_at = time.monotonic()
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        started = getattr(request, "_started_at", None)
        access_logger.info(
            "request handled",
            extra={
                "path": request.path,
                "method": request.method,
                "status": response.status_code,
                "duration_ms": round((time.monotonic() - started) * 1000, 1) if started else None,
            },
        )
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    def process_request(self, request):
        if request.path.startswith("/api/"):
            clen = request.META.get("CONTENT_LENGTH")
            if clen and clen.isdigit() and int(clen) > MAX_API_BYTES:
                return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)
