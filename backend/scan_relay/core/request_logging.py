"""Access log, X-Request-ID and HTTP metrics for every request.

Errors that escape a route are turned into the JSON 500 here, inside the
middleware stack, so that response is logged, counted and carries the same
headers as any other.
"""
import json
import logging
import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from scan_relay.core.metrics import record_request

access_logger = logging.getLogger("scan_relay.request")
logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
# Probes and scrapes would drown the upload numbers.
UNMETERED_PATHS = frozenset({"/metrics", "/health"})


def server_error_response(exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": "Server error", "message": str(exc)})


def _access_event(request: Request, request_id: str, status_code: int, latency_ms: float) -> dict[str, Any]:
    return {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "status_code": status_code,
        "latency_ms": round(latency_ms, 2),
        "client_ip": request.client.host if request.client else None,
    }


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception("Unhandled error on %s %s (request %s)", request.method, request.url.path, request_id)
            response = server_error_response(exc)
        latency_ms = (time.perf_counter() - start) * 1000

        event = _access_event(request, request_id, response.status_code, latency_ms)
        if request.app.state.settings.log_json:
            access_logger.info(json.dumps({"event": "request", **event}))
        else:
            access_logger.info(
                "request %s %s %s %.2fms", request.method, request.url.path, response.status_code, latency_ms, extra=event
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        if request.url.path not in UNMETERED_PATHS:
            record_request(request.method, request.url.path, response.status_code, latency_ms / 1000.0)
        return response
