"""FastAPI app: security headers, CORS, error contract, upload/health/metrics routes, uvicorn entry point."""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import httpx
import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from scan_relay.api.schemas import HealthResponse
from scan_relay.api.upload import router as upload_router
from scan_relay.core.config import Settings, get_settings
from scan_relay.core.deps import require_metrics_access
from scan_relay.core.logging_setup import configure_logging
from scan_relay.core.metrics import get_metrics
from scan_relay.core.request_logging import RequestLoggingMiddleware, server_error_response
from scan_relay.services.virustotal import VirusTotalClient

logger = logging.getLogger(__name__)


def _utc_timestamp() -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def create_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the app around one Settings instance. `transport` replaces the upstream HTTP transport (tests)."""
    settings = settings or get_settings()
    configure_logging(settings)
    if not settings.virus_total_api_key:
        logger.warning("VIRUS_TOTAL_API_KEY is not set; VirusTotal will reject scan requests")

    relay = VirusTotalClient(
        api_key=settings.virus_total_api_key,
        url=settings.virustotal_url,
        timeout=settings.scan_timeout_seconds,
        transport=transport,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.debug("Closing VirusTotal HTTP client")
        await relay.aclose()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.relay = relay

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.middleware("http")
    async def security_headers(request, call_next):
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        # Only reached for errors raised outside RequestLoggingMiddleware.
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return server_error_response(exc)

    app.include_router(upload_router)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Liveness: no upstream call."""
        return HealthResponse(status="ok", timestamp=_utc_timestamp())

    @app.get("/metrics", response_class=Response)
    async def metrics(_: None = Depends(require_metrics_access)):
        """Prometheus metrics. Guard with METRICS_SECRET + X-Metrics-Secret header outside local dev."""
        body, content_type = get_metrics()
        return Response(content=body, media_type=content_type)

    return app


class RelayServer(uvicorn.Server):
    """Exits on SIGTERM/SIGINT without waiting for in-flight uploads."""

    def handle_exit(self, sig, frame) -> None:
        logger.info("Signal %s received. Shutting down.", sig)
        self.should_exit = True
        self.force_exit = True


def main() -> int:
    settings = get_settings()
    app = create_app(settings)
    config = uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None)
    server = RelayServer(config)
    logger.info("Server running on port %d", settings.port)
    logger.info("Upload endpoint available at: http://localhost:%d/upload", settings.port)
    server.run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
