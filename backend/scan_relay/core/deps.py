"""FastAPI dependencies: app-scoped settings and relay, metrics guard."""
from fastapi import Depends, Header, HTTPException, Request, status

from scan_relay.core.config import Settings
from scan_relay.services.virustotal import VirusTotalClient


def get_app_settings(request: Request) -> Settings:
    """Settings the app was built with (see create_app)."""
    return request.app.state.settings


def get_relay(request: Request) -> VirusTotalClient:
    return request.app.state.relay


def require_metrics_access(
    settings: Settings = Depends(get_app_settings),
    x_metrics_secret: str | None = Header(None, alias="X-Metrics-Secret"),
) -> None:
    """Allow /metrics if no secret is configured (local) or X-Metrics-Secret matches."""
    if settings.metrics_secret and x_metrics_secret != settings.metrics_secret:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing X-Metrics-Secret",
        )
