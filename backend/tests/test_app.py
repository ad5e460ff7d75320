"""App wiring: health, metrics guard, error contract, headers, signal handling."""
import logging
import signal
from datetime import datetime

import httpx
import pytest
import uvicorn
from httpx import ASGITransport, AsyncClient

from conftest import email_file
from scan_relay.main import RelayServer, create_app, main


@pytest.mark.asyncio
async def test_health(client: AsyncClient, upstream):
    r = await client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    ts = data["timestamp"]
    assert ts.endswith("Z")
    parsed = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    assert parsed.utcoffset().total_seconds() == 0
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_unknown_route_uses_error_shape(client: AsyncClient):
    r = await client.get("/nope")
    assert r.status_code == 404
    assert r.json() == {"error": "Not Found"}


@pytest.mark.asyncio
async def test_security_headers_and_request_id(client: AsyncClient):
    r = await client.get("/health")
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
    assert len(r.headers["X-Request-ID"]) == 36


@pytest.mark.asyncio
async def test_cors_preflight_for_configured_origin(client: AsyncClient):
    r = await client.options(
        "/upload",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"},
    )
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "http://localhost:3000"


@pytest.mark.asyncio
async def test_metrics_count_scan_outcomes(client: AsyncClient, upstream):
    await client.post("/upload", files=email_file())
    upstream.fail_with(httpx.ConnectError)
    await client.post("/upload", files=email_file())
    r = await client.get("/metrics")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    text = r.text
    assert 'virustotal_scan_total{outcome="success"}' in text
    assert 'virustotal_scan_total{outcome="upstream_unreachable"}' in text
    assert 'http_requests_total{method="POST",path="/upload",status_class="2xx"}' in text


@pytest.mark.asyncio
async def test_metrics_secret_required_when_configured(settings, upstream):
    app = create_app(settings.model_copy(update={"metrics_secret": "s3cret"}), transport=httpx.MockTransport(upstream))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        r = await ac.get("/metrics")
        assert r.status_code == 401
        assert r.json() == {"error": "Invalid or missing X-Metrics-Secret"}
        r = await ac.get("/metrics", headers={"X-Metrics-Secret": "s3cret"})
        assert r.status_code == 200
    await app.state.relay.aclose()


@pytest.mark.parametrize("sig", [signal.SIGTERM, signal.SIGINT])
def test_signal_forces_immediate_exit(settings, sig):
    server = RelayServer(uvicorn.Config(create_app(settings), port=0, log_config=None))
    server.handle_exit(sig, None)
    assert server.should_exit is True
    assert server.force_exit is True


def test_main_serves_on_configured_port_and_returns_zero(settings, monkeypatch, caplog):
    served = []
    monkeypatch.setattr("scan_relay.main.get_settings", lambda: settings.model_copy(update={"port": 4321}))
    monkeypatch.setattr(RelayServer, "run", lambda self, sockets=None: served.append(self))

    with caplog.at_level(logging.INFO, logger="scan_relay.main"):
        assert main() == 0

    assert len(served) == 1
    assert served[0].config.port == 4321
    assert served[0].config.app.state.settings.port == 4321
    assert "Server running on port 4321" in caplog.text
    assert "http://localhost:4321/upload" in caplog.text
