"""Pytest fixtures: app built with test settings, in-process client, stubbed VirusTotal."""
import json
from pathlib import Path

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from scan_relay.core.config import Settings
from scan_relay.main import create_app

TEST_API_KEY = "test-api-key"
MAX_UPLOAD_BYTES = 1024
DEFAULT_SCAN_RESULT = b'{"data": {"type": "analysis", "id": "NjY0MjRlOTFjMDIyYTkyNWM0NjU2NWQzYWNlMzFmZmI6MTQ3NTA0ODI3Nw=="}}'


class UpstreamStub:
    """Callable handler for httpx.MockTransport. Records every request; `responder` decides the reply."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responder = lambda request: httpx.Response(
            200,
            content=DEFAULT_SCAN_RESULT,
            headers={"Content-Type": "application/json"},
        )

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        result = self.responder(request)
        if not isinstance(result, httpx.Response):
            result = await result
        return result

    def reply_json(self, status_code: int, body: object) -> None:
        self.responder = lambda request: httpx.Response(status_code, content=json.dumps(body).encode(), headers={"Content-Type": "application/json"})

    def fail_with(self, exc_type: type[httpx.HTTPError], message: str = "boom") -> None:
        def _raise(request: httpx.Request):
            raise exc_type(message, request=request)
        self.responder = _raise


@pytest.fixture
def staging_dir(tmp_path: Path) -> Path:
    d = tmp_path / "staging"
    d.mkdir()
    return d


@pytest.fixture
def settings(staging_dir: Path) -> Settings:
    return Settings(
        _env_file=None,
        virus_total_api_key=TEST_API_KEY,
        virustotal_url="https://vt.test/api/v3/files",
        max_upload_bytes=MAX_UPLOAD_BYTES,
        upload_tmp_dir=str(staging_dir),
        metrics_secret=None,
    )


@pytest.fixture
def upstream() -> UpstreamStub:
    return UpstreamStub()


@pytest.fixture
async def app(settings: Settings, upstream: UpstreamStub):
    app = create_app(settings, transport=httpx.MockTransport(upstream))
    yield app
    await app.state.relay.aclose()


@pytest.fixture
async def client(app):
    # raise_app_exceptions=False: the catch-all handler answers first, then Starlette re-raises.
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as ac:
        yield ac


def email_file(name: str = "message.eml", content: bytes = b"From: a@example.com\r\n\r\nhello\r\n"):
    return {"email": (name, content, "message/rfc822")}
