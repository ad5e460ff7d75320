"""
Python client for the scan relay: upload one file to POST /upload and return the VirusTotal JSON.
Mirrors the browser form (multipart field "email").
"""
from pathlib import Path

import httpx

UPLOAD_FIELD_NAME = "email"


class ScanError(Exception):
    """Relay answered with a non-2xx status. `body` is the decoded JSON error (or raw text)."""

    def __init__(self, status_code: int, body: object):
        message = body.get("error") if isinstance(body, dict) else None
        super().__init__(f"{status_code}: {message or body}")
        self.status_code = status_code
        self.body = body


class ScanClient:
    """Client for the scan relay (upload + health)."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._session: httpx.Client | None = None

    def _get_session(self) -> httpx.Client:
        if self._session is None:
            self._session = httpx.Client(
                base_url=self.base_url,
                timeout=self._timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._session

    def health(self) -> dict:
        r = self._get_session().get("/health")
        r.raise_for_status()
        return r.json()

    def scan_file(self, path: str | Path) -> dict:
        """Upload `path` and return the upstream scan payload. Raises ScanError on any error response."""
        p = Path(path)
        if not p.is_file():
            raise FileNotFoundError(p)
        with p.open("rb") as fh:
            r = self._get_session().post(
                "/upload",
                files={UPLOAD_FIELD_NAME: (p.name, fh, "application/octet-stream")},
            )
        if not r.is_success:
            try:
                body = r.json()
            except ValueError:
                body = r.text
            raise ScanError(r.status_code, body)
        return r.json()

    def close(self) -> None:
        if self._session:
            self._session.close()
            self._session = None

    def __enter__(self) -> "ScanClient":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
