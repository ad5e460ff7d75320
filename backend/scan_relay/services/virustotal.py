"""VirusTotal relay: one multipart POST per staged upload, result classified into a ScanOutcome."""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, ClassVar, Union

import httpx

from scan_relay.core.config import VIRUSTOTAL_FILES_URL
from scan_relay.core.logging_redaction import redact_for_log
from scan_relay.core.metrics import record_scan
from scan_relay.services.staging import UploadedFile

logger = logging.getLogger(__name__)

UPSTREAM_CONTENT_TYPE = "application/octet-stream"

# Raised when no usable response came back at all (timeout, DNS, refused, dropped connection).
_UNREACHABLE_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    httpx.ProxyError,
)


@dataclass(frozen=True)
class ScanSucceeded:
    kind: ClassVar[str] = "success"
    payload: Any
    raw: bytes


@dataclass(frozen=True)
class UpstreamHttpError:
    kind: ClassVar[str] = "upstream_http_error"
    status_code: int
    body: Any


@dataclass(frozen=True)
class UpstreamUnreachable:
    kind: ClassVar[str] = "upstream_unreachable"
    reason: str


@dataclass(frozen=True)
class InternalError:
    kind: ClassVar[str] = "internal_error"
    message: str


ScanOutcome = Union[ScanSucceeded, UpstreamHttpError, UpstreamUnreachable, InternalError]


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class VirusTotalClient:
    """Submits staged files to the VirusTotal files endpoint. Single attempt, no retries."""

    def __init__(
        self,
        api_key: str | None,
        url: str = VIRUSTOTAL_FILES_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key or None
        self._url = url
        self._client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        h = {"Accept": "application/json"}
        if self._api_key:
            h["x-apikey"] = self._api_key
        return h

    async def submit(self, uploaded: UploadedFile) -> ScanOutcome:
        name = uploaded.original_filename
        logger.info("Scanning file: %s", name)
        start = time.perf_counter()
        outcome = await self._submit(uploaded)
        record_scan(outcome.kind, time.perf_counter() - start)
        if isinstance(outcome, ScanSucceeded):
            logger.info("VirusTotal scan completed for: %s", name)
        elif isinstance(outcome, UpstreamHttpError):
            logger.error("Error during VirusTotal scan for %s: upstream status %d", name, outcome.status_code)
            logger.debug("VirusTotal error body: %s", redact_for_log(outcome.body, [self._api_key]))
        elif isinstance(outcome, UpstreamUnreachable):
            logger.error("Error during VirusTotal scan for %s: %s", name, outcome.reason)
        else:
            logger.error("Error during VirusTotal scan for %s: %s", name, outcome.message)
        return outcome

    async def _submit(self, uploaded: UploadedFile) -> ScanOutcome:
        headers = self._headers()
        logger.debug("POST %s headers=%s", self._url, redact_for_log(headers, [self._api_key]))
        try:
            with uploaded.storage_path.open("rb") as fh:
                response = await self._client.post(
                    self._url,
                    headers=headers,
                    files={"file": (uploaded.original_filename, fh, UPSTREAM_CONTENT_TYPE)},
                )
        except _UNREACHABLE_ERRORS as e:
            return UpstreamUnreachable(reason=f"{type(e).__name__}: {e}")
        except Exception as e:
            return InternalError(message=str(e) or type(e).__name__)

        if not response.is_success:
            return UpstreamHttpError(status_code=response.status_code, body=_decode_body(response))
        try:
            payload = json.loads(response.content)
        except ValueError:
            return InternalError(message="VirusTotal returned a non-JSON response")
        return ScanSucceeded(payload=payload, raw=response.content)

    async def aclose(self) -> None:
        await self._client.aclose()
