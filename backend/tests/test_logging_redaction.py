"""Logs must never contain the VirusTotal key or auth headers."""
import logging

import httpx
import pytest

from scan_relay.core.logging_redaction import REDACTED, is_sensitive_name, redact_for_log
from scan_relay.services.staging import UploadedFile
from scan_relay.services.virustotal import VirusTotalClient


def test_is_sensitive_name():
    assert is_sensitive_name("x-apikey")
    assert is_sensitive_name("Authorization")
    assert is_sensitive_name("VIRUS_TOTAL_API_KEY")
    assert not is_sensitive_name("accept")
    assert not is_sensitive_name("content-type")


def test_redact_for_log_redacts_sensitive_headers():
    out = redact_for_log({"Accept": "application/json", "x-apikey": "abc", "Authorization": "Bearer x"})
    assert out == {"Accept": "application/json", "x-apikey": REDACTED, "Authorization": REDACTED}


def test_redact_for_log_accepts_httpx_headers():
    out = redact_for_log(httpx.Headers({"x-apikey": "abc", "accept": "application/json"}))
    assert out == {"x-apikey": REDACTED, "accept": "application/json"}


def test_redact_for_log_masks_known_secret_inside_error_body():
    body = {"error": {"code": "WrongCredentialsError", "message": "Wrong API key: k3y-value"}, "hits": ["k3y-value"]}
    out = redact_for_log(body, ["k3y-value", None])
    assert out["error"]["message"] == f"Wrong API key: {REDACTED}"
    assert out["hits"] == [REDACTED]
    assert out["error"]["code"] == "WrongCredentialsError"


def test_redact_for_log_passthrough():
    assert redact_for_log(None) is None
    assert redact_for_log("plain text", [""]) == "plain text"
    assert redact_for_log({"status_code": 200, "sha256": "ab" * 32}) == {"status_code": 200, "sha256": "ab" * 32}


@pytest.mark.asyncio
async def test_api_key_not_logged_during_scan(tmp_path, caplog):
    path = tmp_path / "a.eml"
    path.write_bytes(b"x")
    relay = VirusTotalClient(
        "super-secret-key",
        url="https://vt.test/api/v3/files",
        transport=httpx.MockTransport(
            lambda r: httpx.Response(403, json={"error": {"message": "bad key super-secret-key"}})
        ),
    )
    with caplog.at_level(logging.DEBUG, logger="scan_relay.services.virustotal"):
        await relay.submit(UploadedFile("a.eml", path, 1))
    await relay.aclose()
    assert "Scanning file: a.eml" in caplog.text
    assert "upstream status 403" in caplog.text
    assert "POST https://vt.test/api/v3/files" in caplog.text
    assert f"'x-apikey': '{REDACTED}'" in caplog.text
    assert f"bad key {REDACTED}" in caplog.text
    assert "super-secret-key" not in caplog.text
