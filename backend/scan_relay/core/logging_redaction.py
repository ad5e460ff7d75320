"""Scrub the VirusTotal key out of anything the relay logs about its upstream calls."""
from collections.abc import Iterable, Mapping
from typing import Any

REDACTED = "[REDACTED]"

# Header or field names whose values are credentials, matched as case-insensitive substrings.
SENSITIVE_NAMES = ("apikey", "api-key", "api_key", "authorization", "cookie", "secret")


def is_sensitive_name(name: str) -> bool:
    lowered = name.lower()
    return any(part in lowered for part in SENSITIVE_NAMES)


def redact_for_log(value: Any, secrets: Iterable[str | None] = ()) -> Any:
    """Copy of `value` safe to log.

    Mapping entries with a credential-like name are replaced wholesale, and any
    literal occurrence of one of `secrets` inside a string is masked, so an
    upstream error body that echoes the key back does not leak it.
    """
    known = tuple(s for s in secrets if s)
    return _redact(value, known)


def _redact(value: Any, secrets: tuple[str, ...]) -> Any:
    if isinstance(value, Mapping):
        return {
            k: REDACTED if isinstance(k, str) and is_sensitive_name(k) else _redact(v, secrets)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(v, secrets) for v in value)
    if isinstance(value, str):
        for secret in secrets:
            value = value.replace(secret, REDACTED)
        return value
    return value
