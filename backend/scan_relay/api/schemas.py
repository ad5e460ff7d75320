"""Pydantic schemas for the JSON bodies the relay itself produces (upstream payloads stay opaque)."""
from typing import Any

from pydantic import BaseModel, ConfigDict


def _config_forbid(**kwargs):
    return ConfigDict(extra="forbid", **kwargs)


class HealthResponse(BaseModel):
    model_config = _config_forbid()
    status: str
    timestamp: str


class ErrorResponse(BaseModel):
    model_config = _config_forbid()
    error: str


class UpstreamErrorResponse(BaseModel):
    model_config = _config_forbid()
    error: str
    details: Any = None


class ErrorWithMessageResponse(BaseModel):
    model_config = _config_forbid()
    error: str
    message: str


class PayloadTooLargeResponse(BaseModel):
    model_config = _config_forbid()
    error: str
    limit_bytes: int
