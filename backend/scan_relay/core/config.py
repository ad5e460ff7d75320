"""Application settings."""
from pydantic_settings import BaseSettings
from functools import lru_cache

VIRUSTOTAL_FILES_URL = "https://www.virustotal.com/api/v3/files"
# Multipart field the upload form posts the file under.
UPLOAD_FIELD_NAME = "email"


class Settings(BaseSettings):
    """App config from env."""

    app_name: str = "VirusTotal Scan Relay"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    # Structured logging: set LOG_JSON=1 for one-JSON-object-per-line
    log_json: bool = False
    # If set, /metrics requires a matching X-Metrics-Secret header
    metrics_secret: str | None = None

    # Upstream. No built-in key: when unset the request is still sent and VirusTotal's auth error is relayed.
    virus_total_api_key: str | None = None
    virustotal_url: str = VIRUSTOTAL_FILES_URL
    scan_timeout_seconds: float = 30.0

    # Staging
    max_upload_bytes: int = 10 * 1024 * 1024
    upload_tmp_dir: str | None = None  # None = system temp dir

    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
