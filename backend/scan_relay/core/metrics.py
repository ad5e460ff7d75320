"""Prometheus metrics: request count by route/status, latency, upstream scan outcomes."""
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total requests",
    ["method", "path", "status_class"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency",
    ["method", "path"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
SCAN_TOTAL = Counter(
    "virustotal_scan_total",
    "Upstream scan submissions",
    ["outcome"],  # success | upstream_http_error | upstream_unreachable | internal_error
)
SCAN_LATENCY = Histogram(
    "virustotal_scan_duration_seconds",
    "Upstream scan submission latency",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0),
)

# Only these paths get their own label; unknown paths (404s) collapse to "other".
_KNOWN_PATHS = frozenset({"/upload", "/health", "/metrics"})


def _status_class(status: int) -> str:
    if status < 200:
        return "1xx"
    if status < 300:
        return "2xx"
    if status < 400:
        return "3xx"
    if status < 500:
        return "4xx"
    return "5xx"


def record_request(method: str, path: str, status_code: int, latency_seconds: float) -> None:
    path = path if path in _KNOWN_PATHS else "other"
    sc = _status_class(status_code)
    REQUEST_COUNT.labels(method=method, path=path, status_class=sc).inc()
    REQUEST_LATENCY.labels(method=method, path=path).observe(latency_seconds)


def record_scan(outcome: str, latency_seconds: float) -> None:
    SCAN_TOTAL.labels(outcome=outcome).inc()
    SCAN_LATENCY.observe(latency_seconds)


def get_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
