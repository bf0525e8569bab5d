"""Prometheus metrics: request count by route/status, latency, uploads, reads by mode."""
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
UPLOAD_TOTAL = Counter(
    "filer_uploads_total",
    "Upload attempts",
    ["result"],  # success | unauthorized | backend_error
)
READ_TOTAL = Counter(
    "filer_reads_total",
    "Download/HEAD requests",
    ["mode", "result"],  # mode: proxy | redirect; result: success | storage_error
)


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
    """path should be the route template (e.g. /upload/{key:path}) to keep cardinality bounded."""
    sc = _status_class(status_code)
    REQUEST_COUNT.labels(method=method, path=path or "/", status_class=sc).inc()
    REQUEST_LATENCY.labels(method=method, path=path or "/").observe(latency_seconds)


def record_upload(result: str) -> None:
    UPLOAD_TOTAL.labels(result=result).inc()


def record_read(mode: str, result: str) -> None:
    READ_TOTAL.labels(mode=mode, result=result).inc()


def get_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
