"""Structured request logging: request_id, route, status, latency. Plus logging setup."""
import json
import logging
import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from prosody_filer.core.config import Settings
from prosody_filer.core.logging_redaction import redact_for_log, redact_url
from prosody_filer.core.metrics import record_request

logger = logging.getLogger("prosody_filer.request")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Settings) -> None:
    """Root logger from settings; LOG_JSON switches the request logger to bare JSON lines."""
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT, force=True)
    if settings.log_json:
        for h in logger.handlers[:]:
            logger.removeHandler(h)
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(h)
        logger.setLevel(logging.INFO)
        logger.propagate = False


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


def _safe_extra(request: Request, status_code: int, latency_ms: float) -> dict[str, Any]:
    extra: dict[str, Any] = {
        "request_id": getattr(request.state, "request_id", None),
        "method": request.method,
        "url": redact_url(str(request.url)),
        "route": _route_path(request),
        "status_code": status_code,
        "latency_ms": round(latency_ms, 2),
        "client": request.client.host if request.client else None,
    }
    return redact_for_log(extra)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Assign request_id and log one structured line per request (route, status, latency)."""

    def __init__(self, app, log_json: bool = False) -> None:
        super().__init__(app)
        self._log_json = log_json

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()
        response = await call_next(request)
        latency_ms = (time.perf_counter() - start) * 1000
        extra = _safe_extra(request, response.status_code, latency_ms)
        if self._log_json:
            logger.info(json.dumps({"event": "request", **extra}))
        else:
            logger.info(
                "request %s %s %s %.2fms", request.method, extra["route"], response.status_code, latency_ms,
                extra={"request_id": request_id},
            )
        response.headers["X-Request-ID"] = request_id
        if extra["route"] not in ("/metrics", "/healthz"):
            record_request(request.method, extra["route"], response.status_code, latency_ms / 1000.0)
        return response
