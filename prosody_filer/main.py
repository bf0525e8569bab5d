"""FastAPI app factory: CORS headers on every response, request logging, upload route, health, metrics."""
import logging

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse, Response

from prosody_filer.api.upload import ALLOWED_METHODS, build_router
from prosody_filer.core.config import Settings
from prosody_filer.core.deps import require_metrics_access
from prosody_filer.core.metrics import get_metrics
from prosody_filer.core.request_logging import RequestLoggingMiddleware
from prosody_filer.services.read_strategy import build_read_strategy
from prosody_filer.services.storage import StorageBackend

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": ALLOWED_METHODS,
    "Access-Control-Allow-Headers": "Authorization, Content-Type",
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Max-Age": "7200",
}


def create_app(settings: Settings, storage: StorageBackend) -> FastAPI:
    """Build the app around already-loaded settings and a connected storage backend."""
    app = FastAPI(title="Prosody Filer S3", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.settings = settings
    app.state.storage = storage
    app.state.read_strategy = build_read_strategy(settings, storage)

    app.add_middleware(RequestLoggingMiddleware, log_json=settings.log_json)

    @app.middleware("http")
    async def cors_headers(request, call_next):
        # Every response, errors included, with or without an Origin header
        response = await call_next(request)
        for name, value in CORS_HEADERS.items():
            response.headers[name] = value
        return response

    @app.exception_handler(status.HTTP_405_METHOD_NOT_ALLOWED)
    async def method_not_allowed(request: Request, exc):
        """Any method the upload route does not serve, WebDAV verbs included."""
        logger.warning("Invalid method %s", request.method)
        return JSONResponse(
            {"detail": "405 Method Not Allowed"},
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            headers=getattr(exc, "headers", None),
        )

    @app.get("/healthz")
    async def healthz():
        """Liveness: no storage call."""
        return {"status": "ok"}

    @app.get("/metrics", response_class=Response)
    async def metrics(_: None = Depends(require_metrics_access)):
        """Prometheus metrics. Guarded by X-Metrics-Secret when metrics_secret is set."""
        body, content_type = get_metrics()
        return Response(content=body, media_type=content_type)

    # Registered last so /healthz and /metrics win when upload_sub_dir is empty
    app.include_router(build_router(settings))
    return app
