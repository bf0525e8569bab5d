"""FastAPI dependencies: settings, storage backend and read strategy from app.state, metrics guard."""
import hmac

from fastapi import Header, HTTPException, Request, status

from prosody_filer.core.config import Settings
from prosody_filer.services.read_strategy import ReadStrategy
from prosody_filer.services.storage import StorageBackend


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> StorageBackend:
    return request.app.state.storage


def get_read_strategy(request: Request) -> ReadStrategy:
    return request.app.state.read_strategy


def require_metrics_access(
    request: Request,
    x_metrics_secret: str | None = Header(None, alias="X-Metrics-Secret"),
) -> None:
    """Allow /metrics if no metrics_secret is configured, or the X-Metrics-Secret header matches it."""
    secret = get_settings(request).metrics_secret
    if not secret:
        return
    if not x_metrics_secret or not hmac.compare_digest(x_metrics_secret.encode(), secret.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing X-Metrics-Secret",
        )
