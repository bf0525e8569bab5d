"""GET/HEAD resolution: proxy the object bytes, or redirect to a presigned store URL.

Exactly one strategy is built per app from ``proxy_mode``; the handler only calls ``resolve``.
"""
import logging
import re
from abc import ABC, abstractmethod
from email.utils import formatdate
from typing import Iterator

from fastapi import HTTPException, status
from fastapi.responses import RedirectResponse, Response, StreamingResponse
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request

from prosody_filer.core.config import Settings
from prosody_filer.core.metrics import record_read
from prosody_filer.services.content_headers import ContentMeta
from prosody_filer.services.storage import (
    NotModified,
    RangeNotSatisfiable,
    StorageBackend,
    StorageError,
    StoredObject,
)

logger = logging.getLogger(__name__)

STORAGE_ERROR = "Storage error"

# Single byte range only; the store does not do multipart/byteranges
_SINGLE_RANGE = re.compile(r"^bytes=(\d+-\d*|-\d+)$")


def _storage_error(mode: str, e: Exception) -> HTTPException:
    logger.error("Storage error: %s", e)
    record_read(mode, "storage_error")
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=STORAGE_ERROR)


class ReadStrategy(ABC):
    """Turns a GET/HEAD for storage_key into a response."""

    mode: str

    def __init__(self, settings: Settings, storage: StorageBackend) -> None:
        self._settings = settings
        self._storage = storage

    @abstractmethod
    async def resolve(self, request: Request, storage_key: str, meta: ContentMeta) -> Response:
        ...


class ProxyRead(ReadStrategy):
    """Stream the object through the gateway. HEAD only asks the store for metadata."""

    mode = "proxy"

    def _headers(self, meta: ContentMeta, content_length: int, etag: str | None) -> dict[str, str]:
        headers = {
            "Content-Type": meta.content_type,
            "Content-Disposition": meta.disposition,
            "Content-Length": str(content_length),
            "Accept-Ranges": "bytes",
            # The gateway does not track modification times
            "Last-Modified": formatdate(usegmt=True),
        }
        if etag:
            headers["ETag"] = etag
        return headers

    async def resolve(self, request: Request, storage_key: str, meta: ContentMeta) -> Response:
        bucket = self._settings.s3_bucket
        if request.method == "HEAD":
            try:
                info = await run_in_threadpool(self._storage.stat_object, bucket, storage_key)
            except StorageError as e:
                raise _storage_error(self.mode, e)
            record_read(self.mode, "success")
            return Response(status_code=status.HTTP_200_OK, headers=self._headers(meta, info.content_length, info.etag))

        byte_range = request.headers.get("range")
        if byte_range and (request.headers.get("if-range") or not _SINGLE_RANGE.match(byte_range.strip())):
            byte_range = None
        try:
            obj = await run_in_threadpool(
                self._storage.get_object,
                bucket,
                storage_key,
                byte_range,
                request.headers.get("if-none-match"),
            )
        except NotModified:
            record_read(self.mode, "success")
            return Response(status_code=status.HTTP_304_NOT_MODIFIED)
        except RangeNotSatisfiable:
            raise HTTPException(
                status_code=416,
                detail="Range Not Satisfiable",
            )
        except StorageError as e:
            raise _storage_error(self.mode, e)

        headers = self._headers(meta, obj.content_length, obj.etag)
        status_code = status.HTTP_200_OK
        if obj.content_range:
            headers["Content-Range"] = obj.content_range
            status_code = status.HTTP_206_PARTIAL_CONTENT
        record_read(self.mode, "success")
        return StreamingResponse(_iter_body(obj), status_code=status_code, headers=headers)


def _iter_body(obj: StoredObject) -> Iterator[bytes]:
    # Runs in the thread pool; closing releases the store connection on finish or disconnect
    try:
        for chunk in obj.body:
            if chunk:
                yield chunk
    finally:
        obj.close()


class RedirectRead(ReadStrategy):
    """302 to a presigned GET URL; content headers are requested as response overrides."""

    mode = "redirect"

    async def resolve(self, request: Request, storage_key: str, meta: ContentMeta) -> Response:
        overrides = {
            "Content-Type": meta.content_type,
            "Content-Disposition": meta.disposition,
        }
        try:
            # Offline signing: a missing object is the store's 404 to report
            url = await run_in_threadpool(
                self._storage.presign_get,
                self._settings.s3_bucket,
                storage_key,
                self._settings.presign_ttl_seconds,
                overrides,
            )
        except StorageError as e:
            raise _storage_error(self.mode, e)
        record_read(self.mode, "success")
        return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


def build_read_strategy(settings: Settings, storage: StorageBackend) -> ReadStrategy:
    if settings.proxy_mode:
        return ProxyRead(settings, storage)
    return RedirectRead(settings, storage)
