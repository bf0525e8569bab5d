"""Upload gateway: HMAC-checked PUT, GET/HEAD via the read strategy, OPTIONS. Mounted at the upload sub dir."""
import io
import logging
import re
from typing import AsyncIterator
from urllib.parse import unquote_plus

import anyio.from_thread
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from prosody_filer.core.config import Settings
from prosody_filer.core.deps import get_read_strategy, get_settings, get_storage
from prosody_filer.core.metrics import record_upload
from prosody_filer.core.security import compute_upload_mac, verify_upload_mac
from prosody_filer.services.content_headers import content_meta
from prosody_filer.services.read_strategy import ReadStrategy
from prosody_filer.services.storage import BackendError, StorageBackend

logger = logging.getLogger(__name__)

ALLOWED_METHODS = "OPTIONS, HEAD, GET, PUT"
ROUTED_METHODS = ["OPTIONS", "HEAD", "GET", "PUT"]

# A "%" not followed by two hex digits
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def storage_key_for(path: str, settings: Settings) -> str:
    """Request path minus "/<upload_sub_dir>". Not normalized: ".." segments pass through."""
    return path.removeprefix(settings.path_prefix)


def parse_query(raw_query: str) -> dict[str, list[str]]:
    """Form-decode the query string. Empty fields are skipped; a key without "=" gets "".

    A field with a bad percent escape or a ";" is dropped with a warning, the rest are kept.
    """
    params: dict[str, list[str]] = {}
    for field in raw_query.split("&"):
        if not field:
            continue
        if ";" in field or _BAD_ESCAPE.search(field):
            logger.warning("Failed to parse URL query params: invalid field %r", field.partition("=")[0])
            continue
        key, _, value = field.partition("=")
        params.setdefault(unquote_plus(key), []).append(unquote_plus(value))
    return params


def declared_length(request: Request) -> int:
    """Content-Length header as int; -1 when absent or unusable (e.g. chunked)."""
    try:
        return int(request.headers.get("content-length", ""))
    except ValueError:
        return -1


class RequestBodyReader(io.RawIOBase):
    """Blocking file-like view of an async request body, for boto3 running in a worker thread."""

    def __init__(self, chunks: AsyncIterator[bytes]) -> None:
        self._chunks = chunks
        self._buffer = b""
        self._eof = False

    def readable(self) -> bool:
        return True

    async def _next_chunk(self) -> bytes | None:
        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            return None

    def readinto(self, b) -> int:
        while not self._buffer and not self._eof:
            chunk = anyio.from_thread.run(self._next_chunk)
            if chunk is None:
                self._eof = True
            else:
                self._buffer = chunk
        n = min(len(b), len(self._buffer))
        b[:n] = self._buffer[:n]
        self._buffer = self._buffer[n:]
        return n


async def _put(request: Request, storage_key: str, query: dict[str, list[str]], settings: Settings, storage: StorageBackend) -> Response:
    if "v" not in query:
        logger.warning("No HMAC attached to URL")
        record_upload("unauthorized")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Needs HMAC")

    length = declared_length(request)
    logger.info("Storage key: %s", storage_key)
    logger.info("Content length: %d", length)
    if not verify_upload_mac(settings.secret, storage_key, length, query["v"][0]):
        logger.warning("Invalid MAC, expected: %s", compute_upload_mac(settings.secret, storage_key, length))
        record_upload("unauthorized")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="403 Forbidden")

    meta = content_meta(storage_key)
    try:
        etag = await run_in_threadpool(
            storage.put_object,
            settings.s3_bucket,
            storage_key,
            RequestBodyReader(request.stream()),
            length,
            meta.content_type,
            meta.disposition,
        )
    except BackendError as e:
        logger.error("Uploading file failed: %s", e)
        record_upload("backend_error")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Backend Error")

    logger.info("Successfully stored file with ETag %s", etag)
    record_upload("success")
    return Response(status_code=status.HTTP_201_CREATED)


async def handle_request(
    request: Request,
    settings: Settings = Depends(get_settings),
    storage: StorageBackend = Depends(get_storage),
    read_strategy: ReadStrategy = Depends(get_read_strategy),
) -> Response:
    """Single entry point for every request under the upload sub dir."""
    logger.info("Incoming request: %s %s", request.method, request.url)
    # scope values, not request.url: a decoded "?" or "#" in the path would split it again
    query = parse_query(request.scope["query_string"].decode("latin-1"))
    storage_key = storage_key_for(request.scope["path"], settings)

    if request.method == "PUT":
        return await _put(request, storage_key, query, settings, storage)
    if request.method in ("GET", "HEAD"):
        return await read_strategy.resolve(request, storage_key, content_meta(storage_key))
    # OPTIONS
    return Response(status_code=status.HTTP_200_OK, headers={"Allow": ALLOWED_METHODS})


def build_router(settings: Settings) -> APIRouter:
    """Router with the catch-all upload route under settings.upload_sub_dir."""
    router = APIRouter(tags=["upload"])
    prefix = settings.upload_sub_dir.strip("/")
    path = f"/{prefix}/{{key:path}}" if prefix else "/{key:path}"
    router.add_api_route(path, handle_request, methods=ROUTED_METHODS, include_in_schema=False)
    return router
