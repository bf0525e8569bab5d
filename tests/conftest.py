"""Pytest fixtures: settings, in-memory storage backend, test clients in proxy and redirect mode."""
import hashlib
import re
from urllib.parse import quote, urlencode

import pytest
from httpx import ASGITransport, AsyncClient

from prosody_filer.core.config import Settings
from prosody_filer.core.security import compute_upload_mac
from prosody_filer.main import create_app
from prosody_filer.services.storage import (
    BackendError,
    NotModified,
    ObjectInfo,
    RangeNotSatisfiable,
    StorageBackend,
    StorageError,
    StoredObject,
)

TEST_SECRET = "test-secret"


class InMemoryStorage(StorageBackend):
    """Dict-backed store. Records calls; fail_puts / fail_reads simulate an unreachable backend."""

    def __init__(self) -> None:
        self.objects: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_puts = False
        self.fail_reads = False
        self.closed = 0

    def bucket_exists(self, bucket: str) -> bool:
        return True

    def put_object(self, bucket, key, body, length, content_type, content_disposition):
        self.calls.append(("put", key))
        if self.fail_puts:
            raise BackendError("connection refused")
        data = body.read()
        if len(data) != length:
            raise BackendError(f"short body: {len(data)} != {length}")
        etag = f'"{hashlib.md5(data).hexdigest()}"'
        self.objects[key] = {
            "data": data,
            "etag": etag,
            "content_type": content_type,
            "content_disposition": content_disposition,
        }
        return etag

    def _lookup(self, key: str) -> dict:
        if self.fail_reads:
            raise StorageError("connection refused")
        if key not in self.objects:
            raise StorageError(f"NoSuchKey: {key}")
        return self.objects[key]

    def get_object(self, bucket, key, byte_range=None, if_none_match=None):
        self.calls.append(("get", key))
        obj = self._lookup(key)
        data = obj["data"]
        if if_none_match and if_none_match == obj["etag"]:
            raise NotModified(key)
        content_range = None
        if byte_range:
            m = re.match(r"bytes=(\d+)-(\d*)$", byte_range)
            start = int(m.group(1))
            end = int(m.group(2)) if m.group(2) else len(data) - 1
            if start >= len(data):
                raise RangeNotSatisfiable(key)
            end = min(end, len(data) - 1)
            content_range = f"bytes {start}-{end}/{len(data)}"
            data = data[start:end + 1]

        def _close():
            self.closed += 1

        chunks = [data[i:i + 4] for i in range(0, len(data), 4)]
        return StoredObject(
            body=iter(chunks),
            content_length=len(data),
            etag=obj["etag"],
            content_range=content_range,
            close=_close,
        )

    def stat_object(self, bucket, key):
        self.calls.append(("stat", key))
        obj = self._lookup(key)
        return ObjectInfo(content_length=len(obj["data"]), etag=obj["etag"])

    def presign_get(self, bucket, key, expires_s, response_headers=None):
        self.calls.append(("presign", key))
        if self.fail_reads:
            raise StorageError("signing failed")
        params = {"X-Amz-Expires": expires_s}
        for name, value in (response_headers or {}).items():
            params[f"response-{name.lower()}"] = value
        return f"https://s3.test/{bucket}{quote(key)}?{urlencode(params)}"


@pytest.fixture
def settings_factory():
    def _make(**overrides) -> Settings:
        values = {
            "secret": TEST_SECRET,
            "s3_endpoint": "s3.test",
            "s3_bucket": "uploads",
            "upload_sub_dir": "upload",
        }
        values.update(overrides)
        return Settings(**values)
    return _make


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
async def proxy_client(settings_factory, storage):
    app = create_app(settings_factory(proxy_mode=True), storage)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def redirect_client(settings_factory, storage):
    app = create_app(settings_factory(proxy_mode=False), storage)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def signed_url():
    """URL under /upload carrying a valid v for (key, length). The key is percent-encoded in the path."""
    def _url(key: str, length: int, secret: str = TEST_SECRET) -> str:
        return f"/upload{quote(key)}?v={compute_upload_mac(secret, key, length)}"
    return _url
