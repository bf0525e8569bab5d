"""S3-compatible storage backend via boto3: bucket check, streaming put/get, head, presigned GET."""
from __future__ import annotations

import logging
from typing import BinaryIO, Mapping

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from prosody_filer.core.config import Settings
from prosody_filer.services.storage.base import (
    BackendError,
    NotModified,
    ObjectInfo,
    RangeNotSatisfiable,
    StorageBackend,
    StorageError,
    StoredObject,
)

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

# Presign parameter for each overridable response header
_RESPONSE_OVERRIDES = {
    "content-type": "ResponseContentType",
    "content-disposition": "ResponseContentDisposition",
}


def _error_code(e: Exception) -> str | None:
    resp = getattr(e, "response", None)
    if isinstance(resp, dict):
        return resp.get("Error", {}).get("Code")
    return None


def _get_client(settings: Settings):
    return boto3.client(
        "s3",
        endpoint_url=settings.s3_endpoint_url,
        aws_access_key_id=settings.s3_access_key or None,
        aws_secret_access_key=settings.s3_secret_key or None,
        region_name=settings.s3_region,
        config=Config(
            signature_version="s3v4",
            # Request bodies are one-shot streams: no payload hashing, no retries
            s3={"addressing_style": "path", "payload_signing_enabled": False},
            retries={"total_max_attempts": 1, "mode": "standard"},
            request_checksum_calculation="when_required",
            response_checksum_validation="when_required",
        ),
    )


class S3Storage(StorageBackend):
    """S3 / MinIO / R2 backend. One client per process, created at startup."""

    def __init__(self, settings: Settings, client=None) -> None:
        if client is None:
            try:
                client = _get_client(settings)
            except (BotoCoreError, ValueError) as e:
                raise StorageError(f"Cannot create S3 client: {e}") from e
        self._client = client
        logger.info("S3 client initialized for endpoint %s", settings.s3_endpoint_url)

    def bucket_exists(self, bucket: str) -> bool:
        try:
            self._client.head_bucket(Bucket=bucket)
        except ClientError as e:
            if _error_code(e) in ("404", "NoSuchBucket", "NotFound"):
                return False
            raise StorageError(f"Bucket check failed: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Bucket check failed: {e}") from e
        return True

    def put_object(
        self,
        bucket: str,
        key: str,
        body: BinaryIO,
        length: int,
        content_type: str,
        content_disposition: str,
    ) -> str:
        if length < 0:
            raise BackendError("Upload length unknown")
        try:
            resp = self._client.put_object(
                Bucket=bucket,
                Key=key,
                Body=body,
                ContentLength=length,
                ContentType=content_type,
                ContentDisposition=content_disposition,
            )
        except (ClientError, BotoCoreError) as e:
            raise BackendError(f"Upload of {key} failed: {e}") from e
        return resp.get("ETag", "")

    def get_object(
        self,
        bucket: str,
        key: str,
        byte_range: str | None = None,
        if_none_match: str | None = None,
    ) -> StoredObject:
        params = {"Bucket": bucket, "Key": key}
        if byte_range:
            params["Range"] = byte_range
        if if_none_match:
            params["IfNoneMatch"] = if_none_match
        try:
            resp = self._client.get_object(**params)
        except ClientError as e:
            code = _error_code(e)
            if code in ("304", "NotModified"):
                raise NotModified(key) from e
            if code in ("416", "InvalidRange"):
                raise RangeNotSatisfiable(key) from e
            raise StorageError(f"Get of {key} failed: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Get of {key} failed: {e}") from e
        body = resp["Body"]
        return StoredObject(
            body=body.iter_chunks(chunk_size=CHUNK_SIZE),
            content_length=resp.get("ContentLength") or 0,
            etag=resp.get("ETag"),
            content_range=resp.get("ContentRange"),
            close=body.close,
        )

    def stat_object(self, bucket: str, key: str) -> ObjectInfo:
        try:
            resp = self._client.head_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Head of {key} failed: {e}") from e
        return ObjectInfo(
            content_length=resp.get("ContentLength") or 0,
            etag=resp.get("ETag"),
        )

    def presign_get(
        self,
        bucket: str,
        key: str,
        expires_s: int,
        response_headers: Mapping[str, str] | None = None,
    ) -> str:
        params = {"Bucket": bucket, "Key": key}
        for name, value in (response_headers or {}).items():
            param = _RESPONSE_OVERRIDES.get(name.lower())
            if param is None:
                raise StorageError(f"Unsupported response header override: {name}")
            params[param] = value
        try:
            # Offline signing: works for any key; the store itself 404s missing objects
            return self._client.generate_presigned_url(
                "get_object",
                Params=params,
                ExpiresIn=expires_s,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Presign of {key} failed: {e}") from e
