"""Storage backend factory. One S3-compatible backend; kept behind StorageBackend so tests can swap it."""
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


def get_storage(settings: Settings) -> StorageBackend:
    """Build the storage backend for settings. Imports boto3 lazily."""
    from prosody_filer.services.storage.s3 import S3Storage
    return S3Storage(settings)


__all__ = [
    "BackendError",
    "NotModified",
    "ObjectInfo",
    "RangeNotSatisfiable",
    "StorageBackend",
    "StorageError",
    "StoredObject",
    "get_storage",
]
