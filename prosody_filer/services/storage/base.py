"""Object storage interface the upload handler relies on. Implementation: S3-compatible (boto3)."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterator, Mapping


class StorageError(Exception):
    """Object store unreachable or rejected a read/presign/bucket query."""


class BackendError(StorageError):
    """Object store rejected or failed an upload."""


class NotModified(StorageError):
    """Conditional GET: the stored ETag matches If-None-Match."""


class RangeNotSatisfiable(StorageError):
    """Requested byte range lies outside the object."""


@dataclass
class ObjectInfo:
    content_length: int
    etag: str | None = None


@dataclass
class StoredObject:
    """Open object body. Caller must close() it once done."""

    body: Iterator[bytes]
    content_length: int
    etag: str | None = None
    # Set for partial reads, e.g. "bytes 0-99/1234"
    content_range: str | None = None
    close: Callable[[], None] = lambda: None


class StorageBackend(ABC):
    """Abstract object store. Blocking calls; run them in a worker thread from async code."""

    @abstractmethod
    def bucket_exists(self, bucket: str) -> bool:
        """False only on a definitive "no such bucket". Raise StorageError if the store can't be queried."""
        ...

    @abstractmethod
    def put_object(
        self,
        bucket: str,
        key: str,
        body: BinaryIO,
        length: int,
        content_type: str,
        content_disposition: str,
    ) -> str:
        """Store length bytes read from body under key. Return the object's ETag. Raise BackendError."""
        ...

    @abstractmethod
    def get_object(
        self,
        bucket: str,
        key: str,
        byte_range: str | None = None,
        if_none_match: str | None = None,
    ) -> StoredObject:
        """Open key for streaming. byte_range is an HTTP Range value ("bytes=0-99")."""
        ...

    @abstractmethod
    def stat_object(self, bucket: str, key: str) -> ObjectInfo:
        """Object metadata without transferring the body."""
        ...

    @abstractmethod
    def presign_get(
        self,
        bucket: str,
        key: str,
        expires_s: int,
        response_headers: Mapping[str, str] | None = None,
    ) -> str:
        """Time-bounded GET URL. response_headers: Content-Type / Content-Disposition overrides the store applies."""
        ...
