"""Content-Type / Content-Disposition inferred from the storage key's extension."""
import mimetypes
import posixpath
from typing import NamedTuple

DEFAULT_CONTENT_TYPE = "application/octet-stream"
INLINE = "inline"
ATTACHMENT = "attachment"

# Types browsers can render directly; everything else is downloaded
_INLINE_MAJOR_TYPES = ("audio/", "image/", "video/")
_INLINE_TYPES = frozenset({"text/plain"})

mimetypes.init()


class ContentMeta(NamedTuple):
    content_type: str
    disposition: str


def guess_content_type(storage_key: str) -> str:
    """MIME type for the key's last extension only (".tar.gz" -> ".gz")."""
    ext = posixpath.splitext(storage_key)[1].lower()
    if not ext:
        return DEFAULT_CONTENT_TYPE
    return (
        mimetypes.types_map.get(ext)
        or mimetypes.common_types.get(ext)
        or DEFAULT_CONTENT_TYPE
    )


def disposition_for(content_type: str) -> str:
    base = content_type.split(";", 1)[0].strip().lower()
    if base.startswith(_INLINE_MAJOR_TYPES) or base in _INLINE_TYPES:
        return INLINE
    return ATTACHMENT


def content_meta(storage_key: str) -> ContentMeta:
    content_type = guess_content_type(storage_key)
    return ContentMeta(content_type, disposition_for(content_type))
