"""Redact sensitive data from logs. Never log the shared secret, S3 credentials or upload MACs."""
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

# Keys (case-insensitive) that must be redacted in dicts
REDACT_KEYS = frozenset({
    "secret", "password", "token", "authorization", "access_key", "secret_key",
    "x-metrics-secret", "cookie",
})
# Query parameters that carry signatures
REDACT_QUERY_PARAMS = frozenset({"v", "x-amz-signature", "x-amz-credential", "signature"})


def _redact_key(key: str) -> bool:
    k = key.lower()
    return any(r in k for r in REDACT_KEYS)


def redact_url(url: str) -> str:
    """Return url with signature query parameters replaced by '[REDACTED]'."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    pairs = [
        (k, "[REDACTED]" if k.lower() in REDACT_QUERY_PARAMS else v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(pairs, safe="[]")))


def redact_for_log(obj: Any) -> Any:
    """Return a copy of obj safe for logging: sensitive keys replaced with '[REDACTED]'."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return {
            k: "[REDACTED]" if _redact_key(k) else redact_for_log(v)
            for k, v in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return type(obj)(redact_for_log(x) for x in obj)
    return obj
