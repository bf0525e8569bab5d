"""Upload MAC as used by mod_http_upload_external: HMAC-SHA256 over "<storage key> <content length>"."""
import hashlib
import hmac


def compute_upload_mac(secret: str, storage_key: str, content_length: int) -> str:
    """Hex HMAC authorizing one upload of content_length bytes to storage_key."""
    message = f"{storage_key} {content_length}"
    return hmac.new(
        secret.encode(),
        message.encode(),
        hashlib.sha256,
    ).hexdigest()


def verify_upload_mac(secret: str, storage_key: str, content_length: int, mac: str) -> bool:
    """Constant-time check of a client-supplied MAC. No expiry, no replay protection."""
    expected = compute_upload_mac(secret, storage_key, content_length)
    try:
        return hmac.compare_digest(expected.encode(), mac.encode())
    except UnicodeEncodeError:
        return False
