"""XMPP HTTP upload gateway (mod_http_upload_external) in front of S3-compatible storage."""

__version__ = "0.1.0"
