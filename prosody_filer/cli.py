"""CLI: prosody-filer-s3 [--config PATH]. Load config, check the bucket, serve."""
import argparse
import logging

import uvicorn

from prosody_filer.core.config import DEFAULT_CONFIG_FILE, ConfigError, load_settings
from prosody_filer.core.logging_redaction import redact_for_log
from prosody_filer.core.request_logging import LOG_FORMAT, configure_logging
from prosody_filer.main import create_app
from prosody_filer.services.storage import StorageBackend, StorageError, get_storage

logger = logging.getLogger("prosody_filer")


def check_bucket(storage: StorageBackend, bucket: str) -> None:
    """Fail (StorageError) if the store can't be queried; only warn if it says the bucket is missing."""
    if storage.bucket_exists(bucket):
        logger.info("S3 bucket found.")
        return
    # Some S3 implementations (e.g. Scaleway) report existing buckets as missing;
    # reaching here still proves the endpoint and credentials work.
    logger.warning("Bucket does not exist (or S3 service is buggy): %s", bucket)


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="prosody-filer-s3",
        description="HTTP upload gateway for mod_http_upload_external, backed by S3-compatible storage",
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG_FILE, help="Path to configuration file (TOML)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    logger.info("Reading configuration ...")
    try:
        settings = load_settings(args.config)
        host, port = settings.bind()
    except ConfigError as e:
        logger.error("%s ...Exiting.", e)
        return 1
    configure_logging(settings)
    logger.debug("Effective configuration: %s", redact_for_log(settings.model_dump()))

    logger.info("Starting Prosody-Filer-S3...")
    try:
        storage = get_storage(settings)
        check_bucket(storage, settings.s3_bucket)
    except StorageError as e:
        logger.error("Storage backend unavailable: %s", e)
        return 1

    app = create_app(settings, storage)
    logger.info("Server started on %s. Waiting for requests.", settings.listen_address)
    uvicorn.run(app, host=host, port=port, log_config=None)
    return 0
