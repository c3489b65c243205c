"""Attachment storage entry point."""
from functools import lru_cache
from typing import Optional

import boto3
from botocore.config import Config as BotoConfig

from core.config import settings
from core.logging_config import get_logger
from .exceptions import (
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    TransientError,
)
from .s3 import S3Presigner

logger = get_logger(__name__)


@lru_cache
def get_storage() -> Optional[S3Presigner]:
    """Presigner for the configured bucket, or None when no bucket is set.

    Presigning is local, so building the client needs no network access.
    """
    s = settings.storage
    if not s.bucket:
        logger.warning("storage_not_configured")
        return None

    boto_config = BotoConfig(
        region_name=s.region,
        signature_version="s3v4",
        retries={"max_attempts": s.max_retry_attempts, "mode": "standard"},
        connect_timeout=s.timeout,
        read_timeout=s.timeout,
    )
    client_args = {"service_name": "s3", "config": boto_config}
    if s.aws_access_key_id and s.aws_secret_access_key:
        client_args.update({
            "aws_access_key_id": s.aws_access_key_id,
            "aws_secret_access_key": s.aws_secret_access_key,
        })
    if s.endpoint:
        client_args["endpoint_url"] = s.endpoint

    client = boto3.client(**client_args)
    logger.info("storage_initialized", bucket=s.bucket, region=s.region)
    return S3Presigner(client, s.bucket)


__all__ = [
    "get_storage",
    "S3Presigner",
    "StorageError",
    "NotFoundError",
    "PermissionDeniedError",
    "TransientError",
]
