"""S3 presigned download URLs for order attachments."""
from functools import partial
from typing import Any, Optional

import anyio

from application.ports.storage import PresignedURL, StoragePort
from core.logging_config import get_logger
from .exceptions import (
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    TransientError,
)

logger = get_logger(__name__)


class S3Presigner(StoragePort):
    """Signs GET/PUT URLs with a boto3 S3 client; the SDK is sync so calls run in a thread."""

    def __init__(self, client: Any, bucket: str):
        self.client = client
        self.bucket = bucket

    async def generate_presigned_url(
        self,
        key: str,
        expires_in: int = 3600,
        method: str = "GET",
        response_content_disposition: Optional[str] = None,
    ) -> PresignedURL:
        method = method.upper()
        if method not in {"GET", "PUT"}:
            raise StorageError(f"Unsupported presign method: {method}")

        params = {"Bucket": self.bucket, "Key": key}
        if method == "GET" and response_content_disposition:
            params["ResponseContentDisposition"] = response_content_disposition
        try:
            url = await anyio.to_thread.run_sync(
                partial(
                    self.client.generate_presigned_url,
                    ClientMethod="get_object" if method == "GET" else "put_object",
                    Params=params,
                    ExpiresIn=expires_in,
                )
            )
        except Exception as e:
            self._handle_exception(e, key)

        logger.info("storage_url_presigned", key=key, method=method, expires_in=expires_in)
        return PresignedURL(url=url, method=method, expires_in=expires_in)

    def _handle_exception(self, e: Exception, key: str) -> None:
        error_code = getattr(e, "response", {}).get("Error", {}).get("Code", "")

        if error_code in ["NoSuchKey", "404"]:
            raise NotFoundError(f"Attachment not found: {key}", key=key) from e
        elif error_code in ["AccessDenied", "403"]:
            raise PermissionDeniedError(f"Access denied to attachment: {key}", key=key) from e
        elif error_code in ["RequestTimeout", "SlowDown", "ServiceUnavailable"]:
            raise TransientError(f"Storage busy while signing {key}: {e}", key=key) from e
        else:
            raise StorageError(f"Could not sign {key}: {e}", key=key) from e
