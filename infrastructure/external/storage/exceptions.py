"""Attachment storage failures, mapped from S3 error codes."""
from typing import Optional


class StorageError(Exception):
    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class NotFoundError(StorageError):
    """Object key missing from the bucket."""


class PermissionDeniedError(StorageError):
    pass


class TransientError(StorageError):
    """Throttling or a 5xx from the storage service; safe to ask again."""
