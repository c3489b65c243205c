"""Application-owned storage port abstraction (hexagonal architecture).

Attachments are opaque keys to the order flow; the only storage operation it needs
is a time-limited download URL for a legitimate party of the order.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable
from dataclasses import dataclass, field


@dataclass
class PresignedURL:
    url: str
    method: str = "GET"
    expires_in: int = 0
    headers: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class StoragePort(Protocol):
    async def generate_presigned_url(
        self,
        key: str,
        expires_in: int = 3600,
        method: str = "GET",
        response_content_disposition: Optional[str] = None,
    ) -> PresignedURL: ...
