"""
Ports for the subsystems the order lifecycle only calls into.

Chat rooms, notifications and profile statistics are owned elsewhere; the
lifecycle invokes them after the status write has committed and treats every
failure as recoverable.
"""
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class ChatPort(Protocol):
    async def create_room(self, order_id: str, client_id: str, freelancer_id: str) -> str: ...

    async def schedule_closure(self, order_id: str, delay: timedelta) -> None: ...


@runtime_checkable
class NotificationPort(Protocol):
    async def notify(
        self, user_id: str, event_type: str, context: Optional[dict[str, Any]] = None
    ) -> None: ...


@runtime_checkable
class StatsPort(Protocol):
    """Additive counters; replay protection comes from the single completion transition."""

    async def increment_freelancer_earnings(self, freelancer_id: str, amount: Decimal) -> None: ...

    async def increment_client_spend(self, client_id: str, amount: Decimal) -> None: ...
