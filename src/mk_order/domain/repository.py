# src/mk_order/domain/repository.py
"""OrderRepository Protocol — interface contract for persistence layer.

Read queries are explicit per use case; there is no generic "populate".
"""
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_order.domain.models import Order


class OrderRepositoryProtocol(Protocol):
    async def save(self, order: Order, db: AsyncSession) -> None: ...

    async def get_by_id(self, order_id: str, db: AsyncSession) -> Order | None: ...

    async def get_by_gateway_order_id(
        self, gateway_order_id: str, db: AsyncSession
    ) -> Order | None: ...

    async def update(self, order: Order, db: AsyncSession) -> bool:
        """Write status/gateway fields if `order.version` is current; bump version.

        Returns False when another writer got there first.
        """
        ...

    async def list_for_buyer(
        self, buyer_id: str, status: str | None, limit: int, cursor_id: str | None,
        db: AsyncSession,
    ) -> list[Order]: ...

    async def list_for_seller(
        self, seller_id: str, status: str | None, limit: int, cursor_id: str | None,
        db: AsyncSession,
    ) -> list[Order]: ...

    async def list_all(
        self, status: str | None, limit: int, cursor_id: str | None, db: AsyncSession
    ) -> list[Order]: ...

    async def list_stale_pending(
        self, cutoff: datetime, limit: int, db: AsyncSession
    ) -> list[Order]: ...

    async def record_event(
        self, order_id: str, event_type: str, payload: dict[str, Any], db: AsyncSession
    ) -> None: ...
