"""InventoryLedger Protocol — dependency inversion for testability.

Implementations surface typed errors and never roll anything back on their
own; compensation belongs to the settlement orchestrator.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_inventory.domain.models import Reservation


class InventoryLedgerProtocol(Protocol):
    async def reserve(self, listing_id: str, quantity: int, db: AsyncSession) -> Reservation:
        """Take `quantity` off hand atomically. Raises InsufficientStockError."""
        ...

    async def release(self, reservation_id: str, db: AsyncSession) -> bool:
        """Return stock. True if stock went back now, False if already released."""
        ...

    async def commit(self, reservation_id: str, db: AsyncSession) -> None: ...

    async def attach_order(
        self, reservation_ids: Sequence[str], order_id: str, db: AsyncSession
    ) -> None: ...

    async def get(self, reservation_id: str, db: AsyncSession) -> Reservation | None: ...

    async def list_stale_orphans(
        self, cutoff: datetime, limit: int, db: AsyncSession
    ) -> list[Reservation]:
        """Open reservations never linked to an order (crash between reserve and save)."""
        ...
