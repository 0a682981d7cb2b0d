"""InventoryLedger — concrete implementation of InventoryLedgerProtocol.

Stock moves with a single conditional PostgreSQL UPDATE ... RETURNING.
A result of 0 rows means the constraint was violated (not enough on hand, or
the reservation is no longer open); there is no read-then-write anywhere.

Transaction ownership: The CALLER (settlement service) commits or rolls back.
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.enums import ListingStatus, ReservationStatus
from src.mk_common.errors import (
    AlreadyCommittedError,
    InsufficientStockError,
    InternalError,
    ListingUnavailableError,
    ReservationNotFoundError,
    ReservationReleasedError,
)
from src.mk_common.id_generator import generate_id
from src.mk_inventory.domain.models import Reservation

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# SQL: listings stock
# ---------------------------------------------------------------------------

_TAKE_STOCK_SQL = text("""
    UPDATE listings
    SET quantity_on_hand = quantity_on_hand - :quantity,
        status = CASE WHEN quantity_on_hand - :quantity = 0
                      THEN 'sold_out' ELSE status END,
        updated_at = NOW()
    WHERE id = :listing_id
      AND status = 'active'
      AND quantity_on_hand >= :quantity
    RETURNING id, quantity_on_hand
""")

_RETURN_STOCK_SQL = text("""
    UPDATE listings
    SET quantity_on_hand = quantity_on_hand + :quantity,
        status = CASE WHEN status = 'sold_out' THEN 'active' ELSE status END,
        updated_at = NOW()
    WHERE id = :listing_id
    RETURNING id, quantity_on_hand
""")

_GET_STOCK_SQL = text("""
    SELECT status, quantity_on_hand FROM listings WHERE id = :listing_id
""")

# ---------------------------------------------------------------------------
# SQL: reservations
# ---------------------------------------------------------------------------

_RESERVATION_COLUMNS = "id, listing_id, order_id, quantity, status, created_at, updated_at"

_INSERT_RESERVATION_SQL = text(f"""
    INSERT INTO inventory_reservations (id, listing_id, quantity, status)
    VALUES (:id, :listing_id, :quantity, 'reserved')
    RETURNING {_RESERVATION_COLUMNS}
""")

_MARK_RELEASED_SQL = text(f"""
    UPDATE inventory_reservations
    SET status = 'released', updated_at = NOW()
    WHERE id = :id AND status = 'reserved'
    RETURNING {_RESERVATION_COLUMNS}
""")

_MARK_COMMITTED_SQL = text(f"""
    UPDATE inventory_reservations
    SET status = 'committed', updated_at = NOW()
    WHERE id = :id AND status = 'reserved'
    RETURNING {_RESERVATION_COLUMNS}
""")

_GET_RESERVATION_SQL = text(f"""
    SELECT {_RESERVATION_COLUMNS}
    FROM inventory_reservations WHERE id = :id
""")

_ATTACH_ORDER_SQL = text("""
    UPDATE inventory_reservations
    SET order_id = :order_id, updated_at = NOW()
    WHERE id IN :ids
""").bindparams(bindparam("ids", expanding=True))

_LIST_STALE_ORPHANS_SQL = text(f"""
    SELECT {_RESERVATION_COLUMNS}
    FROM inventory_reservations
    WHERE status = 'reserved' AND order_id IS NULL AND created_at < :cutoff
    ORDER BY created_at ASC
    LIMIT :limit
""")


def _row_to_reservation(row: Any) -> Reservation:
    return Reservation(
        id=row.id,
        listing_id=row.listing_id,
        order_id=row.order_id,
        quantity=row.quantity,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class InventoryLedger:
    """Concrete ledger — all stock movements atomic at the SQL level."""

    async def reserve(self, listing_id: str, quantity: int, db: AsyncSession) -> Reservation:
        result = await db.execute(
            _TAKE_STOCK_SQL, {"listing_id": listing_id, "quantity": quantity}
        )
        if result.fetchone() is None:
            stock = (await db.execute(_GET_STOCK_SQL, {"listing_id": listing_id})).fetchone()
            if stock is None or stock.status == ListingStatus.PAUSED:
                raise ListingUnavailableError(listing_id)
            raise InsufficientStockError(listing_id, quantity, stock.quantity_on_hand)

        res_result = await db.execute(
            _INSERT_RESERVATION_SQL,
            {"id": generate_id(), "listing_id": listing_id, "quantity": quantity},
        )
        row = res_result.fetchone()
        if row is None:
            raise InternalError("Reservation insert returned no rows — this should never happen")
        reservation = _row_to_reservation(row)
        logger.info(
            "reserved listing=%s qty=%d token=%s", listing_id, quantity, reservation.id
        )
        return reservation

    async def release(self, reservation_id: str, db: AsyncSession) -> bool:
        result = await db.execute(_MARK_RELEASED_SQL, {"id": reservation_id})
        row = result.fetchone()
        if row is None:
            existing = await self.get(reservation_id, db)
            if existing is None:
                raise ReservationNotFoundError(reservation_id)
            if existing.status == ReservationStatus.COMMITTED:
                raise AlreadyCommittedError(reservation_id)
            return False  # already released

        reservation = _row_to_reservation(row)
        await db.execute(
            _RETURN_STOCK_SQL,
            {"listing_id": reservation.listing_id, "quantity": reservation.quantity},
        )
        logger.info(
            "released listing=%s qty=%d token=%s",
            reservation.listing_id,
            reservation.quantity,
            reservation.id,
        )
        return True

    async def commit(self, reservation_id: str, db: AsyncSession) -> None:
        result = await db.execute(_MARK_COMMITTED_SQL, {"id": reservation_id})
        if result.fetchone() is not None:
            return
        existing = await self.get(reservation_id, db)
        if existing is None:
            raise ReservationNotFoundError(reservation_id)
        if existing.status == ReservationStatus.RELEASED:
            raise ReservationReleasedError(reservation_id)
        # already committed: duplicate confirmation

    async def attach_order(
        self, reservation_ids: Sequence[str], order_id: str, db: AsyncSession
    ) -> None:
        if not reservation_ids:
            return
        await db.execute(_ATTACH_ORDER_SQL, {"ids": list(reservation_ids), "order_id": order_id})

    async def get(self, reservation_id: str, db: AsyncSession) -> Reservation | None:
        result = await db.execute(_GET_RESERVATION_SQL, {"id": reservation_id})
        row = result.fetchone()
        return _row_to_reservation(row) if row else None

    async def list_stale_orphans(
        self, cutoff: datetime, limit: int, db: AsyncSession
    ) -> list[Reservation]:
        result = await db.execute(_LIST_STALE_ORPHANS_SQL, {"cutoff": cutoff, "limit": limit})
        return [_row_to_reservation(row) for row in result.fetchall()]
