# src/mk_order/infrastructure/persistence.py
"""OrderRepository — raw SQL persistence implementation."""
import json
from dataclasses import asdict
from datetime import datetime
from typing import Any

from sqlalchemy import bindparam, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_order.domain.models import Order, OrderItem, ShippingAddress

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_INSERT_ORDER_SQL = text("""
    INSERT INTO orders (id, buyer_id, total_amount, currency,
        shipping_address, payment_method, status, payment_status, version)
    VALUES (:id, :buyer_id, :total_amount, :currency,
        :shipping_address, :payment_method, :status, :payment_status, 0)
    RETURNING created_at, updated_at
""").bindparams(bindparam("shipping_address", type_=JSONB))

_INSERT_ITEM_SQL = text("""
    INSERT INTO order_items (order_id, line_no, listing_id, seller_id, title,
        quantity, unit_price, line_total, reservation_id)
    VALUES (:order_id, :line_no, :listing_id, :seller_id, :title,
        :quantity, :unit_price, :line_total, :reservation_id)
""")

# Optimistic lock: a stale version matches no row.
_UPDATE_ORDER_SQL = text("""
    UPDATE orders
    SET status = :status, payment_status = :payment_status,
        cancel_reason = :cancel_reason,
        gateway_order_id = :gateway_order_id,
        gateway_payment_id = :gateway_payment_id,
        payment_signature = :payment_signature,
        gateway_refund_id = :gateway_refund_id,
        paid_at = :paid_at, cancelled_at = :cancelled_at, completed_at = :completed_at,
        version = version + 1, updated_at = NOW()
    WHERE id = :id AND version = :version
    RETURNING version, updated_at
""")

_SELECT_COLUMNS = """
    id, buyer_id, total_amount, currency, shipping_address, payment_method,
    status, payment_status, cancel_reason,
    gateway_order_id, gateway_payment_id, payment_signature, gateway_refund_id,
    version, created_at, updated_at, paid_at, cancelled_at, completed_at
"""

_GET_ORDER_BY_ID_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders WHERE id = :id
""")

_GET_ORDER_BY_GATEWAY_ID_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders WHERE gateway_order_id = :gateway_order_id
""")

_GET_ITEMS_SQL = text("""
    SELECT order_id, line_no, listing_id, seller_id, title,
           quantity, unit_price, line_total, reservation_id
    FROM order_items WHERE order_id IN :order_ids
    ORDER BY order_id, line_no
""").bindparams(bindparam("order_ids", expanding=True))

_LIST_FOR_BUYER_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders
    WHERE buyer_id = :buyer_id
      AND (CAST(:status AS TEXT) IS NULL OR status = :status)
      AND (CAST(:cursor_id AS TEXT) IS NULL OR id < :cursor_id)
    ORDER BY id DESC
    LIMIT :limit
""")

_LIST_FOR_SELLER_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders
    WHERE EXISTS (
            SELECT 1 FROM order_items oi
            WHERE oi.order_id = orders.id AND oi.seller_id = :seller_id
          )
      AND (CAST(:status AS TEXT) IS NULL OR status = :status)
      AND (CAST(:cursor_id AS TEXT) IS NULL OR id < :cursor_id)
    ORDER BY id DESC
    LIMIT :limit
""")

_LIST_ALL_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders
    WHERE (CAST(:status AS TEXT) IS NULL OR status = :status)
      AND (CAST(:cursor_id AS TEXT) IS NULL OR id < :cursor_id)
    ORDER BY id DESC
    LIMIT :limit
""")

_LIST_STALE_PENDING_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders
    WHERE status = 'pending_payment' AND updated_at < :cutoff
    ORDER BY updated_at ASC
    LIMIT :limit
""")

_INSERT_EVENT_SQL = text("""
    INSERT INTO order_events (order_id, event_type, payload)
    VALUES (:order_id, :event_type, :payload)
""").bindparams(bindparam("payload", type_=JSONB))


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _load_json(raw: Any) -> dict[str, Any]:
    return raw if isinstance(raw, dict) else json.loads(raw)


def _row_to_item(row: Any) -> OrderItem:
    return OrderItem(
        line_no=row.line_no,
        listing_id=row.listing_id,
        seller_id=row.seller_id,
        title=row.title,
        quantity=row.quantity,
        unit_price=row.unit_price,
        line_total=row.line_total,
        reservation_id=row.reservation_id,
    )


def _row_to_order(row: Any, items: list[OrderItem]) -> Order:
    """Convert a DB result row plus its item rows to an Order domain object."""
    return Order(
        id=row.id,
        buyer_id=row.buyer_id,
        items=items,
        total_amount=row.total_amount,
        currency=row.currency,
        shipping_address=ShippingAddress(**_load_json(row.shipping_address)),
        payment_method=row.payment_method,
        status=row.status,
        payment_status=row.payment_status,
        cancel_reason=row.cancel_reason,
        gateway_order_id=row.gateway_order_id,
        gateway_payment_id=row.gateway_payment_id,
        payment_signature=row.payment_signature,
        gateway_refund_id=row.gateway_refund_id,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
        paid_at=row.paid_at,
        cancelled_at=row.cancelled_at,
        completed_at=row.completed_at,
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class OrderRepository:
    """Concrete implementation of OrderRepositoryProtocol using raw SQL."""

    async def save(self, order: Order, db: AsyncSession) -> None:
        result = await db.execute(
            _INSERT_ORDER_SQL,
            {
                "id": order.id,
                "buyer_id": order.buyer_id,
                "total_amount": order.total_amount,
                "currency": order.currency,
                "shipping_address": asdict(order.shipping_address),
                "payment_method": order.payment_method,
                "status": order.status,
                "payment_status": order.payment_status,
            },
        )
        row = result.fetchone()
        if row is not None:
            order.created_at = row.created_at
            order.updated_at = row.updated_at
        await db.execute(
            _INSERT_ITEM_SQL,
            [{"order_id": order.id, **asdict(item)} for item in order.items],
        )

    async def get_by_id(self, order_id: str, db: AsyncSession) -> Order | None:
        result = await db.execute(_GET_ORDER_BY_ID_SQL, {"id": order_id})
        row = result.fetchone()
        if row is None:
            return None
        return (await self._attach_items([row], db))[0]

    async def get_by_gateway_order_id(
        self, gateway_order_id: str, db: AsyncSession
    ) -> Order | None:
        result = await db.execute(
            _GET_ORDER_BY_GATEWAY_ID_SQL, {"gateway_order_id": gateway_order_id}
        )
        row = result.fetchone()
        if row is None:
            return None
        return (await self._attach_items([row], db))[0]

    async def update(self, order: Order, db: AsyncSession) -> bool:
        result = await db.execute(
            _UPDATE_ORDER_SQL,
            {
                "id": order.id,
                "version": order.version,
                "status": order.status,
                "payment_status": order.payment_status,
                "cancel_reason": order.cancel_reason,
                "gateway_order_id": order.gateway_order_id,
                "gateway_payment_id": order.gateway_payment_id,
                "payment_signature": order.payment_signature,
                "gateway_refund_id": order.gateway_refund_id,
                "paid_at": order.paid_at,
                "cancelled_at": order.cancelled_at,
                "completed_at": order.completed_at,
            },
        )
        row = result.fetchone()
        if row is None:
            return False
        order.version = row.version
        order.updated_at = row.updated_at
        return True

    async def list_for_buyer(
        self, buyer_id: str, status: str | None, limit: int, cursor_id: str | None,
        db: AsyncSession,
    ) -> list[Order]:
        result = await db.execute(
            _LIST_FOR_BUYER_SQL,
            {"buyer_id": buyer_id, "status": status, "cursor_id": cursor_id, "limit": limit},
        )
        return await self._attach_items(result.fetchall(), db)

    async def list_for_seller(
        self, seller_id: str, status: str | None, limit: int, cursor_id: str | None,
        db: AsyncSession,
    ) -> list[Order]:
        result = await db.execute(
            _LIST_FOR_SELLER_SQL,
            {"seller_id": seller_id, "status": status, "cursor_id": cursor_id, "limit": limit},
        )
        return await self._attach_items(result.fetchall(), db)

    async def list_all(
        self, status: str | None, limit: int, cursor_id: str | None, db: AsyncSession
    ) -> list[Order]:
        result = await db.execute(
            _LIST_ALL_SQL, {"status": status, "cursor_id": cursor_id, "limit": limit}
        )
        return await self._attach_items(result.fetchall(), db)

    async def list_stale_pending(
        self, cutoff: datetime, limit: int, db: AsyncSession
    ) -> list[Order]:
        result = await db.execute(_LIST_STALE_PENDING_SQL, {"cutoff": cutoff, "limit": limit})
        return await self._attach_items(result.fetchall(), db)

    async def record_event(
        self, order_id: str, event_type: str, payload: dict[str, Any], db: AsyncSession
    ) -> None:
        await db.execute(
            _INSERT_EVENT_SQL,
            {"order_id": order_id, "event_type": event_type, "payload": payload},
        )

    async def _attach_items(self, rows: Any, db: AsyncSession) -> list[Order]:
        rows = list(rows)
        if not rows:
            return []
        result = await db.execute(_GET_ITEMS_SQL, {"order_ids": [r.id for r in rows]})
        items_by_order: dict[str, list[OrderItem]] = {}
        for item_row in result.fetchall():
            items_by_order.setdefault(item_row.order_id, []).append(_row_to_item(item_row))
        return [_row_to_order(r, items_by_order.get(r.id, [])) for r in rows]
