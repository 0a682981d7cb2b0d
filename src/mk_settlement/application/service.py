"""SettlementService — sequences catalog, ledger, orders and the payment gateway.

This is the only place that performs compensating actions (stock releases,
refunds). Lower layers raise typed errors and never roll back on their own.

Transaction boundaries (the service owns them, `db.commit()` / `db.rollback()`):

  create_order   each reservation commits on its own (saga step); the order
                 row commits before the gateway call; no transaction is open
                 across network I/O.
  confirm        reservation commits + order update commit together.
  cancel         a paid order is moved to refund_pending before the gateway
                 refund; the refund is recorded (committed) before the
                 order is cancelled.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import Settings
from src.mk_catalog.domain.models import CartLine
from src.mk_catalog.domain.pricing import merge_lines, price_cart
from src.mk_catalog.domain.repository import ListingRepositoryProtocol
from src.mk_common.datetime_utils import minutes_ago
from src.mk_common.enums import CancelReason, OrderEventType, PaymentMethod, PaymentStatus
from src.mk_common.errors import (
    AlreadyCommittedError,
    AppError,
    ConcurrentUpdateError,
    EmptyCartError,
    GatewayRejectedError,
    GatewayUnavailableError,
    NotAuthorizedError,
    OrderNotFoundError,
    OrderTerminalError,
    PaymentConflictError,
    PaymentVerificationFailedError,
    RefundFailedError,
    ReservationReleasedError,
)
from src.mk_common.id_generator import generate_order_id
from src.mk_gateway.auth.principal import Principal
from src.mk_inventory.domain.models import Reservation
from src.mk_inventory.domain.repository import InventoryLedgerProtocol
from src.mk_order.domain.models import Order, OrderItem, ShippingAddress
from src.mk_order.domain.repository import OrderRepositoryProtocol
from src.mk_payment.domain.gateway import PaymentGatewayProtocol
from src.mk_payment.domain.models import PaymentIntent
from src.mk_payment.domain.upi import build_upi_link
from src.mk_payment.domain.webhook import WebhookEvent
from src.mk_settlement.infrastructure.notifier import NotifierProtocol

logger = logging.getLogger(__name__)

_SWEEP_BATCH = 100
_SETTLE_ATTEMPTS = 3
_PAYMENT_APPLIED = (PaymentStatus.PAID, PaymentStatus.REFUND_PENDING)


@dataclass(frozen=True)
class CreatedOrder:
    order: Order
    intent: PaymentIntent
    upi_link: str | None = None


@dataclass(frozen=True)
class OrderPage:
    orders: list[Order]
    next_cursor: str | None
    has_more: bool


class SettlementService:
    def __init__(
        self,
        listings: ListingRepositoryProtocol,
        ledger: InventoryLedgerProtocol,
        orders: OrderRepositoryProtocol,
        gateway: PaymentGatewayProtocol,
        notifier: NotifierProtocol,
        settings: Settings,
    ) -> None:
        self._listings = listings
        self._ledger = ledger
        self._orders = orders
        self._gateway = gateway
        self._notifier = notifier
        self._currency = settings.CURRENCY
        self._auto_capture = settings.GATEWAY_AUTO_CAPTURE
        self._payment_timeout_minutes = settings.ORDER_PAYMENT_TIMEOUT_MINUTES
        self._upi_vpa = settings.UPI_VPA
        self._upi_payee = settings.UPI_PAYEE_NAME
        self._notifications: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Create order
    # ------------------------------------------------------------------

    async def create_order(
        self,
        buyer: Principal,
        lines: Sequence[CartLine],
        address: ShippingAddress,
        payment_method: str,
        db: AsyncSession,
    ) -> CreatedOrder:
        if not lines:
            raise EmptyCartError()
        cart = merge_lines(lines)
        listings = await self._listings.get_many([line.listing_id for line in cart], db)
        priced = price_cart(cart, listings)

        reservations = await self._reserve_all(priced.lines, db)

        items = [
            OrderItem(
                line_no=n,
                listing_id=line.listing_id,
                seller_id=line.seller_id,
                title=line.title,
                quantity=line.quantity,
                unit_price=line.unit_price,
                line_total=line.line_total,
                reservation_id=res.id,
            )
            for n, (line, res) in enumerate(zip(priced.lines, reservations, strict=True), start=1)
        ]
        order = Order.create(
            generate_order_id(), buyer.user_id, items, address, payment_method, self._currency
        )
        try:
            await self._orders.save(order, db)
            await self._ledger.attach_order([r.id for r in reservations], order.id, db)
            await self._orders.record_event(
                order.id,
                OrderEventType.ORDER_CREATED,
                {"total_amount": order.total_amount, "seller_ids": order.seller_ids},
                db,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            await self._compensate([r.id for r in reservations], db)
            raise

        try:
            intent = await self._gateway.create_intent(
                order.id,
                order.total_amount,
                order.currency,
                notes={"buyer_id": order.buyer_id, "seller_ids": ",".join(order.seller_ids)},
            )
        except (GatewayUnavailableError, GatewayRejectedError) as exc:
            await self._abandon_unpaid(order, exc, db)
            raise

        order.attach_intent(intent.gateway_order_id)
        await self._persist(
            order,
            OrderEventType.INTENT_CREATED,
            {"gateway_order_id": intent.gateway_order_id},
            db,
        )
        logger.info(
            "order %s created: buyer=%s lines=%d total=%d intent=%s",
            order.id, order.buyer_id, len(order.items), order.total_amount,
            intent.gateway_order_id,
        )
        self._notify("order_created", order)
        return CreatedOrder(order=order, intent=intent, upi_link=self._upi_link(order))

    def _upi_link(self, order: Order) -> str | None:
        if order.payment_method != PaymentMethod.UPI or not self._upi_vpa:
            return None
        return build_upi_link(
            self._upi_vpa,
            self._upi_payee,
            order.total_amount,
            reference=order.id,
            note=f"Order {order.id}",
            currency=order.currency,
        )

    async def _reserve_all(self, lines: Sequence[Any], db: AsyncSession) -> list[Reservation]:
        """All-or-nothing across lines: on the first failure every earlier hold is released."""
        held: list[Reservation] = []
        try:
            for line in lines:
                held.append(await self._ledger.reserve(line.listing_id, line.quantity, db))
                await db.commit()
        except Exception:
            await db.rollback()
            if held:
                logger.info("reservation failed after %d line(s); releasing", len(held))
                await self._compensate([r.id for r in held], db)
            raise
        return held

    async def _compensate(self, reservation_ids: Sequence[str], db: AsyncSession) -> None:
        # Never masks the error that triggered compensation. A hold left open
        # here is logged; unattached ones are also reclaimed by the sweep.
        for rid in reservation_ids:
            try:
                await self._ledger.release(rid, db)
                await db.commit()
            except Exception:
                await db.rollback()
                logger.exception("compensating release failed for reservation %s", rid)

    async def _abandon_unpaid(self, order: Order, cause: AppError, db: AsyncSession) -> None:
        logger.warning("intent creation failed for order %s: %s", order.id, cause.message)
        await self._compensate(order.reservation_ids, db)
        order.fail_payment(CancelReason.GATEWAY_ERROR)
        await self._persist(
            order,
            OrderEventType.INTENT_FAILED,
            {"code": cause.code, "message": cause.message},
            db,
        )

    # ------------------------------------------------------------------
    # Confirm payment
    # ------------------------------------------------------------------

    async def confirm_payment(
        self,
        order_id: str,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature_hex: str,
        db: AsyncSession,
    ) -> Order:
        # Verify before looking anything up: the answer to a forged callback
        # must be the same whether or not the order exists.
        if not self._gateway.verify_callback(gateway_order_id, gateway_payment_id, signature_hex):
            logger.warning(
                "payment signature rejected: order=%s gateway_order=%s payment=%s",
                order_id, gateway_order_id, gateway_payment_id,
            )
            await self._record_rejection(order_id, gateway_order_id, gateway_payment_id, db)
            raise PaymentVerificationFailedError()

        order = await self._orders.get_by_id(order_id, db)
        if order is None or order.gateway_order_id != gateway_order_id:
            raise OrderNotFoundError(order_id)
        return await self._apply_payment(order, gateway_payment_id, signature_hex, db)

    async def handle_webhook(
        self, raw_body: bytes, signature_hex: str | None, db: AsyncSession
    ) -> Order | None:
        """Gateway webhook. Returns the affected order, or None when there is nothing to do.

        Anything other than a bad signature is acknowledged so the gateway
        stops redelivering; the outcome is in the logs and order_events.
        """
        if not self._gateway.verify_webhook(raw_body, signature_hex):
            logger.warning("webhook signature rejected")
            raise PaymentVerificationFailedError()
        try:
            event = WebhookEvent.model_validate_json(raw_body)
        except ValidationError:
            logger.warning("webhook body not understood; ignoring")
            return None

        payment = event.payment
        if payment is None or payment.order_id is None:
            return None
        order = await self._orders.get_by_gateway_order_id(payment.order_id, db)
        if order is None:
            logger.warning(
                "webhook %s for unknown gateway order %s (payment %s)",
                event.event, payment.order_id, payment.id,
            )
            return None
        try:
            return await self._apply_payment(order, payment.id, None, db)
        except (OrderTerminalError, PaymentConflictError) as exc:
            logger.error("webhook payment %s not applied: %s", payment.id, exc.message)
            return None

    async def _apply_payment(
        self, order: Order, gateway_payment_id: str, signature_hex: str | None, db: AsyncSession
    ) -> Order:
        # Client redirect and webhook can race; the loser re-reads once.
        for _ in range(2):
            if order.payment_status in _PAYMENT_APPLIED:
                if order.gateway_payment_id == gateway_payment_id:
                    return order
                logger.error(
                    "order %s already paid by %s, second payment %s arrived",
                    order.id, order.gateway_payment_id, gateway_payment_id,
                )
                raise PaymentConflictError(order.id)
            if not order.is_awaiting_payment:
                await self._record_late_payment(order, gateway_payment_id, db)
                raise OrderTerminalError(order.id, order.status)

            if not self._auto_capture:
                await self._gateway.capture(gateway_payment_id, order.total_amount, order.currency)

            try:
                for rid in order.reservation_ids:
                    await self._ledger.commit(rid, db)
                order.mark_paid(gateway_payment_id, signature_hex)
                if await self._orders.update(order, db):
                    await self._orders.record_event(
                        order.id,
                        OrderEventType.PAYMENT_VERIFIED,
                        {"gateway_payment_id": gateway_payment_id},
                        db,
                    )
                    await db.commit()
                    logger.info("order %s paid by %s", order.id, gateway_payment_id)
                    self._notify("order_confirmed", order)
                    return order
                await db.rollback()
            except ReservationReleasedError:
                # The sweep cancelled the order between our read and now.
                await db.rollback()
            except Exception:
                await db.rollback()
                raise

            fresh = await self._orders.get_by_id(order.id, db)
            if fresh is None:
                raise OrderNotFoundError(order.id)
            order = fresh
        raise ConcurrentUpdateError(order.id)

    async def _record_rejection(
        self, order_id: str, gateway_order_id: str, gateway_payment_id: str, db: AsyncSession
    ) -> None:
        order = await self._orders.get_by_id(order_id, db)
        if order is None or order.gateway_order_id != gateway_order_id:
            return
        await self._orders.record_event(
            order.id,
            OrderEventType.PAYMENT_REJECTED,
            {"gateway_payment_id": gateway_payment_id},
            db,
        )
        await db.commit()

    async def _record_late_payment(
        self, order: Order, gateway_payment_id: str, db: AsyncSession
    ) -> None:
        logger.error(
            "verified payment %s for order %s in state (%s, %s); needs manual refund",
            gateway_payment_id, order.id, order.status, order.payment_status,
        )
        await self._orders.record_event(
            order.id,
            OrderEventType.PAYMENT_LATE,
            {"gateway_payment_id": gateway_payment_id, "status": order.status},
            db,
        )
        await db.commit()

    # ------------------------------------------------------------------
    # Cancel / refund, complete
    # ------------------------------------------------------------------

    async def cancel_order(
        self, order_id: str, principal: Principal, reason: str | None, db: AsyncSession
    ) -> Order:
        order = await self._get_as_party(order_id, principal, db)
        order.ensure_cancellable()
        reason = reason or CancelReason.BUYER_REQUEST

        if order.payment_status == PaymentStatus.PENDING:
            try:
                for rid in order.reservation_ids:
                    await self._ledger.release(rid, db)
            except AlreadyCommittedError:
                # payment landed while we were cancelling
                await db.rollback()
                raise ConcurrentUpdateError(order.id) from None
            order.cancel(reason)
            await self._persist(
                order,
                OrderEventType.ORDER_CANCELLED,
                {"reason": reason, "by": principal.user_id, "refund_id": None},
                db,
            )
        else:
            order = await self._cancel_with_refund(order, principal, reason, db)

        logger.info("order %s cancelled by %s: %s", order.id, principal.user_id, reason)
        self._notify("order_cancelled", order)
        return order

    async def _cancel_with_refund(
        self, order: Order, principal: Principal, reason: str, db: AsyncSession
    ) -> Order:
        """Claim the refund on the order, refund, then cancel.

        The claim is a versioned write, so a concurrent completion or second
        cancel loses before any money moves. Once the gateway has refunded,
        the cancellation is re-applied until it lands.
        """
        order.begin_refund()
        await self._persist(
            order,
            OrderEventType.REFUND_REQUESTED,
            {"amount": order.total_amount, "by": principal.user_id},
            db,
        )
        refund_id = await self._refund(order, reason, db)
        return await self._settle(
            order,
            lambda o: o.cancel(reason, refund_id),
            OrderEventType.ORDER_CANCELLED,
            {"reason": reason, "by": principal.user_id, "refund_id": refund_id},
            db,
        )

    async def _refund(self, order: Order, reason: str, db: AsyncSession) -> str:
        """Refund the full amount; on a gateway refusal the order goes back to paid."""
        assert order.gateway_payment_id is not None
        try:
            refund_id = await self._gateway.refund(order.gateway_payment_id, order.total_amount, reason)
        except AppError as exc:
            logger.error("refund failed for order %s: %s", order.id, exc.message)
            await self._settle(
                order,
                Order.abort_refund,
                OrderEventType.REFUND_FAILED,
                {"code": exc.code, "message": exc.message},
                db,
            )
            raise RefundFailedError(order.id, exc.message) from exc

        await self._orders.record_event(
            order.id,
            OrderEventType.REFUND_ISSUED,
            {"refund_id": refund_id, "amount": order.total_amount},
            db,
        )
        await db.commit()
        return refund_id

    async def complete_order(self, order_id: str, principal: Principal, db: AsyncSession) -> Order:
        order = await self._get_as_party(order_id, principal, db)
        if not principal.is_admin and principal.user_id not in order.seller_ids:
            raise NotAuthorizedError("Only a seller on this order can complete it")
        order.complete()
        await self._persist(order, OrderEventType.ORDER_COMPLETED, {"by": principal.user_id}, db)
        self._notify("order_completed", order)
        return order

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_order(self, order_id: str, principal: Principal, db: AsyncSession) -> Order:
        return await self._get_as_party(order_id, principal, db)

    async def list_orders(
        self,
        principal: Principal,
        buyer_id: str | None,
        seller_id: str | None,
        status: str | None,
        limit: int,
        cursor: str | None,
        db: AsyncSession,
    ) -> OrderPage:
        if not principal.is_admin:
            if buyer_id and buyer_id != principal.user_id:
                raise NotAuthorizedError("Cannot list another buyer's orders")
            if seller_id and seller_id != principal.user_id:
                raise NotAuthorizedError("Cannot list another seller's orders")
            if not buyer_id and not seller_id:
                if principal.is_seller:
                    seller_id = principal.user_id
                else:
                    buyer_id = principal.user_id

        # Fetch limit+1 to detect has_more without a COUNT(*) query
        if seller_id:
            orders = await self._orders.list_for_seller(seller_id, status, limit + 1, cursor, db)
        elif buyer_id:
            orders = await self._orders.list_for_buyer(buyer_id, status, limit + 1, cursor, db)
        else:
            orders = await self._orders.list_all(status, limit + 1, cursor, db)

        has_more = len(orders) > limit
        page = orders[:limit]
        next_cursor = page[-1].id if has_more and page else None
        return OrderPage(orders=page, next_cursor=next_cursor, has_more=has_more)

    async def _get_as_party(self, order_id: str, principal: Principal, db: AsyncSession) -> Order:
        order = await self._orders.get_by_id(order_id, db)
        if order is None:
            raise OrderNotFoundError(order_id)
        if not order.is_party(principal.user_id, principal.role):
            raise NotAuthorizedError()
        return order

    # ------------------------------------------------------------------
    # Abandoned-order sweep
    # ------------------------------------------------------------------

    async def sweep_abandoned(self, db: AsyncSession, now: datetime | None = None) -> int:
        """Cancel pending_payment orders idle past the timeout and return their stock.

        Safe alongside live traffic: only orders whose updated_at is older
        than the cutoff are touched, and the versioned update loses to any
        concurrent confirmation.
        """
        cutoff = minutes_ago(self._payment_timeout_minutes, now)
        swept = 0
        for order in await self._orders.list_stale_pending(cutoff, _SWEEP_BATCH, db):
            try:
                for rid in order.reservation_ids:
                    await self._ledger.release(rid, db)
                order.cancel(CancelReason.TIMEOUT)
                if not await self._orders.update(order, db):
                    await db.rollback()
                    continue
                await self._orders.record_event(
                    order.id, OrderEventType.ORDER_CANCELLED, {"reason": CancelReason.TIMEOUT}, db
                )
                await db.commit()
            except AlreadyCommittedError:
                # paid between the read and the release
                await db.rollback()
                continue
            except AppError:
                await db.rollback()
                logger.exception("sweep could not cancel order %s", order.id)
                continue
            swept += 1
            self._notify("order_cancelled", order)

        for reservation in await self._ledger.list_stale_orphans(cutoff, _SWEEP_BATCH, db):
            try:
                await self._ledger.release(reservation.id, db)
                await db.commit()
            except AppError:
                await db.rollback()
                logger.exception("sweep could not release orphan reservation %s", reservation.id)

        if swept:
            logger.info("sweep cancelled %d abandoned order(s) older than %s", swept, cutoff)
        return swept

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _persist(
        self, order: Order, event: OrderEventType, payload: dict[str, Any], db: AsyncSession
    ) -> None:
        """Versioned write of the order plus its audit event, in one commit."""
        try:
            if not await self._orders.update(order, db):
                raise ConcurrentUpdateError(order.id)
            await self._orders.record_event(order.id, event, payload, db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    async def _settle(
        self,
        order: Order,
        apply: Callable[[Order], None],
        event: OrderEventType,
        payload: dict[str, Any],
        db: AsyncSession,
    ) -> Order:
        """Like _persist, but re-reads and re-applies on a version conflict."""
        for _ in range(_SETTLE_ATTEMPTS):
            apply(order)
            try:
                if await self._orders.update(order, db):
                    await self._orders.record_event(order.id, event, payload, db)
                    await db.commit()
                    return order
                await db.rollback()
            except Exception:
                await db.rollback()
                raise
            fresh = await self._orders.get_by_id(order.id, db)
            if fresh is None:
                raise OrderNotFoundError(order.id)
            order = fresh
        logger.error("order %s: %s not written after %d attempts", order.id, event, _SETTLE_ATTEMPTS)
        raise ConcurrentUpdateError(order.id)

    def _notify(self, event: str, order: Order) -> None:
        task = asyncio.create_task(self._send(event, order))
        self._notifications.add(task)
        task.add_done_callback(self._notifications.discard)

    async def _send(self, event: str, order: Order) -> None:
        try:
            await self._notifier.notify(event, order)
        except Exception:
            logger.exception("notification %s for order %s failed", event, order.id)

    async def drain_notifications(self) -> None:
        """Wait for in-flight notifications (shutdown, tests)."""
        if self._notifications:
            await asyncio.gather(*self._notifications, return_exceptions=True)
