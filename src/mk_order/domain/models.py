"""Order aggregate — pure dataclasses, no SQLAlchemy dependency.

State is changed only through the transition methods below. Two independent
status fields are tracked because payment and fulfilment can diverge:

    status:          pending_payment -> confirmed -> completed
                     pending_payment -> cancelled
                     confirmed       -> cancelled        (refund path)
    payment_status:  pending -> paid -> refund_pending -> refunded
                     refund_pending -> paid               (refund refused)
                     pending -> failed

refund_pending holds the order while the gateway refund is in flight, so
nothing else (completion, a second cancel) can move it meanwhile.

completed and cancelled are terminal.
"""
from dataclasses import dataclass, field
from datetime import datetime

from src.mk_common.datetime_utils import utc_now
from src.mk_common.enums import OrderStatus, PaymentStatus, Role
from src.mk_common.errors import (
    EmptyCartError,
    InternalError,
    InvalidTransitionError,
    OrderNotCancellableError,
    PaymentConflictError,
    RefundRequiredError,
)

_TERMINAL = (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


@dataclass(frozen=True)
class ShippingAddress:
    name: str
    phone: str
    line1: str
    city: str
    state: str
    postal_code: str
    line2: str | None = None


@dataclass
class OrderItem:
    line_no: int
    listing_id: str
    seller_id: str
    title: str
    quantity: int
    unit_price: int      # paise, locked at order time
    line_total: int      # paise
    reservation_id: str | None = None


@dataclass
class Order:
    id: str
    buyer_id: str
    items: list[OrderItem]
    total_amount: int    # paise, sum of line totals at creation, never recomputed
    shipping_address: ShippingAddress
    payment_method: str
    currency: str = "INR"
    status: str = OrderStatus.PENDING_PAYMENT
    payment_status: str = PaymentStatus.PENDING
    cancel_reason: str | None = None
    # Gateway references, kept forever for audit
    gateway_order_id: str | None = None
    gateway_payment_id: str | None = None
    payment_signature: str | None = None
    gateway_refund_id: str | None = None
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    completed_at: datetime | None = None
    seller_ids: list[str] = field(init=False)

    def __post_init__(self) -> None:
        seen: list[str] = []
        for item in self.items:
            if item.seller_id not in seen:
                seen.append(item.seller_id)
        self.seller_ids = seen

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        order_id: str,
        buyer_id: str,
        items: list[OrderItem],
        address: ShippingAddress,
        payment_method: str,
        currency: str = "INR",
    ) -> "Order":
        if not items:
            raise EmptyCartError()
        for item in items:
            if item.line_total != item.unit_price * item.quantity:
                raise InternalError(f"Line {item.line_no} total does not match price x quantity")
        now = utc_now()
        return cls(
            id=order_id,
            buyer_id=buyer_id,
            items=items,
            total_amount=sum(i.line_total for i in items),
            shipping_address=address,
            payment_method=payment_method,
            currency=currency,
            created_at=now,
            updated_at=now,
        )

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in _TERMINAL

    @property
    def is_awaiting_payment(self) -> bool:
        return (
            self.status == OrderStatus.PENDING_PAYMENT
            and self.payment_status == PaymentStatus.PENDING
        )

    @property
    def reservation_ids(self) -> list[str]:
        return [i.reservation_id for i in self.items if i.reservation_id]

    def is_party(self, user_id: str, role: str) -> bool:
        """Buyer, a seller with a line in this order, or an admin."""
        if role == Role.ADMIN:
            return True
        return user_id == self.buyer_id or user_id in self.seller_ids

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def attach_intent(self, gateway_order_id: str) -> None:
        if not self.is_awaiting_payment:
            self._reject("attach intent")
        self.gateway_order_id = gateway_order_id
        self.updated_at = utc_now()

    def mark_paid(self, gateway_payment_id: str, signature: str | None) -> bool:
        """Returns False when this exact payment was already applied (duplicate delivery)."""
        if self.payment_status == PaymentStatus.PAID:
            if self.gateway_payment_id == gateway_payment_id:
                return False
            raise PaymentConflictError(self.id)
        if not self.is_awaiting_payment:
            self._reject("mark paid")
        now = utc_now()
        self.status = OrderStatus.CONFIRMED
        self.payment_status = PaymentStatus.PAID
        self.gateway_payment_id = gateway_payment_id
        self.payment_signature = signature
        self.paid_at = now
        self.updated_at = now
        return True

    def fail_payment(self, reason: str) -> None:
        if not self.is_awaiting_payment:
            self._reject("fail payment")
        now = utc_now()
        self.status = OrderStatus.CANCELLED
        self.payment_status = PaymentStatus.FAILED
        self.cancel_reason = reason
        self.cancelled_at = now
        self.updated_at = now

    def ensure_cancellable(self) -> None:
        if self.is_terminal:
            raise OrderNotCancellableError(self.id, self.status)

    def begin_refund(self) -> None:
        self.ensure_cancellable()
        if self.payment_status != PaymentStatus.PAID:
            self._reject("begin refund")
        self.payment_status = PaymentStatus.REFUND_PENDING
        self.updated_at = utc_now()

    def abort_refund(self) -> None:
        if self.payment_status != PaymentStatus.REFUND_PENDING:
            self._reject("abort refund")
        self.payment_status = PaymentStatus.PAID
        self.updated_at = utc_now()

    def cancel(self, reason: str, refund_id: str | None = None) -> None:
        """Cancel; a paid order needs the id of an already-successful gateway refund."""
        self.ensure_cancellable()
        if self.payment_status in (PaymentStatus.PAID, PaymentStatus.REFUND_PENDING):
            if not refund_id:
                raise RefundRequiredError(self.id)
            self.payment_status = PaymentStatus.REFUNDED
            self.gateway_refund_id = refund_id
        now = utc_now()
        self.status = OrderStatus.CANCELLED
        self.cancel_reason = reason
        self.cancelled_at = now
        self.updated_at = now

    def complete(self) -> None:
        if self.status != OrderStatus.CONFIRMED or self.payment_status != PaymentStatus.PAID:
            self._reject("complete")
        now = utc_now()
        self.status = OrderStatus.COMPLETED
        self.completed_at = now
        self.updated_at = now

    def _reject(self, action: str) -> None:
        raise InvalidTransitionError(self.id, action, self.status, self.payment_status)
