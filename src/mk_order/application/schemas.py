# src/mk_order/application/schemas.py
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.mk_catalog.domain.models import CartLine
from src.mk_common.enums import OrderStatus, PaymentMethod, PaymentStatus
from src.mk_order.domain.models import Order, OrderItem, ShippingAddress
from src.mk_payment.domain.models import PaymentIntent

MAX_LINE_QUANTITY = 10_000


class CartLineRequest(BaseModel):
    # Prices are never accepted from the client; extra="forbid" rejects a
    # "unit_price" sneaked into the body instead of silently ignoring it.
    model_config = ConfigDict(extra="forbid")

    listing_id: str = Field(min_length=1)
    quantity: int = Field(gt=0, le=MAX_LINE_QUANTITY)

    def to_domain(self) -> CartLine:
        return CartLine(listing_id=self.listing_id, quantity=self.quantity)


class ShippingAddressSchema(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    phone: str = Field(min_length=10, max_length=15)
    line1: str = Field(min_length=1, max_length=200)
    line2: str | None = Field(None, max_length=200)
    city: str = Field(min_length=1, max_length=80)
    state: str = Field(min_length=1, max_length=80)
    postal_code: str = Field(pattern=r"^[1-9][0-9]{5}$")

    @field_validator("phone")
    @classmethod
    def digits_only(cls, v: str) -> str:
        digits = v.removeprefix("+")
        if not digits.isdigit():
            raise ValueError("phone must contain digits only")
        return v

    def to_domain(self) -> ShippingAddress:
        return ShippingAddress(**self.model_dump())

    @classmethod
    def from_domain(cls, addr: ShippingAddress) -> "ShippingAddressSchema":
        return cls(
            name=addr.name,
            phone=addr.phone,
            line1=addr.line1,
            line2=addr.line2,
            city=addr.city,
            state=addr.state,
            postal_code=addr.postal_code,
        )


class CreateOrderRequest(BaseModel):
    lines: list[CartLineRequest] = Field(min_length=1, max_length=100)
    shipping_address: ShippingAddressSchema
    payment_method: PaymentMethod


class PaymentCallbackRequest(BaseModel):
    gateway_order_id: str = Field(min_length=1)
    gateway_payment_id: str = Field(min_length=1)
    signature: str = Field(min_length=1)


class CancelOrderRequest(BaseModel):
    reason: str | None = Field(None, max_length=200)


class OrderItemResponse(BaseModel):
    line_no: int
    listing_id: str
    seller_id: str
    title: str
    quantity: int
    unit_price: int
    line_total: int

    @classmethod
    def from_domain(cls, item: OrderItem) -> "OrderItemResponse":
        return cls(
            line_no=item.line_no,
            listing_id=item.listing_id,
            seller_id=item.seller_id,
            title=item.title,
            quantity=item.quantity,
            unit_price=item.unit_price,
            line_total=item.line_total,
        )


class OrderResponse(BaseModel):
    id: str
    buyer_id: str
    seller_ids: list[str]
    items: list[OrderItemResponse]
    total_amount: int
    currency: str
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    cancel_reason: str | None = None
    gateway_order_id: str | None = None
    gateway_payment_id: str | None = None
    gateway_refund_id: str | None = None
    shipping_address: ShippingAddressSchema
    created_at: datetime | None = None
    updated_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_domain(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            buyer_id=order.buyer_id,
            seller_ids=list(order.seller_ids),
            items=[OrderItemResponse.from_domain(i) for i in order.items],
            total_amount=order.total_amount,
            currency=order.currency,
            status=order.status,
            payment_status=order.payment_status,
            payment_method=order.payment_method,
            cancel_reason=order.cancel_reason,
            gateway_order_id=order.gateway_order_id,
            gateway_payment_id=order.gateway_payment_id,
            gateway_refund_id=order.gateway_refund_id,
            shipping_address=ShippingAddressSchema.from_domain(order.shipping_address),
            created_at=order.created_at,
            updated_at=order.updated_at,
            paid_at=order.paid_at,
            cancelled_at=order.cancelled_at,
            completed_at=order.completed_at,
        )


class PaymentIntentResponse(BaseModel):
    gateway_order_id: str
    key_id: str
    amount: int
    currency: str
    upi_link: str | None = None

    @classmethod
    def from_domain(
        cls, intent: PaymentIntent, upi_link: str | None = None
    ) -> "PaymentIntentResponse":
        return cls(
            gateway_order_id=intent.gateway_order_id,
            key_id=intent.client_key,
            amount=intent.amount,
            currency=intent.currency,
            upi_link=upi_link,
        )


class CreateOrderResponse(BaseModel):
    order: OrderResponse
    payment: PaymentIntentResponse


class OrderListResponse(BaseModel):
    items: list[OrderResponse]
    next_cursor: str | None
    has_more: bool
