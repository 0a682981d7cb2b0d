"""Global enums — must match DB CHECK constraints exactly.

See alembic/versions/002_create_listings.py .. 005_create_order_events.py
"""

from enum import Enum


class ListingStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    SOLD_OUT = "sold_out"


class ReservationStatus(str, Enum):
    RESERVED = "reserved"
    RELEASED = "released"
    COMMITTED = "committed"


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUND_PENDING = "refund_pending"
    REFUNDED = "refunded"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    UPI = "upi"
    CARD = "card"
    NETBANKING = "netbanking"
    WALLET = "wallet"


class Role(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


class CancelReason(str, Enum):
    """Reasons the system itself writes; user-supplied reasons are free text."""
    TIMEOUT = "timeout"
    GATEWAY_ERROR = "gateway_error"
    BUYER_REQUEST = "buyer_request"


class OrderEventType(str, Enum):
    ORDER_CREATED = "ORDER_CREATED"
    INTENT_CREATED = "INTENT_CREATED"
    INTENT_FAILED = "INTENT_FAILED"
    PAYMENT_VERIFIED = "PAYMENT_VERIFIED"
    PAYMENT_REJECTED = "PAYMENT_REJECTED"
    PAYMENT_LATE = "PAYMENT_LATE"
    REFUND_REQUESTED = "REFUND_REQUESTED"
    REFUND_ISSUED = "REFUND_ISSUED"
    REFUND_FAILED = "REFUND_FAILED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_COMPLETED = "ORDER_COMPLETED"
