"""Payment domain models — what we keep of the gateway's entities."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class PaymentIntent:
    """Gateway-side order the client completes payment against."""

    gateway_order_id: str
    client_key: str     # public key id the client checkout is opened with
    amount: int         # paise
    currency: str


@dataclass(frozen=True)
class GatewayPayment:
    id: str
    gateway_order_id: str | None
    amount: int            # paise
    amount_refunded: int   # paise
    captured: bool
    status: str
    created_at: datetime

    @property
    def refundable(self) -> int:
        return self.amount - self.amount_refunded if self.captured else 0
