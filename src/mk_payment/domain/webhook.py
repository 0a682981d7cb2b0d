"""Gateway webhook envelope — only the fields settlement reads.

Parsed only after the body's HMAC has been verified.
"""

from pydantic import BaseModel, ConfigDict

PAYMENT_EVENTS = ("payment.authorized", "payment.captured")


class _Loose(BaseModel):
    model_config = ConfigDict(extra="ignore")


class WebhookPaymentEntity(_Loose):
    id: str
    order_id: str | None = None
    amount: int
    currency: str
    status: str


class _PaymentWrapper(_Loose):
    entity: WebhookPaymentEntity


class _Payload(_Loose):
    payment: _PaymentWrapper | None = None


class WebhookEvent(_Loose):
    event: str
    payload: _Payload

    @property
    def payment(self) -> WebhookPaymentEntity | None:
        if self.event not in PAYMENT_EVENTS or self.payload.payment is None:
            return None
        return self.payload.payment.entity
