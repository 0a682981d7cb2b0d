"""PaymentGateway Protocol — the settlement service only talks to this.

Implementations raise typed AppErrors (GatewayUnavailableError is retryable,
GatewayRejectedError is not) and never compensate on their own.
"""

from typing import Protocol

from src.mk_payment.domain.models import GatewayPayment, PaymentIntent


class PaymentGatewayProtocol(Protocol):
    async def create_intent(
        self, order_id: str, amount: int, currency: str, notes: dict[str, str] | None = None
    ) -> PaymentIntent: ...

    def verify_callback(
        self, gateway_order_id: str, gateway_payment_id: str, signature_hex: str | None
    ) -> bool: ...

    def verify_webhook(self, raw_body: bytes, signature_hex: str | None) -> bool: ...

    async def fetch_payment(self, gateway_payment_id: str) -> GatewayPayment: ...

    async def capture(self, gateway_payment_id: str, amount: int, currency: str) -> None: ...

    async def refund(self, gateway_payment_id: str, amount: int, reason: str) -> str: ...
