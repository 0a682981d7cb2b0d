"""RazorpayGateway — PaymentGatewayProtocol over the Razorpay REST API.

Amounts are sent in paise, which is what the API expects. The httpx client is
created by the app lifespan (base_url, basic auth, timeout) and injected, so
every call carries a timeout and tests can swap in an httpx.MockTransport.

Retry policy:
  - fetch_payment and capture are idempotent: retried with exponential backoff
    on GatewayUnavailableError.
  - create_intent and refund are NOT retried here; a timeout on them may have
    succeeded on the gateway side.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config.settings import Settings
from src.mk_common.datetime_utils import from_unix, utc_now
from src.mk_common.errors import (
    GatewayRejectedError,
    GatewayUnavailableError,
    InsufficientCapturedAmountError,
    RefundWindowExpiredError,
)
from src.mk_payment.domain import signature
from src.mk_payment.domain.models import GatewayPayment, PaymentIntent

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ALREADY_CAPTURED = "already been captured"
_OVER_REFUND_MARKERS = ("fully refunded", "greater than", "exceeds")


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.GATEWAY_BASE_URL,
        auth=(settings.GATEWAY_KEY_ID, settings.GATEWAY_KEY_SECRET),
        timeout=settings.GATEWAY_TIMEOUT_SECONDS,
    )


def _error_description(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("description") or error.get("code") or "")
    return str(body)[:200]


class RazorpayGateway:
    def __init__(self, client: httpx.AsyncClient, settings: Settings) -> None:
        self._client = client
        self._key_id = settings.GATEWAY_KEY_ID
        self._key_secret = settings.GATEWAY_KEY_SECRET
        self._webhook_secret = settings.GATEWAY_WEBHOOK_SECRET
        self._auto_capture = settings.GATEWAY_AUTO_CAPTURE
        self._refund_window = timedelta(days=settings.REFUND_WINDOW_DAYS)
        self._max_retries = settings.GATEWAY_MAX_RETRIES
        self._backoff = settings.GATEWAY_BACKOFF_SECONDS

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """One HTTP call; maps transport errors/5xx to Unavailable, 4xx to Rejected."""
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("gateway timeout %s %s", method, path)
            raise GatewayUnavailableError("Payment gateway timed out") from exc
        except httpx.TransportError as exc:
            logger.warning("gateway transport error %s %s: %s", method, path, exc)
            raise GatewayUnavailableError() from exc

        if resp.status_code >= 500:
            logger.warning("gateway %d on %s %s", resp.status_code, method, path)
            raise GatewayUnavailableError(f"Payment gateway error {resp.status_code}")
        if resp.status_code >= 400:
            raise GatewayRejectedError(_error_description(resp) or "Payment gateway rejected the request")
        return resp

    async def _retrying(self, call: Callable[[], Awaitable[T]]) -> T:
        retryer = AsyncRetrying(
            retry=retry_if_exception_type(GatewayUnavailableError),
            stop=stop_after_attempt(self._max_retries + 1),
            wait=wait_exponential(multiplier=self._backoff),
            before_sleep=before_sleep_log(logger, logging.INFO),
            reraise=True,
        )
        return await retryer(call)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create_intent(
        self, order_id: str, amount: int, currency: str, notes: dict[str, str] | None = None
    ) -> PaymentIntent:
        resp = await self._request(
            "POST",
            "/v1/orders",
            json={
                "amount": amount,
                "currency": currency,
                "receipt": order_id,
                "payment_capture": 1 if self._auto_capture else 0,
                "notes": notes or {},
            },
        )
        body = resp.json()
        logger.info("gateway intent %s created for order %s", body["id"], order_id)
        return PaymentIntent(
            gateway_order_id=body["id"],
            client_key=self._key_id,
            amount=int(body.get("amount", amount)),
            currency=body.get("currency", currency),
        )

    def verify_callback(
        self, gateway_order_id: str, gateway_payment_id: str, signature_hex: str | None
    ) -> bool:
        return signature.verify_callback(
            self._key_secret, gateway_order_id, gateway_payment_id, signature_hex
        )

    def verify_webhook(self, raw_body: bytes, signature_hex: str | None) -> bool:
        return signature.verify(self._webhook_secret, raw_body, signature_hex)

    async def fetch_payment(self, gateway_payment_id: str) -> GatewayPayment:
        async def _call() -> httpx.Response:
            return await self._request("GET", f"/v1/payments/{gateway_payment_id}")

        body = (await self._retrying(_call)).json()
        return GatewayPayment(
            id=body["id"],
            gateway_order_id=body.get("order_id"),
            amount=int(body["amount"]),
            amount_refunded=int(body.get("amount_refunded") or 0),
            captured=bool(body.get("captured")),
            status=body.get("status", ""),
            created_at=from_unix(int(body["created_at"])),
        )

    async def capture(self, gateway_payment_id: str, amount: int, currency: str) -> None:
        async def _call() -> None:
            try:
                await self._request(
                    "POST",
                    f"/v1/payments/{gateway_payment_id}/capture",
                    json={"amount": amount, "currency": currency},
                )
            except GatewayRejectedError as exc:
                if _ALREADY_CAPTURED in exc.message.lower():
                    logger.info("payment %s already captured", gateway_payment_id)
                    return
                raise

        await self._retrying(_call)

    async def refund(self, gateway_payment_id: str, amount: int, reason: str) -> str:
        payment = await self.fetch_payment(gateway_payment_id)
        if utc_now() - payment.created_at > self._refund_window:
            raise RefundWindowExpiredError(gateway_payment_id)
        if amount > payment.refundable:
            raise InsufficientCapturedAmountError(gateway_payment_id, amount, payment.refundable)

        try:
            resp = await self._request(
                "POST",
                f"/v1/payments/{gateway_payment_id}/refund",
                json={"amount": amount, "notes": {"reason": reason}},
            )
        except GatewayRejectedError as exc:
            if any(m in exc.message.lower() for m in _OVER_REFUND_MARKERS):
                raise InsufficientCapturedAmountError(
                    gateway_payment_id, amount, payment.refundable
                ) from exc
            raise
        refund_id = str(resp.json()["id"])
        logger.info("refund %s issued on payment %s amount=%d", refund_id, gateway_payment_id, amount)
        return refund_id
