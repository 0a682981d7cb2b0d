"""Outbound buyer/seller notifications (SMS/email are delivered by another service).

The settlement service treats these as fire-and-forget: a failure here is
logged and never undoes an order transition.
"""

import logging
from typing import Protocol

import httpx

from src.mk_common.money import paise_to_display
from src.mk_order.domain.models import Order

logger = logging.getLogger(__name__)


class NotifierProtocol(Protocol):
    async def notify(self, event: str, order: Order) -> None: ...


def _message(event: str, order: Order) -> dict[str, object]:
    return {
        "event": event,
        "order_id": order.id,
        "buyer_id": order.buyer_id,
        "seller_ids": list(order.seller_ids),
        "status": order.status,
        "payment_status": order.payment_status,
        "total_amount": order.total_amount,
        "total_display": paise_to_display(order.total_amount),
        "currency": order.currency,
        "cancel_reason": order.cancel_reason,
    }


class LogNotifier:
    """Used when no NOTIFIER_URL is configured (local dev, tests)."""

    async def notify(self, event: str, order: Order) -> None:
        logger.info("notify %s order=%s buyer=%s", event, order.id, order.buyer_id)


class HttpNotifier:
    """POSTs a JSON message to the notification service."""

    def __init__(self, client: httpx.AsyncClient, url: str) -> None:
        self._client = client
        self._url = url

    async def notify(self, event: str, order: Order) -> None:
        resp = await self._client.post(self._url, json=_message(event, order))
        resp.raise_for_status()
