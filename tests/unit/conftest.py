"""In-memory fakes for the settlement service's collaborators.

Each fake follows its repository Protocol. Stored objects are deep-copied on
the way in and out so the service can only see changes it persisted.
"""

import asyncio
import copy
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import Any

import pytest

from config.settings import Settings
from src.mk_catalog.domain.models import Listing
from src.mk_common.datetime_utils import utc_now
from src.mk_common.enums import ListingStatus, OrderStatus, ReservationStatus, Role
from src.mk_common.errors import (
    AlreadyCommittedError,
    InsufficientStockError,
    ListingUnavailableError,
    ReservationNotFoundError,
    ReservationReleasedError,
)
from src.mk_gateway.auth.principal import Principal
from src.mk_inventory.domain.models import Reservation
from src.mk_order.domain.models import Order, ShippingAddress
from src.mk_payment.domain import signature
from src.mk_payment.domain.models import GatewayPayment, PaymentIntent
from src.mk_settlement.application.service import SettlementService

GATEWAY_SECRET = "gw_secret"
WEBHOOK_SECRET = "wh_secret"


class FakeListingRepository:
    def __init__(self) -> None:
        self.rows: dict[str, Listing] = {}

    def add(self, listing: Listing) -> Listing:
        self.rows[listing.id] = listing
        return listing

    async def get_many(self, listing_ids: Sequence[str], db: Any) -> dict[str, Listing]:
        return {
            lid: copy.deepcopy(self.rows[lid]) for lid in listing_ids if lid in self.rows
        }


class FakeLedger:
    """Stock moves are check-and-set with no await in between, like the SQL UPDATE."""

    def __init__(self, listings: FakeListingRepository) -> None:
        self._listings = listings
        self.reservations: dict[str, Reservation] = {}
        self._seq = 0

    async def reserve(self, listing_id: str, quantity: int, db: Any) -> Reservation:
        await asyncio.sleep(0)  # let concurrent callers interleave
        listing = self._listings.rows.get(listing_id)
        if listing is None or listing.status == ListingStatus.PAUSED:
            raise ListingUnavailableError(listing_id)
        if listing.status != ListingStatus.ACTIVE or listing.quantity_on_hand < quantity:
            raise InsufficientStockError(listing_id, quantity, listing.quantity_on_hand)
        listing.quantity_on_hand -= quantity
        if listing.quantity_on_hand == 0:
            listing.status = ListingStatus.SOLD_OUT
        self._seq += 1
        now = utc_now()
        res = Reservation(
            id=f"res-{self._seq}",
            listing_id=listing_id,
            quantity=quantity,
            status=ReservationStatus.RESERVED,
            created_at=now,
            updated_at=now,
        )
        self.reservations[res.id] = res
        return copy.deepcopy(res)

    async def release(self, reservation_id: str, db: Any) -> bool:
        res = self.reservations.get(reservation_id)
        if res is None:
            raise ReservationNotFoundError(reservation_id)
        if res.status == ReservationStatus.COMMITTED:
            raise AlreadyCommittedError(reservation_id)
        if res.status == ReservationStatus.RELEASED:
            return False
        res.status = ReservationStatus.RELEASED
        listing = self._listings.rows[res.listing_id]
        listing.quantity_on_hand += res.quantity
        if listing.status == ListingStatus.SOLD_OUT:
            listing.status = ListingStatus.ACTIVE
        return True

    async def commit(self, reservation_id: str, db: Any) -> None:
        res = self.reservations.get(reservation_id)
        if res is None:
            raise ReservationNotFoundError(reservation_id)
        if res.status == ReservationStatus.RELEASED:
            raise ReservationReleasedError(reservation_id)
        res.status = ReservationStatus.COMMITTED

    async def attach_order(self, reservation_ids: Sequence[str], order_id: str, db: Any) -> None:
        for rid in reservation_ids:
            self.reservations[rid].order_id = order_id

    async def get(self, reservation_id: str, db: Any) -> Reservation | None:
        res = self.reservations.get(reservation_id)
        return copy.deepcopy(res) if res else None

    async def list_stale_orphans(
        self, cutoff: datetime, limit: int, db: Any
    ) -> list[Reservation]:
        stale = [
            r for r in self.reservations.values()
            if r.status == ReservationStatus.RESERVED
            and r.order_id is None
            and r.created_at is not None
            and r.created_at < cutoff
        ]
        return [copy.deepcopy(r) for r in stale[:limit]]


class FakeOrderRepository:
    def __init__(self) -> None:
        self.rows: dict[str, Order] = {}
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    def event_types(self, order_id: str) -> list[str]:
        return [etype for oid, etype, _ in self.events if oid == order_id]

    async def save(self, order: Order, db: Any) -> None:
        self.rows[order.id] = copy.deepcopy(order)

    async def get_by_id(self, order_id: str, db: Any) -> Order | None:
        order = self.rows.get(order_id)
        return copy.deepcopy(order) if order else None

    async def get_by_gateway_order_id(self, gateway_order_id: str, db: Any) -> Order | None:
        for order in self.rows.values():
            if order.gateway_order_id == gateway_order_id:
                return copy.deepcopy(order)
        return None

    async def update(self, order: Order, db: Any) -> bool:
        stored = self.rows.get(order.id)
        if stored is None or stored.version != order.version:
            return False
        order.version += 1
        order.updated_at = utc_now()
        self.rows[order.id] = copy.deepcopy(order)
        return True

    def _page(self, orders: list[Order], status: str | None, limit: int, cursor_id: str | None) -> list[Order]:
        picked = sorted(orders, key=lambda o: o.id, reverse=True)
        if status:
            picked = [o for o in picked if o.status == status]
        if cursor_id:
            picked = [o for o in picked if o.id < cursor_id]
        return [copy.deepcopy(o) for o in picked[:limit]]

    async def list_for_buyer(
        self, buyer_id: str, status: str | None, limit: int, cursor_id: str | None, db: Any
    ) -> list[Order]:
        mine = [o for o in self.rows.values() if o.buyer_id == buyer_id]
        return self._page(mine, status, limit, cursor_id)

    async def list_for_seller(
        self, seller_id: str, status: str | None, limit: int, cursor_id: str | None, db: Any
    ) -> list[Order]:
        mine = [o for o in self.rows.values() if seller_id in o.seller_ids]
        return self._page(mine, status, limit, cursor_id)

    async def list_all(
        self, status: str | None, limit: int, cursor_id: str | None, db: Any
    ) -> list[Order]:
        return self._page(list(self.rows.values()), status, limit, cursor_id)

    async def list_stale_pending(self, cutoff: datetime, limit: int, db: Any) -> list[Order]:
        stale = [
            o for o in self.rows.values()
            if o.status == OrderStatus.PENDING_PAYMENT
            and o.updated_at is not None
            and o.updated_at < cutoff
        ]
        return [copy.deepcopy(o) for o in stale[:limit]]

    async def record_event(
        self, order_id: str, event_type: str, payload: dict[str, Any], db: Any
    ) -> None:
        self.events.append((order_id, event_type, payload))


class FakeGateway:
    def __init__(self) -> None:
        self.intent_error: Exception | None = None
        self.refund_error: Exception | None = None
        self.on_refund: Callable[[], Awaitable[Any]] | None = None
        self.intents: list[tuple[str, int, str]] = []
        self.captures: list[str] = []
        self.refunds: list[tuple[str, int, str]] = []

    async def create_intent(
        self, order_id: str, amount: int, currency: str, notes: dict[str, str] | None = None
    ) -> PaymentIntent:
        if self.intent_error is not None:
            raise self.intent_error
        self.intents.append((order_id, amount, currency))
        return PaymentIntent(
            gateway_order_id=f"order_gw{len(self.intents)}",
            client_key="rzp_test_key",
            amount=amount,
            currency=currency,
        )

    def verify_callback(
        self, gateway_order_id: str, gateway_payment_id: str, signature_hex: str | None
    ) -> bool:
        return signature.verify_callback(
            GATEWAY_SECRET, gateway_order_id, gateway_payment_id, signature_hex
        )

    def verify_webhook(self, raw_body: bytes, signature_hex: str | None) -> bool:
        return signature.verify(WEBHOOK_SECRET, raw_body, signature_hex)

    async def fetch_payment(self, gateway_payment_id: str) -> GatewayPayment:
        raise NotImplementedError

    async def capture(self, gateway_payment_id: str, amount: int, currency: str) -> None:
        self.captures.append(gateway_payment_id)

    async def refund(self, gateway_payment_id: str, amount: int, reason: str) -> str:
        if self.on_refund is not None:
            await self.on_refund()
        if self.refund_error is not None:
            raise self.refund_error
        self.refunds.append((gateway_payment_id, amount, reason))
        return f"rfnd_{len(self.refunds)}"


class FakeNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = fail

    async def notify(self, event: str, order: Order) -> None:
        if self.fail:
            raise RuntimeError("notifier down")
        self.sent.append((event, order.id))


@pytest.fixture
def address() -> ShippingAddress:
    return ShippingAddress(
        name="Asha Rao",
        phone="9876543210",
        line1="12 MG Road",
        city="Bengaluru",
        state="Karnataka",
        postal_code="560001",
    )


@pytest.fixture
def sign_callback():  # type: ignore[no-untyped-def]
    """Signs a checkout callback the way the gateway does."""

    def _sign(gateway_order_id: str, gateway_payment_id: str) -> str:
        return signature.callback_signature(GATEWAY_SECRET, gateway_order_id, gateway_payment_id)

    return _sign


@pytest.fixture
def listings() -> FakeListingRepository:
    repo = FakeListingRepository()
    repo.add(Listing(id="L-A", seller_id="seller-a", title="Alphonso mango", unit_price=2500, quantity_on_hand=10))
    repo.add(Listing(id="L-B", seller_id="seller-b", title="Basmati rice", unit_price=1000, quantity_on_hand=5))
    return repo


@pytest.fixture
def ledger(listings: FakeListingRepository) -> FakeLedger:
    return FakeLedger(listings)


@pytest.fixture
def orders() -> FakeOrderRepository:
    return FakeOrderRepository()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def settings() -> Settings:
    return Settings(GATEWAY_AUTO_CAPTURE=True, ORDER_PAYMENT_TIMEOUT_MINUTES=30)


@pytest.fixture
def service(
    listings: FakeListingRepository,
    ledger: FakeLedger,
    orders: FakeOrderRepository,
    gateway: FakeGateway,
    notifier: FakeNotifier,
    settings: Settings,
) -> SettlementService:
    return SettlementService(listings, ledger, orders, gateway, notifier, settings)


@pytest.fixture
def buyer() -> Principal:
    return Principal(user_id="buyer-1", role=Role.BUYER)


@pytest.fixture
def admin() -> Principal:
    return Principal(user_id="admin-1", role=Role.ADMIN)
