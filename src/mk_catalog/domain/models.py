"""Catalog domain models — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime

from src.mk_common.enums import ListingStatus


@dataclass
class Listing:
    id: str
    seller_id: str
    title: str
    unit_price: int          # paise, > 0
    quantity_on_hand: int    # >= 0
    unit: str = "kg"
    status: str = ListingStatus.ACTIVE
    discount_bps: int = 0    # promotional discount, 0-9999
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ListingStatus.ACTIVE


@dataclass(frozen=True)
class CartLine:
    listing_id: str
    quantity: int


@dataclass(frozen=True)
class PricedLine:
    listing_id: str
    seller_id: str
    title: str
    quantity: int
    list_price: int     # paise, before promotion
    unit_price: int     # paise, locked into the order line
    line_total: int     # paise


@dataclass(frozen=True)
class PricedCart:
    lines: tuple[PricedLine, ...]
    total_amount: int
    seller_ids: tuple[str, ...] = field(default=())
