"""Inventory domain models — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime

from src.mk_common.enums import ReservationStatus


@dataclass
class Reservation:
    id: str                  # the reservation token handed back to callers
    listing_id: str
    quantity: int
    status: str = ReservationStatus.RESERVED
    order_id: str | None = None   # linked once the order row exists
    created_at: datetime | None = None
    updated_at: datetime | None = None
