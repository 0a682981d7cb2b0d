# src/mk_catalog/infrastructure/persistence.py
"""ListingRepository — raw SQL read access to listings."""
from collections.abc import Sequence
from typing import Any

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_catalog.domain.models import Listing

_SELECT_COLUMNS = """
    id, seller_id, title, unit_price, quantity_on_hand, unit, status,
    discount_bps, created_at, updated_at
"""

_GET_LISTINGS_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM listings WHERE id IN :ids
""").bindparams(bindparam("ids", expanding=True))


def row_to_listing(row: Any) -> Listing:
    """Convert a DB result row to a Listing domain object."""
    return Listing(
        id=row.id,
        seller_id=row.seller_id,
        title=row.title,
        unit_price=row.unit_price,
        quantity_on_hand=row.quantity_on_hand,
        unit=row.unit,
        status=row.status,
        discount_bps=row.discount_bps,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class ListingRepository:
    """Concrete implementation of ListingRepositoryProtocol using raw SQL."""

    async def get_many(
        self, listing_ids: Sequence[str], db: AsyncSession
    ) -> dict[str, Listing]:
        if not listing_ids:
            return {}
        result = await db.execute(_GET_LISTINGS_SQL, {"ids": list(listing_ids)})
        return {row.id: row_to_listing(row) for row in result.fetchall()}
