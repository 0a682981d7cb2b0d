"""ListingRepository Protocol — read side of the catalog used by settlement."""

from collections.abc import Sequence
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_catalog.domain.models import Listing


class ListingRepositoryProtocol(Protocol):
    async def get_many(
        self, listing_ids: Sequence[str], db: AsyncSession
    ) -> dict[str, Listing]: ...
