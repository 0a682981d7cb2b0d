"""Price calculator — pure function over a cart and fresh listing snapshots.

Never fed client-supplied prices: the caller loads listings from the catalog at
order-creation time and passes them in.
"""

from collections.abc import Mapping, Sequence

from src.mk_catalog.domain.models import CartLine, Listing, PricedCart, PricedLine
from src.mk_common.errors import InvalidQuantityError, ListingUnavailableError
from src.mk_common.money import apply_discount


def merge_lines(lines: Sequence[CartLine]) -> list[CartLine]:
    """Sum quantities of repeated listings, keeping first-seen order.

    Quantities are validated before merging so that a -1 cannot cancel out a +1.
    """
    merged: dict[str, int] = {}
    for line in lines:
        if line.quantity <= 0:
            raise InvalidQuantityError(line.listing_id, line.quantity)
        merged[line.listing_id] = merged.get(line.listing_id, 0) + line.quantity
    return [CartLine(listing_id=lid, quantity=qty) for lid, qty in merged.items()]


def price_cart(lines: Sequence[CartLine], listings: Mapping[str, Listing]) -> PricedCart:
    priced: list[PricedLine] = []
    sellers: list[str] = []
    for line in merge_lines(lines):
        listing = listings.get(line.listing_id)
        if listing is None or not listing.is_active:
            raise ListingUnavailableError(line.listing_id)
        unit_price = apply_discount(listing.unit_price, listing.discount_bps)
        if unit_price <= 0:
            # a fully discounted line cannot be charged through the gateway
            raise ListingUnavailableError(line.listing_id)
        priced.append(
            PricedLine(
                listing_id=listing.id,
                seller_id=listing.seller_id,
                title=listing.title,
                quantity=line.quantity,
                list_price=listing.unit_price,
                unit_price=unit_price,
                line_total=unit_price * line.quantity,
            )
        )
        if listing.seller_id not in sellers:
            sellers.append(listing.seller_id)

    return PricedCart(
        lines=tuple(priced),
        total_amount=sum(p.line_total for p in priced),
        seller_ids=tuple(sellers),
    )
