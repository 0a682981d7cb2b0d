"""Integer arithmetic utilities for minor-unit (paise) amounts.

All prices, line totals and order totals use int minor units. No float, no Decimal.
The gateway also speaks minor units, so amounts pass through unconverted.
"""

BPS_DENOMINATOR = 10_000


def paise_to_display(paise: int, symbol: str = "₹") -> str:
    """Convert minor units to display string: 600000 -> '₹6,000.00', -1200 -> '-₹12.00'."""
    if paise < 0:
        abs_paise = -paise
        return f"-{symbol}{abs_paise // 100:,}.{abs_paise % 100:02d}"
    return f"{symbol}{paise // 100:,}.{paise % 100:02d}"


def apply_discount(unit_price: int, discount_bps: int) -> int:
    """Discounted unit price with floor division on the discount (never over-discount).

    discount = floor(unit_price * discount_bps / 10000)
    """
    if not (0 <= discount_bps <= BPS_DENOMINATOR):
        raise ValueError(f"discount_bps must be between 0 and {BPS_DENOMINATOR}, got {discount_bps}")
    if discount_bps == 0:
        return unit_price
    return unit_price - (unit_price * discount_bps) // BPS_DENOMINATOR


def paise_to_amount(paise: int) -> str:
    """Plain decimal rupees for wire formats: 6000 -> '60.00'."""
    if paise < 0:
        raise ValueError(f"amount must not be negative, got {paise}")
    return f"{paise // 100}.{paise % 100:02d}"
