"""UPI intent links (upi://pay) for buyers who pick UPI at checkout.

The link opens the buyer's UPI app pre-filled with the collecting VPA, the
order total and the order id as transaction reference. Settlement still
happens only through the gateway callback or webhook; the link never marks
an order paid on its own.
"""

from urllib.parse import quote, urlencode

from src.mk_common.money import paise_to_amount

_NOTE_MAX = 50  # longer notes are truncated by most UPI apps


def build_upi_link(
    vpa: str,
    payee_name: str,
    amount: int,
    reference: str,
    note: str,
    currency: str = "INR",
) -> str:
    """`amount` is in paise; UPI wants rupees with two decimals."""
    if not vpa or "@" not in vpa:
        raise ValueError(f"not a UPI VPA: {vpa!r}")
    if amount <= 0:
        raise ValueError("UPI amount must be positive")
    params = {
        "pa": vpa,
        "pn": payee_name,
        "am": paise_to_amount(amount),
        "cu": currency,
        "tn": note[:_NOTE_MAX],
        "tr": reference,
    }
    return f"upi://pay?{urlencode(params, quote_via=quote, safe='@')}"
