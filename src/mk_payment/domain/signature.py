"""HMAC-SHA256 signatures used by the gateway.

Checkout callback:  hex(HMAC(key_secret, "<gateway_order_id>|<gateway_payment_id>"))
Webhook:            hex(HMAC(webhook_secret, <raw request body>))

Comparison is always constant-time.
"""

import hashlib
import hmac


def sign(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def callback_signature(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    return sign(secret, f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8"))


def verify(secret: str, message: bytes, signature: str | None) -> bool:
    if not secret or not signature:
        return False
    return hmac.compare_digest(sign(secret, message), signature)


def verify_callback(
    secret: str, gateway_order_id: str, gateway_payment_id: str, signature: str | None
) -> bool:
    if not gateway_order_id or not gateway_payment_id:
        return False
    message = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
    return verify(secret, message, signature)
