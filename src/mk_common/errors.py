"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth
  2xxx: Catalog / Inventory  ("your cart changed")
  3xxx: Order state
  4xxx: Payment              ("payment not verified", gateway failures)
  9xxx: System

Codes are part of the public API contract: client UIs branch on them.
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Auth ---

class NotAuthenticatedError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "Invalid or expired token", 401)


class NotAuthorizedError(AppError):
    def __init__(self, detail: str = "Not authorized for this order") -> None:
        super().__init__(1002, detail, 403)


# --- 2xxx: Catalog / Inventory ---

class InvalidQuantityError(AppError):
    def __init__(self, listing_id: str, quantity: int) -> None:
        super().__init__(2001, f"Invalid quantity {quantity} for listing {listing_id}", 422)


class ListingUnavailableError(AppError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(2002, f"Listing is not available: {listing_id}", 422)


class InsufficientStockError(AppError):
    def __init__(self, listing_id: str, requested: int, available: int | None = None) -> None:
        detail = f"Insufficient stock for listing {listing_id}: requested {requested}"
        if available is not None:
            detail += f", available {available}"
        super().__init__(2003, detail, 409)
        self.listing_id = listing_id


class ReservationNotFoundError(AppError):
    def __init__(self, reservation_id: str) -> None:
        super().__init__(2004, f"Reservation not found: {reservation_id}", 404)


class AlreadyCommittedError(AppError):
    def __init__(self, reservation_id: str) -> None:
        super().__init__(2005, f"Reservation already committed: {reservation_id}", 409)


class ReservationReleasedError(AppError):
    def __init__(self, reservation_id: str) -> None:
        super().__init__(2006, f"Reservation already released: {reservation_id}", 409)


class EmptyCartError(AppError):
    def __init__(self) -> None:
        super().__init__(2007, "Cart is empty", 422)


# --- 3xxx: Order ---

class OrderNotFoundError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(3001, f"Order not found: {order_id}", 404)


class InvalidTransitionError(AppError):
    def __init__(self, order_id: str, action: str, status: str, payment_status: str) -> None:
        super().__init__(
            3002,
            f"Order {order_id} cannot {action} from ({status}, {payment_status})",
            409,
        )


class OrderTerminalError(AppError):
    def __init__(self, order_id: str, status: str) -> None:
        super().__init__(3003, f"Order {order_id} is already {status}", 409)


class OrderNotCancellableError(AppError):
    def __init__(self, order_id: str, status: str) -> None:
        super().__init__(3004, f"Order {order_id} in status {status} cannot be cancelled", 409)


class PaymentConflictError(AppError):
    """A different gateway payment id arrived for an already-paid order."""

    def __init__(self, order_id: str) -> None:
        super().__init__(3005, f"Order {order_id} is already paid by another payment", 409)


class RefundRequiredError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(3006, f"Order {order_id} is paid; cancellation requires a refund", 409)


class ConcurrentUpdateError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(3007, f"Order {order_id} was modified concurrently", 409)


# --- 4xxx: Payment ---

class PaymentVerificationFailedError(AppError):
    # Deliberately says nothing about whether the order exists.
    def __init__(self) -> None:
        super().__init__(4001, "Payment could not be verified", 401)


class GatewayUnavailableError(AppError):
    def __init__(self, detail: str = "Payment gateway unavailable") -> None:
        super().__init__(4002, detail, 503)


class GatewayRejectedError(AppError):
    def __init__(self, detail: str = "Payment gateway rejected the request") -> None:
        super().__init__(4003, detail, 502)


class RefundWindowExpiredError(AppError):
    def __init__(self, payment_id: str) -> None:
        super().__init__(4004, f"Refund window expired for payment {payment_id}", 409)


class InsufficientCapturedAmountError(AppError):
    def __init__(self, payment_id: str, requested: int, refundable: int) -> None:
        super().__init__(
            4005,
            f"Cannot refund {requested} on payment {payment_id}: refundable {refundable}",
            409,
        )


class RefundFailedError(AppError):
    def __init__(self, order_id: str, detail: str) -> None:
        super().__init__(4006, f"Refund failed for order {order_id}: {detail}", 409)


# --- 9xxx: System ---

class RateLimitError(AppError):
    def __init__(self) -> None:
        super().__init__(9001, "Rate limit exceeded", 429)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)
