"""Domain exceptions for the order, cart and return flows"""

from typing import Optional


class StoreError(Exception):
    """Base exception for all store errors."""

    status_code = 500

    @property
    def public_detail(self) -> str:
        """Message safe to show to the customer"""
        return str(self)


class ValidationError(StoreError):
    """Raised when input is malformed or incomplete, before any side effect."""

    status_code = 400


class OrderNotFound(StoreError):
    status_code = 404

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class ReturnRequestNotFound(StoreError):
    status_code = 404

    def __init__(self, return_request_id: str):
        self.return_request_id = return_request_id
        super().__init__(f"Return request not found: {return_request_id}")


class BookNotFound(StoreError):
    status_code = 404

    def __init__(self, book_id: str):
        self.book_id = book_id
        super().__init__(f"Book not found: {book_id}")


class GiftNotFound(StoreError):
    status_code = 404

    def __init__(self, gift_id: str):
        self.gift_id = gift_id
        super().__init__(f"Gift item not found: {gift_id}")


class CartItemNotFound(StoreError):
    status_code = 404

    def __init__(self, book_id: str):
        self.book_id = book_id
        super().__init__(f"Book {book_id} is not in the cart")


class NotOwner(StoreError):
    """Raised when the requester doesn't own the order."""

    status_code = 403

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Not authorized to access this order")


class InsufficientStock(StoreError):
    """Raised when a book doesn't have enough stock for the requested quantity."""

    status_code = 409

    def __init__(self, book_id: str, title: str, available: int, requested: int):
        self.book_id = book_id
        self.title = title
        self.available = available
        self.requested = requested
        super().__init__(f"Only {available} left in stock for '{title}'")


class InvalidStatusTransition(StoreError):
    status_code = 409

    def __init__(self, current: str, requested: str, entity: str = "order"):
        self.current = current
        self.requested = requested
        self.entity = entity
        super().__init__(f"Cannot move {entity} from '{current}' to '{requested}'")


class NotEligible(StoreError):
    """Raised when an order is not in a returnable state."""

    status_code = 400

    def __init__(self, order_id: str, status: str):
        self.order_id = order_id
        self.order_status = status
        super().__init__(f"Only delivered orders can be returned (order is '{status}')")


class WindowExpired(StoreError):
    status_code = 400

    def __init__(self, order_id: str, days: int):
        self.order_id = order_id
        super().__init__(f"Return window has expired ({days} days)")


class InvalidItems(StoreError):
    status_code = 400


class DuplicateRequest(StoreError):
    status_code = 409

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("A return request already exists for this order")


class DuplicatePayment(StoreError):
    """Raised when a payment has already been used for an order."""

    status_code = 409

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} has already been used")


class RefundInProgress(StoreError):
    status_code = 409

    def __init__(self, return_request_id: str):
        self.return_request_id = return_request_id
        super().__init__("A refund for this return request is already being processed")


class PaymentGatewayError(StoreError):
    """Raised when a payment gateway rejects, fails or times out.

    The underlying reason is kept for logs and admins; customers only ever see
    the generic public detail.
    """

    status_code = 402

    def __init__(self, method: str, reason: str, response: Optional[dict] = None):
        self.method = method
        self.reason = reason
        self.response = response
        super().__init__(f"{method} gateway error: {reason}")

    @property
    def public_detail(self) -> str:
        return "Payment could not be completed"


class NotificationDispatchError(StoreError):
    """Raised inside the notification dispatcher; logged, never propagated."""

    def __init__(self, kind: str, recipient: str, reason: str):
        self.kind = kind
        self.recipient = recipient
        super().__init__(f"Failed to send {kind} email to {recipient}: {reason}")
