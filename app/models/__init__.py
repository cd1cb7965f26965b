"""MongoDB models using Pydantic"""

from app.models.common import Address, Money, PyObjectId
from app.models.user import User, UserRole
from app.models.book import Book, BookCondition, Category, GiftCategory, GiftItem, ShippingRate
from app.models.order import (
    Cart,
    CartGift,
    CartLine,
    Order,
    OrderDraft,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from app.models.return_model import (
    RefundStatus,
    RefundTransaction,
    ReturnItem,
    ReturnReason,
    ReturnRequest,
    ReturnStatus,
)

__all__ = [
    "Address",
    "Money",
    "PyObjectId",
    "User",
    "UserRole",
    "Book",
    "BookCondition",
    "Category",
    "GiftCategory",
    "GiftItem",
    "ShippingRate",
    "Cart",
    "CartGift",
    "CartLine",
    "Order",
    "OrderDraft",
    "OrderItem",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "RefundStatus",
    "RefundTransaction",
    "ReturnItem",
    "ReturnReason",
    "ReturnRequest",
    "ReturnStatus",
]
