"""Order and Cart models"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from enum import Enum

from app.models.common import Address, Money, PyObjectId
from app.utils.dates import utcnow


class OrderStatus(str, Enum):
    """Order status enumeration"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment status enumeration"""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    """Payment gateways the store takes money (and refunds) through"""
    PAYPAL = "paypal"
    RAZORPAY = "razorpay"
    STRIPE = "stripe"
    BANK_TRANSFER = "bank_transfer"


class OrderItem(BaseModel):
    """Order line; title, author and price are snapshots taken at sale time"""
    book_id: str
    title: str
    author: str
    quantity: int = Field(ge=1)
    price: Money = Field(ge=0)
    is_gift: bool = False

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity

    class Config:
        json_schema_extra = {
            "example": {
                "book_id": "507f1f77bcf86cd799439011",
                "title": "The Hobbit",
                "author": "J.R.R. Tolkien",
                "quantity": 2,
                "price": "12.50",
                "is_gift": False
            }
        }


class OrderDraft(BaseModel):
    """Assembled, not yet persisted purchase built during checkout"""
    user_id: Optional[str] = None
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    shipping_address: Address
    billing_address: Address
    subtotal: Money = Field(ge=0)
    shipping: Money = Field(ge=0)
    tax: Money = Field(ge=0)
    total: Money = Field(ge=0)
    payment_method: Optional[PaymentMethod] = None
    payment_id: Optional[str] = None
    payment_transaction_id: Optional[str] = None
    notes: Optional[str] = None
    cart_owner: Optional[str] = None


class Order(BaseModel):
    """Order model; immutable snapshot apart from status and fulfilment fields"""
    id: Optional[PyObjectId] = Field(None, alias="_id")
    order_number: str
    user_id: Optional[str] = None
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    shipping_address: Address
    billing_address: Address
    items: List[OrderItem]
    subtotal: Money
    shipping: Money
    tax: Money
    total: Money
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: Optional[PaymentMethod] = None
    payment_id: Optional[str] = None
    payment_transaction_id: Optional[str] = None
    refunded_amount: Money = Decimal("0")
    tracking_number: Optional[str] = None
    shipping_carrier: Optional[str] = None
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    delivered_at: Optional[datetime] = None
    return_deadline: Optional[datetime] = None
    active_return_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        populate_by_name = True

    @property
    def book_items(self) -> List[OrderItem]:
        """Lines that are real catalog books (gifts excluded)"""
        return [item for item in self.items if not item.is_gift]


class CartLine(BaseModel):
    """Cart line as stored: a book reference and a quantity of at least one"""
    book_id: str
    quantity: int = Field(ge=1)


class CartGift(BaseModel):
    """Selected gift-with-purchase; always free, always a single unit"""
    gift_id: str
    name: str
    type: str
    image_url: Optional[str] = None


class Cart(BaseModel):
    """Shopping cart model, owned by a user id or a guest session id"""
    id: Optional[PyObjectId] = Field(None, alias="_id")
    owner: str
    items: List[CartLine] = []
    gift: Optional[CartGift] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        populate_by_name = True
