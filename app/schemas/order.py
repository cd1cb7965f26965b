"""Order, checkout and tracking schemas"""

from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime

from app.core.payments.base import PaymentConfirmation
from app.models.common import Address, Money
from app.models.order import OrderStatus, PaymentMethod, PaymentStatus


class CustomerInfo(BaseModel):
    """Who the order is for"""
    name: str = Field(min_length=1)
    email: EmailStr
    phone: Optional[str] = None


class OrderItemInput(BaseModel):
    """Input schema for an explicit checkout line"""
    book_id: str
    quantity: int = Field(ge=1)


class CheckoutRequest(BaseModel):
    """Details needed to price an order before payment"""
    customer: CustomerInfo
    shipping_address: Address
    billing_address: Optional[Address] = None
    items: Optional[List[OrderItemInput]] = None


class CompleteOrderRequest(CheckoutRequest):
    """Schema for completing checkout with a confirmed payment"""
    payment: PaymentConfirmation
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "customer": {"name": "Jane Doe", "email": "jane@example.com", "phone": "+44 20 7946 0000"},
                "shipping_address": {
                    "street": "221B Baker Street",
                    "city": "London",
                    "zip": "NW1 6XE",
                    "country": "GB"
                },
                "payment": {"method": "paypal", "order_id": "5O190127TN364715T"},
                "notes": "Leave with concierge"
            }
        }


class CompleteOrderResponse(BaseModel):
    success: bool = True
    order_id: str
    order_number: str
    total: Money


class AuthorizeResponse(BaseModel):
    """What the storefront needs to start the gateway's payment flow"""
    method: PaymentMethod
    reference: str
    amount: Money
    currency: str
    client_data: dict = {}


class PaymentConfigResponse(BaseModel):
    currency: str
    methods: List[PaymentMethod]
    paypal_client_id: Optional[str] = None
    razorpay_key_id: Optional[str] = None


class OrderItemResponse(BaseModel):
    """Response schema for order item"""
    book_id: str
    title: str
    author: str
    quantity: int
    price: Money
    is_gift: bool


class OrderResponse(BaseModel):
    """Response schema for order"""
    id: str
    order_number: str
    user_id: Optional[str] = None
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    shipping_address: Address
    billing_address: Address
    items: List[OrderItemResponse]
    subtotal: Money
    shipping: Money
    tax: Money
    total: Money
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    payment_id: Optional[str] = None
    refunded_amount: Money
    tracking_number: Optional[str] = None
    shipping_carrier: Optional[str] = None
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    delivered_at: Optional[datetime] = None
    return_deadline: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class OrderStatusUpdate(BaseModel):
    """Schema for updating order status"""
    status: OrderStatus
    tracking_number: Optional[str] = None
    shipping_carrier: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "status": "shipped",
                "tracking_number": "1Z999AA10123456784",
                "shipping_carrier": "UPS"
            }
        }


class TrackOrderRequest(BaseModel):
    order_id: str
    email: EmailStr


class TrackingItem(BaseModel):
    title: str
    author: str
    quantity: int
    price: Money


class TrackingResponse(BaseModel):
    """Public tracking payload; no addresses or payment details"""
    order_number: str
    status: OrderStatus
    tracking_number: Optional[str] = None
    shipping_carrier: Optional[str] = None
    items: List[TrackingItem]
    total: Money
    created_at: datetime
    updated_at: datetime
    delivered_at: Optional[datetime] = None
