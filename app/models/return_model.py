"""Return models for book returns and refunds"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, Optional, List
from enum import Enum

from app.models.common import Money, PyObjectId
from app.models.order import PaymentMethod
from app.utils.dates import utcnow


class ReturnReason(str, Enum):
    """Return reason enumeration"""
    DAMAGED = "damaged"
    DEFECTIVE = "defective"
    WRONG_ITEM = "wrong_item"
    NOT_AS_DESCRIBED = "not_as_described"
    OTHER = "other"


class ReturnStatus(str, Enum):
    """Return status enumeration"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REFUND_PROCESSED = "refund_processed"
    CANCELLED = "cancelled"


class RefundStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ReturnItem(BaseModel):
    """Returned line, priced from the order's snapshot"""
    book_id: str
    title: str
    quantity: int = Field(ge=1)
    unit_price: Money = Field(ge=0)
    subtotal: Money = Field(ge=0)
    reason: Optional[str] = None


class ReturnRequest(BaseModel):
    """Return request model"""
    id: Optional[PyObjectId] = Field(None, alias="_id")
    return_number: str
    order_id: str
    order_number: str
    user_id: Optional[str] = None
    customer_name: str
    customer_email: str
    return_reason: ReturnReason
    return_description: str
    items_to_return: List[ReturnItem]
    total_refund_amount: Money = Field(ge=0)
    status: ReturnStatus = ReturnStatus.PENDING
    admin_notes: Optional[str] = None
    refund_method: Optional[PaymentMethod] = None
    refund_transaction_id: Optional[str] = None
    refund_processed_at: Optional[datetime] = None
    return_deadline: datetime
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "return_number": "RET-20240105-9F2C11AB",
                "order_id": "507f1f77bcf86cd799439011",
                "order_number": "ORD-20240101-4B1E0C2D",
                "customer_name": "Jane Doe",
                "customer_email": "jane@example.com",
                "return_reason": "damaged",
                "return_description": "Cover torn on arrival",
                "items_to_return": [
                    {
                        "book_id": "507f191e810c19729de860eb",
                        "title": "The Hobbit",
                        "quantity": 1,
                        "unit_price": "12.50",
                        "subtotal": "12.50",
                        "reason": "damaged"
                    }
                ],
                "total_refund_amount": "12.50",
                "status": "pending"
            }
        }

    @property
    def is_active(self) -> bool:
        return self.status not in (ReturnStatus.REJECTED, ReturnStatus.CANCELLED)


class RefundTransaction(BaseModel):
    """Audit row for every refund attempt against a gateway"""
    id: Optional[PyObjectId] = Field(None, alias="_id")
    return_request_id: str
    order_id: str
    refund_amount: Money = Field(ge=0)
    refund_method: PaymentMethod
    original_payment_method: Optional[PaymentMethod] = None
    original_transaction_id: Optional[str] = None
    refund_transaction_id: Optional[str] = None
    refund_status: RefundStatus = RefundStatus.PENDING
    refund_reason: Optional[str] = None
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    gateway_response: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        populate_by_name = True
