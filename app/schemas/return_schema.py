"""Return schemas for requests and responses"""

from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime

from app.models.common import Money
from app.models.order import OrderItem, PaymentMethod
from app.models.return_model import ReturnReason, ReturnStatus


class ReturnItemInput(BaseModel):
    """Input schema for return item"""
    book_id: str
    quantity: int = Field(ge=1)
    reason: Optional[str] = None


class ReturnCreate(BaseModel):
    """Schema for creating a return request"""
    order_id: str
    return_reason: ReturnReason
    return_description: str = Field(min_length=1)
    items_to_return: List[ReturnItemInput]
    customer_email: Optional[EmailStr] = None

    class Config:
        json_schema_extra = {
            "example": {
                "order_id": "507f1f77bcf86cd799439011",
                "return_reason": "damaged",
                "return_description": "Spine cracked on arrival",
                "items_to_return": [
                    {
                        "book_id": "507f191e810c19729de860eb",
                        "quantity": 1,
                        "reason": "damaged"
                    }
                ],
                "customer_email": "jane@example.com"
            }
        }


class ReturnCreateResponse(BaseModel):
    success: bool = True
    message: str = "Return request submitted successfully"
    return_request_id: str
    return_request_number: str
    total_refund_amount: Money


class ReturnItemResponse(BaseModel):
    """Response schema for return item"""
    book_id: str
    title: str
    quantity: int
    unit_price: Money
    subtotal: Money
    reason: Optional[str] = None


class ReturnResponse(BaseModel):
    """Response schema for return"""
    id: str
    return_number: str
    order_id: str
    order_number: str
    user_id: Optional[str] = None
    customer_name: str
    customer_email: str
    return_reason: ReturnReason
    return_description: str
    items_to_return: List[ReturnItemResponse]
    total_refund_amount: Money
    status: ReturnStatus
    admin_notes: Optional[str] = None
    refund_method: Optional[PaymentMethod] = None
    refund_transaction_id: Optional[str] = None
    refund_processed_at: Optional[datetime] = None
    return_deadline: datetime
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ReturnStatusUpdate(BaseModel):
    """Schema for moving a return between review states"""
    status: ReturnStatus
    admin_notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "status": "approved",
                "admin_notes": "Photos confirm the damage"
            }
        }


class ReturnRefundRequest(BaseModel):
    """Schema for processing refund"""
    refund_method: PaymentMethod
    refund_reason: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "refund_method": "paypal",
                "refund_reason": "Damaged in transit"
            }
        }


class RefundResponse(BaseModel):
    success: bool = True
    return_request_id: str
    status: ReturnStatus
    refund_method: PaymentMethod
    refund_transaction_id: str
    refund_amount: Money


class EligibleOrderResponse(BaseModel):
    """Order the requester may still open a return for"""
    order_id: str
    order_number: str
    items: List[OrderItem]
    total: Money
    delivered_at: datetime
    return_deadline: datetime
