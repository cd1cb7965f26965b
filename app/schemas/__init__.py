"""Pydantic schemas for request/response validation"""

from app.schemas.common import SuccessResponse, ErrorResponse
from app.schemas.book import (
    BookCreate,
    BookUpdate,
    BookResponse,
    CategoryCreate,
    CategoryResponse,
    GiftCategoryCreate,
    GiftCategoryResponse,
    GiftItemCreate,
    GiftItemResponse,
    ShippingRateUpsert,
    ShippingRateResponse,
)
from app.schemas.cart import (
    CartItemAdd,
    CartItemQuantity,
    CartLineResponse,
    CartResponse,
    GiftSelect,
)
from app.schemas.order import (
    AuthorizeResponse,
    CheckoutRequest,
    CompleteOrderRequest,
    CompleteOrderResponse,
    CustomerInfo,
    OrderItemInput,
    OrderItemResponse,
    OrderResponse,
    OrderStatusUpdate,
    PaymentConfigResponse,
    TrackOrderRequest,
    TrackingResponse,
)
from app.schemas.return_schema import (
    EligibleOrderResponse,
    RefundResponse,
    ReturnCreate,
    ReturnCreateResponse,
    ReturnItemInput,
    ReturnRefundRequest,
    ReturnResponse,
    ReturnStatusUpdate,
)

__all__ = [
    "SuccessResponse",
    "ErrorResponse",
    "BookCreate",
    "BookUpdate",
    "BookResponse",
    "CategoryCreate",
    "CategoryResponse",
    "GiftCategoryCreate",
    "GiftCategoryResponse",
    "GiftItemCreate",
    "GiftItemResponse",
    "ShippingRateUpsert",
    "ShippingRateResponse",
    "CartItemAdd",
    "CartItemQuantity",
    "CartLineResponse",
    "CartResponse",
    "GiftSelect",
    "AuthorizeResponse",
    "CheckoutRequest",
    "CompleteOrderRequest",
    "CompleteOrderResponse",
    "CustomerInfo",
    "OrderItemInput",
    "OrderItemResponse",
    "OrderResponse",
    "OrderStatusUpdate",
    "PaymentConfigResponse",
    "TrackOrderRequest",
    "TrackingResponse",
    "EligibleOrderResponse",
    "RefundResponse",
    "ReturnCreate",
    "ReturnCreateResponse",
    "ReturnItemInput",
    "ReturnRefundRequest",
    "ReturnResponse",
    "ReturnStatusUpdate",
]
