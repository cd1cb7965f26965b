"""Order endpoints: checkout completion, order history, tracking and admin fulfilment"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import List, Optional

from app.api.deps import (
    get_cart_owner,
    get_checkout_service,
    get_current_user,
    get_optional_user,
    get_order_manager,
    require_admin,
    requester_for,
)
from app.models.order import Order, OrderStatus
from app.schemas.order import (
    CompleteOrderRequest,
    CompleteOrderResponse,
    OrderResponse,
    OrderStatusUpdate,
    TrackingItem,
    TrackingResponse,
    TrackOrderRequest,
)
from app.services.checkout import CheckoutService
from app.services.orders import OrderLifecycleManager

router = APIRouter()
admin_router = APIRouter()


def order_response(order: Order) -> OrderResponse:
    return OrderResponse(**order.model_dump())


@router.post("/orders/complete", response_model=CompleteOrderResponse, status_code=status.HTTP_201_CREATED)
async def complete_order(
    order_data: CompleteOrderRequest,
    owner: str = Depends(get_cart_owner),
    current_user: Optional[dict] = Depends(get_optional_user),
    checkout: CheckoutService = Depends(get_checkout_service)
):
    """
    Capture the confirmed payment and place the order.

    Stock is re-checked and decremented atomically; if any book has run out
    the order is not created and the payment is reversed.
    """
    order = await checkout.complete(
        owner,
        order_data.customer,
        order_data.shipping_address,
        order_data.payment,
        billing_address=order_data.billing_address,
        items=order_data.items,
        user_id=current_user["_id"] if current_user else None,
        notes=order_data.notes,
    )
    return CompleteOrderResponse(order_id=order.id, order_number=order.order_number, total=order.total)


@router.get("/orders", response_model=List[OrderResponse])
async def list_my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    orders: OrderLifecycleManager = Depends(get_order_manager)
):
    """
    List the signed-in customer's orders.
    """
    skip = (page - 1) * limit
    requester = requester_for(current_user)
    return [order_response(order) for order in await orders.list_orders(requester, skip=skip, limit=limit)]


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    email: Optional[str] = None,
    current_user: Optional[dict] = Depends(get_optional_user),
    orders: OrderLifecycleManager = Depends(get_order_manager)
):
    """
    Get order details. Guests pass the order's email as ?email=.
    """
    if not current_user and not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Sign in or provide the order email",
        )
    order = await orders.get_order(order_id, requester_for(current_user, email))
    return order_response(order)


@router.post("/orders/track", response_model=TrackingResponse)
async def track_order(
    track_data: TrackOrderRequest,
    orders: OrderLifecycleManager = Depends(get_order_manager)
):
    """
    Public order tracking; requires the exact email the order was placed with.
    """
    order = await orders.track_order(track_data.order_id, track_data.email)
    return TrackingResponse(
        order_number=order.order_number,
        status=order.status,
        tracking_number=order.tracking_number,
        shipping_carrier=order.shipping_carrier,
        items=[
            TrackingItem(title=item.title, author=item.author, quantity=item.quantity, price=item.price)
            for item in order.items
        ],
        total=order.total,
        created_at=order.created_at,
        updated_at=order.updated_at,
        delivered_at=order.delivered_at,
    )


# Admin

@admin_router.get("/orders", response_model=List[OrderResponse])
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = None,
    current_user: dict = Depends(require_admin),
    orders: OrderLifecycleManager = Depends(get_order_manager)
):
    """
    List all orders (Admin only).
    """
    skip = (page - 1) * limit
    return [order_response(order) for order in await orders.list_orders(status=status, skip=skip, limit=limit)]


@admin_router.put("/orders/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str,
    status_update: OrderStatusUpdate,
    current_user: dict = Depends(require_admin),
    orders: OrderLifecycleManager = Depends(get_order_manager)
):
    """
    Update order status (Admin only).
    """
    order = await orders.update_order_status(
        order_id,
        status_update.status,
        tracking_number=status_update.tracking_number,
        shipping_carrier=status_update.shipping_carrier,
        notes=status_update.notes,
    )
    return order_response(order)
