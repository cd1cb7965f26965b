"""Return request endpoints for customers and the admin review queue"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import List, Optional

from app.api.deps import get_optional_user, get_return_manager, require_admin, requester_for
from app.models.return_model import ReturnRequest, ReturnStatus
from app.schemas.return_schema import (
    EligibleOrderResponse,
    RefundResponse,
    ReturnCreate,
    ReturnCreateResponse,
    ReturnRefundRequest,
    ReturnResponse,
    ReturnStatusUpdate,
)
from app.services.returns import ReturnRequestManager

router = APIRouter()
admin_router = APIRouter()


def return_response(return_request: ReturnRequest) -> ReturnResponse:
    return ReturnResponse(**return_request.model_dump())


@router.get("/returns/eligible-orders", response_model=List[EligibleOrderResponse])
async def eligible_orders(
    email: Optional[str] = None,
    current_user: Optional[dict] = Depends(get_optional_user),
    returns: ReturnRequestManager = Depends(get_return_manager)
):
    """
    Delivered orders still inside their return window and without an open return.
    Guests pass ?email=.
    """
    orders = await returns.eligible_orders(requester_for(current_user, email))
    return [
        EligibleOrderResponse(
            order_id=order.id,
            order_number=order.order_number,
            items=order.book_items,
            total=order.total,
            delivered_at=order.delivered_at,
            return_deadline=order.return_deadline,
        )
        for order in orders
    ]


@router.post("/returns/request", response_model=ReturnCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_return_request(
    return_data: ReturnCreate,
    current_user: Optional[dict] = Depends(get_optional_user),
    returns: ReturnRequestManager = Depends(get_return_manager)
):
    """
    Open a return request for a delivered order.
    """
    if not current_user and not return_data.customer_email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email required for guest users"
        )
    return_request = await returns.create_return_request(
        return_data.order_id,
        requester_for(current_user, return_data.customer_email),
        return_data.return_reason,
        return_data.return_description,
        return_data.items_to_return,
    )
    return ReturnCreateResponse(
        return_request_id=return_request.id,
        return_request_number=return_request.return_number,
        total_refund_amount=return_request.total_refund_amount,
    )


@router.get("/returns/my-requests", response_model=List[ReturnResponse])
async def my_return_requests(
    email: Optional[str] = None,
    current_user: Optional[dict] = Depends(get_optional_user),
    returns: ReturnRequestManager = Depends(get_return_manager)
):
    """
    The requester's return requests, newest first.
    """
    requests = await returns.my_requests(requester_for(current_user, email))
    return [return_response(rr) for rr in requests]


# Admin

@admin_router.get("/returns", response_model=List[ReturnResponse])
async def list_returns(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[ReturnStatus] = None,
    current_user: dict = Depends(require_admin),
    returns: ReturnRequestManager = Depends(get_return_manager)
):
    """
    List all returns (Admin only).
    """
    skip = (page - 1) * limit
    return [return_response(rr) for rr in await returns.list_returns(status=status, skip=skip, limit=limit)]


@admin_router.get("/returns/{return_id}", response_model=ReturnResponse)
async def get_return(
    return_id: str,
    current_user: dict = Depends(require_admin),
    returns: ReturnRequestManager = Depends(get_return_manager)
):
    """
    Get return details (Admin only).
    """
    return return_response(await returns.get_return(return_id))


@admin_router.put("/returns/{return_id}/status", response_model=ReturnResponse)
async def update_return_status(
    return_id: str,
    status_update: ReturnStatusUpdate,
    current_user: dict = Depends(require_admin),
    returns: ReturnRequestManager = Depends(get_return_manager)
):
    """
    Approve, reject or cancel a return (Admin only).

    Refunds are issued through the refund endpoint, never by setting the status.
    """
    return_request = await returns.update_return_status(return_id, status_update.status, status_update.admin_notes)
    return return_response(return_request)


@admin_router.post("/returns/{return_id}/refund", response_model=RefundResponse)
async def process_refund(
    return_id: str,
    refund_data: ReturnRefundRequest,
    current_user: dict = Depends(require_admin),
    returns: ReturnRequestManager = Depends(get_return_manager)
):
    """
    Issue the refund for an approved return (Admin only).
    """
    return_request = await returns.process_refund(
        return_id,
        refund_data.refund_method,
        refund_reason=refund_data.refund_reason,
        admin_id=current_user["_id"],
    )
    return RefundResponse(
        return_request_id=return_request.id,
        status=return_request.status,
        refund_method=return_request.refund_method,
        refund_transaction_id=return_request.refund_transaction_id,
        refund_amount=return_request.total_refund_amount,
    )
