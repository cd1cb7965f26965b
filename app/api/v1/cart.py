"""Cart endpoints for signed-in users and guest sessions"""

from fastapi import APIRouter, Depends, Header, HTTPException, status
from typing import Optional

from app.api.deps import get_cart_owner, get_cart_service, get_current_user
from app.schemas.cart import CartItemAdd, CartItemQuantity, CartResponse, GiftSelect
from app.schemas.common import SuccessResponse
from app.services.cart import CartService

router = APIRouter()


@router.get("/cart", response_model=CartResponse)
async def get_cart(
    owner: str = Depends(get_cart_owner),
    carts: CartService = Depends(get_cart_service)
):
    """
    Get the current cart with live catalog prices.
    """
    return await carts.get_cart(owner)


@router.post("/cart/items", response_model=CartResponse)
async def add_cart_item(
    item: CartItemAdd,
    owner: str = Depends(get_cart_owner),
    carts: CartService = Depends(get_cart_service)
):
    """
    Add a book to the cart, merging with an existing line.
    """
    return await carts.add_item(owner, item.book_id, item.quantity)


@router.put("/cart/items/{book_id}", response_model=CartResponse)
async def update_cart_item(
    book_id: str,
    update: CartItemQuantity,
    owner: str = Depends(get_cart_owner),
    carts: CartService = Depends(get_cart_service)
):
    """
    Set a line's quantity; 0 removes the line.
    """
    return await carts.set_quantity(owner, book_id, update.quantity)


@router.delete("/cart/items/{book_id}", response_model=CartResponse)
async def remove_cart_item(
    book_id: str,
    owner: str = Depends(get_cart_owner),
    carts: CartService = Depends(get_cart_service)
):
    return await carts.remove_item(owner, book_id)


@router.delete("/cart", response_model=SuccessResponse)
async def clear_cart(
    owner: str = Depends(get_cart_owner),
    carts: CartService = Depends(get_cart_service)
):
    await carts.clear(owner)
    return SuccessResponse(message="Cart cleared")


@router.post("/cart/gift", response_model=CartResponse)
async def select_gift(
    selection: GiftSelect,
    owner: str = Depends(get_cart_owner),
    carts: CartService = Depends(get_cart_service)
):
    """
    Choose the free gift, replacing any previous choice.
    """
    return await carts.select_gift(owner, selection.gift_id)


@router.delete("/cart/gift", response_model=CartResponse)
async def remove_gift(
    owner: str = Depends(get_cart_owner),
    carts: CartService = Depends(get_cart_service)
):
    return await carts.remove_gift(owner)


@router.post("/cart/merge", response_model=CartResponse)
async def merge_guest_cart(
    x_session_id: Optional[str] = Header(None),
    current_user: dict = Depends(get_current_user),
    carts: CartService = Depends(get_cart_service)
):
    """
    Merge the guest session's cart into the signed-in user's cart.
    """
    if not x_session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Session-Id header is required"
        )
    return await carts.merge_guest_cart(x_session_id, current_user["_id"])
