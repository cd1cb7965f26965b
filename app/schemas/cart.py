"""Cart schemas"""

from pydantic import BaseModel, Field
from typing import Optional, List

from app.models.common import Money
from app.models.order import CartGift


class CartItemAdd(BaseModel):
    """Input schema for adding a book to the cart"""
    book_id: str
    quantity: int = Field(default=1, ge=1)

    class Config:
        json_schema_extra = {
            "example": {
                "book_id": "507f1f77bcf86cd799439011",
                "quantity": 2
            }
        }


class CartItemQuantity(BaseModel):
    """New quantity for a cart line; 0 removes it"""
    quantity: int = Field(ge=0)


class GiftSelect(BaseModel):
    gift_id: str


class CartLineResponse(BaseModel):
    """Cart line joined with the current catalog record"""
    book_id: str
    title: str
    author: str
    image_url: Optional[str] = None
    price: Money
    stock: int
    quantity: int
    subtotal: Money


class CartResponse(BaseModel):
    """Response schema for cart"""
    owner: str
    items: List[CartLineResponse]
    gift: Optional[CartGift] = None
    item_count: int
    subtotal: Money
