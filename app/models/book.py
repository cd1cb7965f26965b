"""Catalog models: books, categories and gift-with-purchase items"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from enum import Enum

from app.models.common import Money, PyObjectId
from app.utils.dates import utcnow


class BookCondition(str, Enum):
    """Physical condition of a (possibly second-hand) book"""
    NEW = "New"
    LIKE_NEW = "Like New"
    VERY_GOOD = "Very Good"
    GOOD = "Good"
    FAIR = "Fair"


class GiftType(str, Enum):
    NOVEL = "novel"
    NOTEBOOK = "notebook"


class Book(BaseModel):
    """Book model"""
    id: Optional[PyObjectId] = Field(None, alias="_id")
    title: str
    author: str
    isbn: Optional[str] = None
    category_id: Optional[str] = None
    description: Optional[str] = None
    condition: BookCondition = BookCondition.NEW
    price: Money = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    image_url: Optional[str] = None
    featured: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "title": "The Hobbit",
                "author": "J.R.R. Tolkien",
                "isbn": "9780547928227",
                "condition": "Very Good",
                "price": "12.50",
                "stock": 3,
                "featured": True
            }
        }


class Category(BaseModel):
    """Book category model"""
    id: Optional[PyObjectId] = Field(None, alias="_id")
    name: str
    slug: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    class Config:
        populate_by_name = True


class GiftCategory(BaseModel):
    """Grouping of promotional gift items"""
    id: Optional[PyObjectId] = Field(None, alias="_id")
    name: str
    type: GiftType
    description: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        populate_by_name = True


class GiftItem(BaseModel):
    """Item offered free with a book purchase; has no stock of its own"""
    id: Optional[PyObjectId] = Field(None, alias="_id")
    category_id: str
    name: str
    type: GiftType
    description: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        populate_by_name = True


class ShippingRate(BaseModel):
    """Flat shipping cost for a destination country"""
    id: Optional[PyObjectId] = Field(None, alias="_id")
    country_code: str
    country_name: str
    shipping_cost: Money = Field(ge=0)
    min_delivery_days: int = Field(ge=0)
    max_delivery_days: int = Field(ge=0)
    is_default: bool = False
    is_active: bool = True
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        populate_by_name = True
