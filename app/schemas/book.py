"""Catalog schemas for books, categories, gifts and shipping rates"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from app.models.book import BookCondition, GiftType
from app.models.common import Money


class BookCreate(BaseModel):
    """Schema for creating a new book"""
    title: str = Field(min_length=1)
    author: str = Field(min_length=1)
    isbn: Optional[str] = None
    category_id: Optional[str] = None
    description: Optional[str] = None
    condition: BookCondition = BookCondition.NEW
    price: Money = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    image_url: Optional[str] = None
    featured: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "title": "The Hobbit",
                "author": "J.R.R. Tolkien",
                "isbn": "9780547928227",
                "condition": "Very Good",
                "price": "12.50",
                "stock": 3,
                "featured": False
            }
        }


class BookUpdate(BaseModel):
    """Schema for updating a book"""
    title: Optional[str] = Field(None, min_length=1)
    author: Optional[str] = Field(None, min_length=1)
    isbn: Optional[str] = None
    category_id: Optional[str] = None
    description: Optional[str] = None
    condition: Optional[BookCondition] = None
    price: Optional[Money] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = None
    featured: Optional[bool] = None

    class Config:
        json_schema_extra = {
            "example": {
                "price": "14.00",
                "stock": 5
            }
        }


class BookResponse(BaseModel):
    """Schema for book response"""
    id: str
    title: str
    author: str
    isbn: Optional[str] = None
    category_id: Optional[str] = None
    description: Optional[str] = None
    condition: BookCondition
    price: Money
    stock: int
    image_url: Optional[str] = None
    featured: bool
    created_at: datetime
    updated_at: datetime


class CategoryCreate(BaseModel):
    """Schema for creating a category"""
    name: str = Field(min_length=1)
    slug: str = Field(min_length=1, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = None


class CategoryResponse(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None


class GiftCategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    type: GiftType
    description: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0


class GiftCategoryResponse(GiftCategoryCreate):
    id: str


class GiftItemCreate(BaseModel):
    category_id: str
    name: str = Field(min_length=1)
    type: GiftType
    description: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0


class GiftItemResponse(GiftItemCreate):
    id: str


class ShippingRateUpsert(BaseModel):
    """Schema for creating or replacing a country's shipping rate"""
    country_name: str
    shipping_cost: Money = Field(ge=0)
    min_delivery_days: int = Field(default=3, ge=0)
    max_delivery_days: int = Field(default=7, ge=0)
    is_default: bool = False
    is_active: bool = True


class ShippingRateResponse(ShippingRateUpsert):
    country_code: str
