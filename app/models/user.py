"""User models"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional
from enum import Enum

from app.models.common import PyObjectId
from app.utils.dates import utcnow


class UserRole(str, Enum):
    """User role enumeration"""
    CLIENT = "client"
    SUPPORT = "support"
    PRODUCT_MANAGER = "product_manager"
    ADMIN = "admin"


ADMIN_ROLES = (UserRole.ADMIN, UserRole.PRODUCT_MANAGER, UserRole.SUPPORT)


class User(BaseModel):
    """User model for authentication and authorization"""
    id: Optional[PyObjectId] = Field(None, alias="_id")
    email: EmailStr
    name: Optional[str] = None
    role: UserRole = UserRole.CLIENT
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "email": "user@example.com",
                "name": "John Doe",
                "role": "client",
                "active": True
            }
        }
