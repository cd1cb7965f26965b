"""Who is asking: an authenticated user, a guest identified by email, or an admin"""

from typing import Optional
import re

from pydantic import BaseModel

from app.models.order import Order


class Requester(BaseModel):
    """Identity an order or return operation is performed on behalf of"""
    user_id: Optional[str] = None
    email: Optional[str] = None
    is_admin: bool = False

    @property
    def is_anonymous(self) -> bool:
        return not self.user_id and not self.email

    def owns(self, order: Order) -> bool:
        """Owner by user id, or by case-insensitive email for guest orders"""
        if self.user_id and order.user_id == self.user_id:
            return True
        if self.email and order.customer_email.lower() == self.email.strip().lower():
            return True
        return False

    def can_access(self, order: Order) -> bool:
        return self.is_admin or self.owns(order)

    def owner_filter(self, user_field: str = "user_id", email_field: str = "customer_email") -> dict:
        """MongoDB filter selecting documents this requester owns"""
        conditions = []
        if self.user_id:
            conditions.append({user_field: self.user_id})
        if self.email:
            pattern = f"^{re.escape(self.email.strip())}$"
            conditions.append({email_field: {"$regex": pattern, "$options": "i"}})
        if not conditions:
            # Matches nothing
            return {"_id": None}
        return {"$or": conditions}
