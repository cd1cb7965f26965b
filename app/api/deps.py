"""FastAPI dependencies for authentication, database access and services"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, status, Header
from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId

from app.config import settings
from app.core.email import EmailSender, SmtpConfig
from app.core.notifications import NotificationDispatcher
from app.core.payments import PaymentGateways, build_gateways
from app.core.security import verify_token
from app.database import get_database
from app.models.user import ADMIN_ROLES
from app.services import (
    CartService,
    CatalogStore,
    CheckoutService,
    OrderLifecycleManager,
    Requester,
    ReturnRequestManager,
    guest_owner,
)
from app.utils.validators import validate_object_id


async def _user_from_token(token: str, db: AsyncIOMotorDatabase) -> Optional[dict]:
    payload = verify_token(token)
    if not payload:
        return None

    user_id = payload.get("sub")
    if not user_id or not validate_object_id(user_id):
        return None

    user = await db.users.find_one({"_id": ObjectId(user_id)})
    if not user:
        return None

    # Convert ObjectId to string for JSON serialization
    user["_id"] = str(user["_id"])
    return user


async def get_current_user(
    authorization: str = Header(None),
    db: AsyncIOMotorDatabase = Depends(get_database)
) -> dict:
    """
    Dependency to get current authenticated user from JWT token

    Args:
        authorization: Authorization header with Bearer token
        db: Database instance

    Returns:
        User dictionary from database

    Raises:
        HTTPException: If authentication fails
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await _user_from_token(authorization.replace("Bearer ", ""), db)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.get("active", True):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    return user


async def require_admin(
    current_user: dict = Depends(get_current_user)
) -> dict:
    """
    Dependency to require admin, product_manager, or support role

    Raises:
        HTTPException: If user doesn't have required permissions
    """
    allowed_roles = [role.value for role in ADMIN_ROLES]

    if current_user.get("role") not in allowed_roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions. Admin role required.",
        )

    return current_user


async def get_optional_user(
    authorization: Optional[str] = Header(None),
    db: AsyncIOMotorDatabase = Depends(get_database)
) -> Optional[dict]:
    """
    Dependency to optionally get current user (doesn't require authentication)

    A missing, malformed or expired token yields None.
    """
    if not authorization or not authorization.startswith("Bearer "):
        return None

    user = await _user_from_token(authorization.replace("Bearer ", ""), db)
    if user and user.get("active", True):
        return user
    return None


def requester_for(user: Optional[dict], email: Optional[str] = None) -> Requester:
    """Identity for an order or return operation: the signed-in user, else the guest's email"""
    if user:
        return Requester(
            user_id=user["_id"],
            email=user.get("email"),
            is_admin=user.get("role") in [role.value for role in ADMIN_ROLES],
        )
    return Requester(email=email)


async def get_cart_owner(
    x_session_id: Optional[str] = Header(None),
    current_user: Optional[dict] = Depends(get_optional_user),
) -> str:
    """
    Cart owner key: the signed-in user's id, else the guest session id

    Raises:
        HTTPException: If neither is present
    """
    if current_user:
        return current_user["_id"]
    if x_session_id:
        return guest_owner(x_session_id)
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="Sign in or send an X-Session-Id header",
    )


@lru_cache()
def get_payment_gateways() -> PaymentGateways:
    return build_gateways(settings)


@lru_cache()
def get_notifier() -> NotificationDispatcher:
    return NotificationDispatcher(EmailSender(SmtpConfig.from_settings(settings)))


def get_catalog(db: AsyncIOMotorDatabase = Depends(get_database)) -> CatalogStore:
    return CatalogStore(db, default_shipping_cost=settings.default_shipping_cost)


def get_cart_service(
    db: AsyncIOMotorDatabase = Depends(get_database),
    catalog: CatalogStore = Depends(get_catalog),
) -> CartService:
    return CartService(db, catalog)


def get_order_manager(
    db: AsyncIOMotorDatabase = Depends(get_database),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> OrderLifecycleManager:
    return OrderLifecycleManager(db, notifier, return_window_days=settings.return_window_days)


def get_return_manager(
    db: AsyncIOMotorDatabase = Depends(get_database),
    gateways: PaymentGateways = Depends(get_payment_gateways),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> ReturnRequestManager:
    return ReturnRequestManager(
        db,
        gateways,
        notifier,
        currency=settings.currency,
        return_window_days=settings.return_window_days,
    )


def get_checkout_service(
    db: AsyncIOMotorDatabase = Depends(get_database),
    catalog: CatalogStore = Depends(get_catalog),
    carts: CartService = Depends(get_cart_service),
    orders: OrderLifecycleManager = Depends(get_order_manager),
    gateways: PaymentGateways = Depends(get_payment_gateways),
) -> CheckoutService:
    return CheckoutService(
        db,
        catalog,
        carts,
        orders,
        gateways,
        currency=settings.currency,
        tax_rate=settings.tax_rate,
    )
