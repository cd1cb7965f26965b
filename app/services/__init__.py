"""Store services: catalog, cart, checkout, orders and returns"""

from app.services.catalog import CatalogStore
from app.services.cart import CartService, guest_owner
from app.services.orders import OrderLifecycleManager
from app.services.returns import ReturnRequestManager
from app.services.checkout import CheckoutService
from app.services.requester import Requester

__all__ = [
    "CatalogStore",
    "CartService",
    "CheckoutService",
    "OrderLifecycleManager",
    "Requester",
    "ReturnRequestManager",
    "guest_owner",
]
