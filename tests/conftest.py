"""Pytest fixtures for the bookshop tests."""

import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("EMAIL_ENABLED", "false")

from decimal import Decimal
from typing import List, Optional

import httpx
import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

from app.core.notifications import NotificationDispatcher
from app.core.payments import PaymentGateways
from app.core.payments.base import (
    PaymentAuthorization,
    PaymentCapture,
    PaymentGatewayAdapter,
    RefundResult,
)
from app.core.payments.manual import ManualRefundGateway
from app.core.security import create_access_token
from app.models.book import Book
from app.models.common import Address, to_mongo
from app.models.order import Order, OrderDraft, OrderItem, OrderStatus, PaymentMethod
from app.services import (
    CartService,
    CatalogStore,
    CheckoutService,
    OrderLifecycleManager,
    ReturnRequestManager,
)

ADDRESS = Address(street="221B Baker Street", city="London", zip="NW1 6XE", country="GB")
CUSTOMER_EMAIL = "jane@example.com"


class RecordingSender:
    """Stands in for EmailSender; records what would have been sent."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def send_order_confirmation(self, order):
        self._record("order_confirmation", order)

    async def send_status_update(self, order, new_status):
        self._record(f"status_update:{new_status.value}", order)

    async def send_refund_processed(self, return_request):
        self._record("refund_processed", return_request)

    def _record(self, kind, payload):
        if self.fail:
            raise ConnectionError("SMTP server unavailable")
        self.sent.append((kind, payload))

    @property
    def kinds(self) -> List[str]:
        return [kind for kind, _ in self.sent]


class FakeGateway(PaymentGatewayAdapter):
    """In-memory gateway with scriptable failures."""

    def __init__(self, method: PaymentMethod = PaymentMethod.PAYPAL):
        super().__init__(timeout=1.0)
        self.method = method
        self.fail_capture = False
        self.captured_amount: Optional[Decimal] = None
        self.captured_currency: Optional[str] = None
        self.refund_failures = 0
        self.captures = []
        self.refunds = []

    async def authorize(self, amount, currency, reference):
        return PaymentAuthorization(
            method=self.method,
            reference=f"AUTH-{reference}",
            amount=amount,
            currency=currency,
            client_data={"approve_url": "https://payments.example.test/approve"},
        )

    async def capture(self, confirmation, amount, currency):
        self.captures.append({"confirmation": confirmation, "amount": amount})
        if self.fail_capture:
            raise self._error("card declined")
        return PaymentCapture(
            method=self.method,
            payment_id=getattr(confirmation, "order_id", "PAY-1"),
            transaction_ref=f"CAP-{len(self.captures)}",
            amount=self.captured_amount if self.captured_amount is not None else amount,
            currency=self.captured_currency or currency,
        )

    async def refund(self, transaction_ref, amount, currency, reason=None, idempotency_key=None):
        self.refunds.append({
            "transaction_ref": transaction_ref,
            "amount": amount,
            "idempotency_key": idempotency_key,
        })
        if self.refund_failures > 0:
            self.refund_failures -= 1
            raise self._error("gateway unavailable")
        return RefundResult(
            method=self.method,
            refund_ref=f"REF-{len(self.refunds)}",
            amount=amount,
            status="completed",
        )


@pytest.fixture
def db():
    return AsyncMongoMockClient()["bookshop_test"]


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def notifier(sender):
    return NotificationDispatcher(sender)


@pytest.fixture
def gateway():
    return FakeGateway(PaymentMethod.PAYPAL)


@pytest.fixture
def gateways(gateway):
    return PaymentGateways([gateway, ManualRefundGateway(timeout=1.0)])


@pytest.fixture
def catalog(db):
    return CatalogStore(db, default_shipping_cost=Decimal("5.00"))


@pytest.fixture
def carts(db, catalog):
    return CartService(db, catalog)


@pytest.fixture
def orders(db, notifier):
    return OrderLifecycleManager(db, notifier, return_window_days=30)


@pytest.fixture
def returns(db, gateways, notifier):
    return ReturnRequestManager(db, gateways, notifier, currency="USD", return_window_days=30)


@pytest.fixture
def checkout(db, catalog, carts, orders, gateways):
    return CheckoutService(db, catalog, carts, orders, gateways, currency="USD", tax_rate=Decimal("0.10"))


@pytest.fixture
def add_book(catalog):
    """Create a book in the catalog."""

    async def _add_book(title="The Hobbit", author="J.R.R. Tolkien", price="10.00", stock=3) -> Book:
        return await catalog.create_book({"title": title, "author": author, "price": Decimal(price), "stock": stock})

    return _add_book


def order_item(book: Book, quantity: int) -> OrderItem:
    return OrderItem(book_id=book.id, title=book.title, author=book.author, quantity=quantity, price=book.price)


def make_draft(items: List[OrderItem], email: str = CUSTOMER_EMAIL, user_id: Optional[str] = None, cart_owner=None):
    subtotal = sum((item.price * item.quantity for item in items), Decimal("0"))
    return OrderDraft(
        user_id=user_id,
        customer_name="Jane Doe",
        customer_email=email,
        shipping_address=ADDRESS,
        billing_address=ADDRESS,
        subtotal=subtotal,
        shipping=Decimal("0"),
        tax=Decimal("0"),
        total=subtotal,
        payment_method=PaymentMethod.PAYPAL,
        payment_id="PAYPAL-ORDER-1",
        payment_transaction_id="CAP-1",
        cart_owner=cart_owner,
    )


@pytest.fixture
def place_order(orders):
    """Create a paid order for (book, quantity) pairs."""

    async def _place_order(lines, email: str = CUSTOMER_EMAIL, user_id: Optional[str] = None) -> Order:
        items = [order_item(book, quantity) for book, quantity in lines]
        return await orders.create_order(make_draft(items, email=email, user_id=user_id), items)

    return _place_order


@pytest.fixture
def delivered_order(orders, place_order):
    """Create an order and mark it delivered."""

    async def _delivered_order(lines, email: str = CUSTOMER_EMAIL, user_id: Optional[str] = None) -> Order:
        order = await place_order(lines, email=email, user_id=user_id)
        return await orders.update_order_status(order.id, OrderStatus.DELIVERED)

    return _delivered_order


async def _insert_user(db, email: str, role: str) -> dict:
    user = {"_id": ObjectId(), "email": email, "name": email.split("@")[0], "role": role, "active": True}
    await db.users.insert_one(to_mongo(user))
    user["_id"] = str(user["_id"])
    user["token"] = create_access_token({"sub": user["_id"]})
    return user


@pytest.fixture
async def customer(db):
    return await _insert_user(db, CUSTOMER_EMAIL, "client")


@pytest.fixture
async def admin(db):
    return await _insert_user(db, "admin@a2zbookshop.com", "admin")


def auth(user: dict) -> dict:
    return {"Authorization": f"Bearer {user['token']}"}


@pytest.fixture
async def client(db, gateways, notifier):
    """HTTP client against the app with an in-memory database and fake gateways."""
    from app.api.deps import get_notifier, get_payment_gateways
    from app.database import get_database
    from app.main import app

    app.dependency_overrides[get_database] = lambda: db
    app.dependency_overrides[get_payment_gateways] = lambda: gateways
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.clear()
