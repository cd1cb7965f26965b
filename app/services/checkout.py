"""Checkout: price an order draft, take payment, then hand over to order creation"""

from collections import OrderedDict
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
import logging
import secrets

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.exceptions import DuplicatePayment, InsufficientStock, PaymentGatewayError, ValidationError
from app.core.payments import PaymentAuthorization, PaymentCapture, PaymentConfirmation, PaymentGateways
from app.models.common import Address, quantize_money, to_mongo
from app.models.order import Order, OrderDraft, OrderItem, PaymentMethod
from app.schemas.order import CustomerInfo, OrderItemInput
from app.services.cart import CartService
from app.services.catalog import CatalogStore
from app.services.orders import OrderLifecycleManager
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


class CheckoutService:
    """Turns a cart (or an explicit item list) into a paid order"""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        catalog: CatalogStore,
        carts: CartService,
        orders: OrderLifecycleManager,
        gateways: PaymentGateways,
        currency: str = "USD",
        tax_rate: Decimal = Decimal("0"),
    ):
        self.db = db
        self.catalog = catalog
        self.carts = carts
        self.orders = orders
        self.gateways = gateways
        self.currency = currency
        self.tax_rate = Decimal(tax_rate)

    async def build_draft(
        self,
        owner: str,
        customer: CustomerInfo,
        shipping_address: Address,
        billing_address: Optional[Address] = None,
        items: Optional[Sequence[OrderItemInput]] = None,
        user_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Tuple[OrderDraft, List[OrderItem]]:
        """
        Assemble the order draft and its line items.

        Lines come from ``items`` when given, otherwise from the owner's cart.
        Prices are snapshotted from the catalog now. Only a cart checkout
        carries the cart's gift as a free line and clears the cart afterwards.

        Raises:
            ValidationError: nothing to order
            BookNotFound: a line references a missing book
            InsufficientStock: a book already has less stock than requested
        """
        cart = await self.carts.load(owner)
        from_cart = not items
        if items:
            requested = [(item.book_id, item.quantity) for item in items]
        else:
            requested = [(line.book_id, line.quantity) for line in cart.items]
        if not requested:
            raise ValidationError("Your cart is empty")

        merged: "OrderedDict[str, int]" = OrderedDict()
        for book_id, quantity in requested:
            if quantity < 1:
                raise ValidationError("Quantity must be at least 1")
            merged[book_id] = merged.get(book_id, 0) + quantity

        order_items = []
        subtotal = Decimal("0")
        for book_id, quantity in merged.items():
            book = await self.catalog.get_book(book_id)
            if book.stock < quantity:
                raise InsufficientStock(book_id, book.title, book.stock, quantity)
            order_items.append(
                OrderItem(book_id=book.id, title=book.title, author=book.author, quantity=quantity, price=book.price)
            )
            subtotal += book.price * quantity

        if from_cart and cart.gift:
            order_items.append(
                OrderItem(
                    book_id=cart.gift.gift_id,
                    title=cart.gift.name,
                    author=f"Free {cart.gift.type}",
                    quantity=1,
                    price=Decimal("0"),
                    is_gift=True,
                )
            )

        subtotal = quantize_money(subtotal)
        shipping = await self.catalog.shipping_cost_for(shipping_address.country)
        tax = quantize_money(subtotal * self.tax_rate)
        draft = OrderDraft(
            user_id=user_id,
            customer_name=customer.name,
            customer_email=customer.email,
            customer_phone=customer.phone,
            shipping_address=shipping_address,
            billing_address=billing_address or shipping_address,
            subtotal=subtotal,
            shipping=shipping,
            tax=tax,
            total=subtotal + shipping + tax,
            notes=notes,
            cart_owner=owner if from_cart else None,
        )
        return draft, order_items

    async def authorize(
        self,
        method: PaymentMethod,
        owner: str,
        customer: CustomerInfo,
        shipping_address: Address,
        billing_address: Optional[Address] = None,
        items: Optional[Sequence[OrderItemInput]] = None,
    ) -> PaymentAuthorization:
        """Price the cart and open a payment with the gateway for the storefront to confirm"""
        adapter = self.gateways.get(method)
        draft, _ = await self.build_draft(owner, customer, shipping_address, billing_address, items)
        reference = f"CHK-{utcnow().strftime('%Y%m%d')}-{secrets.token_hex(4).upper()}"
        authorization = await adapter.authorize(draft.total, self.currency, reference)
        logger.info(f"Authorized {adapter.method.value} payment {authorization.reference} for {draft.total} {self.currency}")
        return authorization

    async def complete(
        self,
        owner: str,
        customer: CustomerInfo,
        shipping_address: Address,
        payment: PaymentConfirmation,
        billing_address: Optional[Address] = None,
        items: Optional[Sequence[OrderItemInput]] = None,
        user_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """
        Capture the confirmed payment and create the order.

        No order is attempted unless the gateway confirms a capture of exactly
        the draft total in the store currency. A payment pays for at most one
        order: a confirmation already used by an order, or already reversed,
        raises DuplicatePayment and is not refunded again. If order creation
        fails after the capture for any other reason, the payment is reversed
        where possible and recorded for reconciliation, then the original
        error is raised.
        """
        draft, order_items = await self.build_draft(
            owner, customer, shipping_address, billing_address, items, user_id=user_id, notes=notes
        )
        adapter = self.gateways.get(payment.method)
        await self._ensure_unused(adapter.method, payment.payment_reference)

        capture = await adapter.capture(payment, draft.total, self.currency)
        logger.info(f"Captured {capture.method.value} payment {capture.payment_id} for {capture.amount} {capture.currency}")

        if capture.amount != draft.total or capture.currency.upper() != self.currency.upper():
            reason = (
                f"captured {capture.amount} {capture.currency} does not match "
                f"order total {draft.total} {self.currency}"
            )
            await self._reconcile(capture, reason)
            raise PaymentGatewayError(capture.method.value, reason)

        draft.payment_method = capture.method
        draft.payment_id = capture.payment_id
        draft.payment_transaction_id = capture.transaction_ref

        try:
            return await self.orders.create_order(draft, order_items)
        except DuplicateKeyError as e:
            # a concurrent checkout already placed the order for this capture
            if await self.db.orders.find_one({"payment_transaction_id": capture.transaction_ref}):
                logger.warning(f"Rejected replay of {capture.method.value} payment {capture.payment_id}")
                raise DuplicatePayment(capture.payment_id) from e
            await self._reconcile(capture, f"order creation failed: {e}")
            raise
        except Exception as e:
            await self._reconcile(capture, f"order creation failed: {e}")
            raise

    async def _ensure_unused(self, method: PaymentMethod, payment_id: str):
        """Reject a payment that already paid for an order or was reversed"""
        query = {"payment_method": method.value, "payment_id": payment_id}
        if await self.db.orders.find_one(query) or await self.db.payment_reconciliation.find_one(query):
            logger.warning(f"Rejected replay of {method.value} payment {payment_id}")
            raise DuplicatePayment(payment_id)

    async def _reconcile(self, capture: PaymentCapture, reason: str):
        """Attempt to refund a capture that has no order and record it either way"""
        reversal_reference = None
        reversal_error = None
        try:
            adapter = self.gateways.get(capture.method)
            result = await adapter.refund(
                capture.transaction_ref,
                capture.amount,
                capture.currency,
                reason="Order could not be created",
                idempotency_key=f"reversal-{capture.payment_id}",
            )
            reversal_reference = result.refund_ref
        except PaymentGatewayError as e:
            reversal_error = e.reason
            logger.error(f"Reversal of {capture.method.value} payment {capture.payment_id} failed: {e.reason}")

        record = {
            "payment_method": capture.method.value,
            "payment_id": capture.payment_id,
            "transaction_id": capture.transaction_ref,
            "amount": capture.amount,
            "currency": capture.currency,
            "reason": reason,
            "reversal_attempted": True,
            "reversal_reference": reversal_reference,
            "reversal_error": reversal_error,
            "resolved": reversal_reference is not None,
            "created_at": utcnow(),
        }
        try:
            await self.db.payment_reconciliation.insert_one(to_mongo(record))
        except PyMongoError as e:
            logger.critical(f"Could not record unreconciled payment {capture.payment_id} ({reason}): {e}")
            return
        logger.warning(
            f"Payment {capture.payment_id} captured without an order ({reason}); "
            f"reversal {'issued: ' + reversal_reference if reversal_reference else 'failed'}"
        )
