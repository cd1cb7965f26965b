"""Order lifecycle: atomic creation with stock decrement, status transitions and lookups"""

from collections import OrderedDict
from typing import List, Optional, Sequence, Tuple
import logging

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from app.core.exceptions import (
    BookNotFound,
    InsufficientStock,
    InvalidStatusTransition,
    NotOwner,
    OrderNotFound,
    ValidationError,
)
from app.core.notifications import NotificationDispatcher
from app.database import transaction
from app.models.common import to_mongo
from app.models.order import Order, OrderDraft, OrderItem, OrderStatus, PaymentStatus
from app.services.requester import Requester
from app.services.status import can_transition_order, generate_order_number, return_deadline_for
from app.utils.dates import utcnow
from app.utils.validators import to_object_id, validate_object_id

logger = logging.getLogger(__name__)


def merge_book_quantities(items: Sequence[OrderItem]) -> List[Tuple[str, int]]:
    """Total ordered quantity per book, gift lines excluded, in first-seen order"""
    totals: "OrderedDict[str, int]" = OrderedDict()
    for item in items:
        if item.is_gift:
            continue
        totals[item.book_id] = totals.get(item.book_id, 0) + item.quantity
    return list(totals.items())


class OrderLifecycleManager:
    """Creates orders and moves them through fulfilment"""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        notifier: NotificationDispatcher,
        return_window_days: int = 30,
    ):
        self.db = db
        self.notifier = notifier
        self.return_window_days = return_window_days

    async def create_order(self, draft: OrderDraft, items: Sequence[OrderItem]) -> Order:
        """
        Persist an order and decrement stock for every book line as one unit.

        Each book is decremented with a conditional update that only matches
        while enough stock remains, so concurrent orders can never drive stock
        negative. A shortfall or a failed order insert restores every
        decrement already applied before the error is raised. When MongoDB
        transactions are enabled the same steps also run inside one.

        Raises:
            ValidationError: no book lines
            BookNotFound: a referenced book no longer exists
            InsufficientStock: a book has less stock than ordered
        """
        quantities = merge_book_quantities(items)
        if not quantities:
            raise ValidationError("Order must contain at least one book")
        for book_id, _ in quantities:
            if not validate_object_id(book_id):
                raise ValidationError(f"Invalid book ID: {book_id}")

        paid = draft.payment_transaction_id is not None
        order = Order(
            order_number=generate_order_number(),
            user_id=draft.user_id,
            customer_name=draft.customer_name,
            customer_email=draft.customer_email,
            customer_phone=draft.customer_phone,
            shipping_address=draft.shipping_address,
            billing_address=draft.billing_address,
            items=list(items),
            subtotal=draft.subtotal,
            shipping=draft.shipping,
            tax=draft.tax,
            total=draft.total,
            status=OrderStatus.CONFIRMED if paid else OrderStatus.PENDING,
            payment_status=PaymentStatus.PAID if paid else PaymentStatus.PENDING,
            payment_method=draft.payment_method,
            payment_id=draft.payment_id,
            payment_transaction_id=draft.payment_transaction_id,
            notes=draft.notes,
        )

        async with transaction(self.db) as session:
            decremented: List[Tuple[ObjectId, int]] = []
            try:
                for book_id, quantity in quantities:
                    await self._decrement_stock(ObjectId(book_id), quantity, session)
                    decremented.append((ObjectId(book_id), quantity))

                doc = to_mongo(order.model_dump(by_alias=True, exclude={"id"}))
                result = await self.db.orders.insert_one(doc, session=session)
            except BaseException as e:
                if session is None:
                    await self._restore_stock(decremented)
                logger.warning(f"Order creation failed for {draft.customer_email}: {e}")
                raise

        order.id = str(result.inserted_id)
        logger.info(f"Order created: {order.order_number} ({order.id}) total {order.total}")

        if draft.cart_owner:
            try:
                await self.db.carts.delete_one({"owner": draft.cart_owner})
            except PyMongoError as e:
                logger.error(f"Failed to clear cart {draft.cart_owner} after order {order.order_number}: {e}")

        self.notifier.send_order_confirmation(order)
        return order

    async def _decrement_stock(self, book_id: ObjectId, quantity: int, session=None):
        doc = await self.db.books.find_one_and_update(
            {"_id": book_id, "stock": {"$gte": quantity}},
            {"$inc": {"stock": -quantity}, "$set": {"updated_at": utcnow()}},
            session=session,
        )
        if doc is not None:
            return

        current = await self.db.books.find_one({"_id": book_id}, session=session)
        if current is None:
            raise BookNotFound(str(book_id))
        logger.info(f"Stock shortfall for book {book_id}: requested {quantity}, available {current.get('stock', 0)}")
        raise InsufficientStock(str(book_id), current.get("title", ""), current.get("stock", 0), quantity)

    async def _restore_stock(self, decremented: List[Tuple[ObjectId, int]]):
        for book_id, quantity in reversed(decremented):
            try:
                await self.db.books.update_one({"_id": book_id}, {"$inc": {"stock": quantity}})
            except PyMongoError as e:
                logger.error(f"Failed to restore {quantity} units of stock for book {book_id}: {e}")

    async def update_order_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        tracking_number: Optional[str] = None,
        shipping_carrier: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """
        Move an order along its status graph.

        The write only matches while the order still has the status the
        transition was validated against.
        """
        order = await self._load(order_id)
        new_status = OrderStatus(new_status)
        if not can_transition_order(order.status, new_status):
            raise InvalidStatusTransition(order.status.value, new_status.value)

        now = utcnow()
        updates = {"status": new_status.value, "updated_at": now}
        if tracking_number is not None:
            updates["tracking_number"] = tracking_number
        if shipping_carrier is not None:
            updates["shipping_carrier"] = shipping_carrier
        if notes is not None:
            updates["admin_notes"] = notes
        if new_status == OrderStatus.DELIVERED:
            updates["delivered_at"] = now
            updates["return_deadline"] = return_deadline_for(now, self.return_window_days)

        doc = await self.db.orders.find_one_and_update(
            {"_id": ObjectId(order.id), "status": order.status.value},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            current = await self._load(order_id)
            raise InvalidStatusTransition(current.status.value, new_status.value)

        updated = Order.model_validate(doc)
        logger.info(f"Order {updated.order_number} moved from {order.status.value} to {new_status.value}")
        self.notifier.send_status_update(updated, new_status)
        return updated

    async def get_order(self, order_id: str, requester: Requester) -> Order:
        order = await self._load(order_id)
        if not requester.can_access(order):
            raise NotOwner(order_id)
        return order

    async def track_order(self, order_id: str, email: str) -> Order:
        """Public lookup; the email must match the order exactly"""
        if not validate_object_id(order_id):
            raise OrderNotFound(order_id)
        doc = await self.db.orders.find_one({"_id": ObjectId(order_id), "customer_email": email})
        if not doc:
            raise OrderNotFound(order_id)
        return Order.model_validate(doc)

    async def list_orders(
        self,
        requester: Optional[Requester] = None,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Order]:
        """Orders owned by ``requester``, or every order when called without one"""
        query = requester.owner_filter() if requester is not None else {}
        if status:
            query["status"] = OrderStatus(status).value

        cursor = self.db.orders.find(query).sort("created_at", -1).skip(skip).limit(limit)
        return [Order.model_validate(doc) for doc in await cursor.to_list(length=limit)]

    async def _load(self, order_id: str) -> Order:
        if not validate_object_id(order_id):
            raise OrderNotFound(order_id)
        doc = await self.db.orders.find_one({"_id": to_object_id(order_id)})
        if not doc:
            raise OrderNotFound(order_id)
        return Order.model_validate(doc)
