"""Return requests against delivered orders and the refunds they drive"""

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence
import logging
import secrets

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from app.core.exceptions import (
    DuplicateRequest,
    InvalidItems,
    InvalidStatusTransition,
    NotEligible,
    NotOwner,
    OrderNotFound,
    RefundInProgress,
    ReturnRequestNotFound,
    ValidationError,
    WindowExpired,
)
from app.core.notifications import NotificationDispatcher
from app.core.payments import PaymentGateways
from app.models.common import quantize_money, to_mongo
from app.models.order import Order, OrderItem, OrderStatus, PaymentMethod
from app.models.return_model import (
    RefundStatus,
    RefundTransaction,
    ReturnItem,
    ReturnReason,
    ReturnRequest,
    ReturnStatus,
)
from app.schemas.return_schema import ReturnItemInput
from app.services.requester import Requester
from app.services.status import (
    INACTIVE_RETURN_STATUSES,
    can_transition_return,
    generate_return_number,
    is_return_eligible,
    payment_status_after_refund,
    refund_method_compatible,
    refund_total,
)
from app.utils.dates import utcnow
from app.utils.validators import to_object_id, validate_object_id

logger = logging.getLogger(__name__)

# A refund lock older than this is considered abandoned
REFUND_LOCK_TTL = timedelta(minutes=10)


class ReturnRequestManager:
    """Creates, reviews and refunds return requests"""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        gateways: PaymentGateways,
        notifier: NotificationDispatcher,
        currency: str = "USD",
        return_window_days: int = 30,
    ):
        self.db = db
        self.gateways = gateways
        self.notifier = notifier
        self.currency = currency
        self.return_window_days = return_window_days

    # Eligibility

    async def eligible_orders(self, requester: Requester, now: Optional[datetime] = None) -> List[Order]:
        """Orders the requester could open a return for right now"""
        if requester.is_anonymous:
            raise ValidationError("Email required for guest users")
        now = now or utcnow()
        query = requester.owner_filter()
        query.update({
            "status": OrderStatus.DELIVERED.value,
            "return_deadline": {"$gte": now},
            "active_return_id": None,
        })
        cursor = self.db.orders.find(query).sort("created_at", -1)
        orders = [Order.model_validate(doc) for doc in await cursor.to_list(length=None)]
        return [order for order in orders if is_return_eligible(order, now)]

    # Customer requests

    async def create_return_request(
        self,
        order_id: str,
        requester: Requester,
        return_reason: ReturnReason,
        return_description: str,
        items: Sequence[ReturnItemInput],
        now: Optional[datetime] = None,
    ) -> ReturnRequest:
        """
        Open a return request for a delivered order.

        Preconditions are checked in order: ownership, delivered status,
        return window, requested items, then no other active return. The
        one-active-return rule is enforced by claiming the order's
        ``active_return_id`` with a compare-and-set before the insert.
        """
        now = now or utcnow()

        # (a) exists and belongs to the requester
        if not validate_object_id(order_id):
            raise OrderNotFound(order_id)
        doc = await self.db.orders.find_one({"_id": ObjectId(order_id)})
        if not doc:
            raise OrderNotFound(order_id)
        order = Order.model_validate(doc)
        if not requester.owns(order):
            raise NotOwner(order_id)

        # (b) delivered
        if order.status != OrderStatus.DELIVERED or order.return_deadline is None:
            raise NotEligible(order_id, order.status.value)

        # (c) inside the window
        if now > order.return_deadline:
            raise WindowExpired(order_id, self.return_window_days)

        # (d) items
        return_items = self._price_items(order, items)

        # (e) no active return
        if order.active_return_id is not None:
            raise DuplicateRequest(order_id)

        return_request = ReturnRequest(
            id=str(ObjectId()),
            return_number=generate_return_number(),
            order_id=order.id,
            order_number=order.order_number,
            user_id=requester.user_id or order.user_id,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            return_reason=return_reason,
            return_description=return_description.strip(),
            items_to_return=return_items,
            total_refund_amount=refund_total(return_items),
            return_deadline=order.return_deadline,
            created_at=now,
            updated_at=now,
        )

        claimed = await self.db.orders.update_one(
            {"_id": ObjectId(order.id), "status": OrderStatus.DELIVERED.value, "active_return_id": None},
            {"$set": {"active_return_id": return_request.id, "updated_at": now}},
        )
        if claimed.modified_count == 0:
            current = Order.model_validate(await self.db.orders.find_one({"_id": ObjectId(order.id)}))
            if current.active_return_id is not None:
                raise DuplicateRequest(order_id)
            raise NotEligible(order_id, current.status.value)

        doc = to_mongo(return_request.model_dump(by_alias=True))
        doc["_id"] = ObjectId(return_request.id)
        doc["refund_lock"] = None
        try:
            await self.db.returns.insert_one(doc)
        except Exception:
            await self._release_order_claim(order.id, return_request.id)
            raise

        logger.info(
            f"Return request {return_request.return_number} opened for order {order.order_number} "
            f"(refund {return_request.total_refund_amount})"
        )
        return return_request

    def _price_items(self, order: Order, items: Sequence[ReturnItemInput]) -> List[ReturnItem]:
        """Validate requested lines against the order and price them from its snapshot"""
        if not items:
            raise InvalidItems("Select at least one item to return")

        ordered: Dict[str, OrderItem] = {}
        ordered_quantity: Dict[str, int] = {}
        for item in order.book_items:
            ordered.setdefault(item.book_id, item)
            ordered_quantity[item.book_id] = ordered_quantity.get(item.book_id, 0) + item.quantity

        requested: "OrderedDict[str, ReturnItemInput]" = OrderedDict()
        quantities: Dict[str, int] = {}
        for item in items:
            if item.quantity < 1:
                raise InvalidItems("Return quantity must be at least 1")
            requested.setdefault(item.book_id, item)
            quantities[item.book_id] = quantities.get(item.book_id, 0) + item.quantity

        return_items = []
        for book_id, item in requested.items():
            if book_id not in ordered:
                raise InvalidItems(f"Book {book_id} is not part of this order")
            quantity = quantities[book_id]
            if quantity > ordered_quantity[book_id]:
                raise InvalidItems(
                    f"Cannot return {quantity} of '{ordered[book_id].title}'; "
                    f"only {ordered_quantity[book_id]} were ordered"
                )
            unit_price = ordered[book_id].price
            return_items.append(
                ReturnItem(
                    book_id=book_id,
                    title=ordered[book_id].title,
                    quantity=quantity,
                    unit_price=unit_price,
                    subtotal=unit_price * quantity,
                    reason=item.reason,
                )
            )
        return return_items

    async def my_requests(self, requester: Requester) -> List[ReturnRequest]:
        if requester.is_anonymous:
            raise ValidationError("Email required for guest users")
        cursor = self.db.returns.find(requester.owner_filter()).sort("created_at", -1)
        return [ReturnRequest.model_validate(doc) for doc in await cursor.to_list(length=None)]

    # Admin review

    async def list_returns(self, status: Optional[ReturnStatus] = None, skip: int = 0, limit: int = 20) -> List[ReturnRequest]:
        query = {}
        if status:
            query["status"] = ReturnStatus(status).value
        cursor = self.db.returns.find(query).sort("created_at", -1).skip(skip).limit(limit)
        return [ReturnRequest.model_validate(doc) for doc in await cursor.to_list(length=limit)]

    async def get_return(self, return_request_id: str) -> ReturnRequest:
        return ReturnRequest.model_validate(await self._load_doc(return_request_id))

    async def update_return_status(
        self,
        return_request_id: str,
        new_status: ReturnStatus,
        admin_notes: Optional[str] = None,
    ) -> ReturnRequest:
        """
        Approve, reject or cancel a return request.

        ``refund_processed`` is never accepted here; it is only reachable
        through process_refund. Rejecting or cancelling frees the order for
        a new return request.
        """
        doc = await self._load_doc(return_request_id)
        current = ReturnStatus(doc["status"])
        new_status = ReturnStatus(new_status)
        if new_status == ReturnStatus.REFUND_PROCESSED or not can_transition_return(current, new_status):
            raise InvalidStatusTransition(current.value, new_status.value, entity="return request")

        now = utcnow()
        updates = {"status": new_status.value, "updated_at": now}
        if admin_notes is not None:
            updates["admin_notes"] = admin_notes
        if new_status == ReturnStatus.APPROVED:
            updates["approved_at"] = now
        elif new_status == ReturnStatus.REJECTED:
            updates["rejected_at"] = now
        elif new_status == ReturnStatus.CANCELLED:
            updates["cancelled_at"] = now

        updated = await self.db.returns.find_one_and_update(
            {"_id": doc["_id"], "status": current.value, "refund_lock": None},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            latest = await self._load_doc(return_request_id)
            if latest.get("refund_lock"):
                raise RefundInProgress(return_request_id)
            raise InvalidStatusTransition(latest["status"], new_status.value, entity="return request")

        return_request = ReturnRequest.model_validate(updated)
        if new_status in INACTIVE_RETURN_STATUSES:
            await self._release_order_claim(return_request.order_id, return_request.id)

        logger.info(f"Return {return_request.return_number} moved from {current.value} to {new_status.value}")
        return return_request

    # Refunds

    async def process_refund(
        self,
        return_request_id: str,
        refund_method: PaymentMethod,
        refund_reason: Optional[str] = None,
        admin_id: Optional[str] = None,
    ) -> ReturnRequest:
        """
        Issue the refund for an approved return through a payment gateway.

        The return only becomes ``refund_processed`` after the gateway has
        accepted the refund. On any gateway failure it stays ``approved``,
        the attempt is recorded as failed and the error is raised so the
        admin can retry. The return number is sent as the idempotency key,
        so a retry never refunds twice.
        """
        doc = await self._load_doc(return_request_id)
        return_request = ReturnRequest.model_validate(doc)
        if return_request.status != ReturnStatus.APPROVED:
            raise InvalidStatusTransition(
                return_request.status.value, ReturnStatus.REFUND_PROCESSED.value, entity="return request"
            )

        order_doc = await self.db.orders.find_one({"_id": to_object_id(return_request.order_id, "order ID")})
        if not order_doc:
            raise OrderNotFound(return_request.order_id)
        order = Order.model_validate(order_doc)

        refund_method = PaymentMethod(refund_method)
        if not refund_method_compatible(order.payment_method, refund_method):
            original = order.payment_method.value if order.payment_method else "none"
            raise ValidationError(
                f"Refund method '{refund_method.value}' is not compatible with the original payment method '{original}'"
            )
        if refund_method != PaymentMethod.BANK_TRANSFER and not order.payment_transaction_id:
            raise ValidationError("Order has no captured payment to refund")
        adapter = self.gateways.get(refund_method)

        lock_token = await self._acquire_refund_lock(return_request_id, doc["_id"])
        amount = return_request.total_refund_amount
        transaction = RefundTransaction(
            return_request_id=return_request.id,
            order_id=order.id,
            refund_amount=amount,
            refund_method=refund_method,
            original_payment_method=order.payment_method,
            original_transaction_id=order.payment_transaction_id,
            refund_reason=refund_reason,
            processed_by=admin_id,
        )
        inserted = await self.db.refund_transactions.insert_one(
            to_mongo(transaction.model_dump(by_alias=True, exclude={"id"}))
        )
        transaction_id = inserted.inserted_id

        try:
            result = await adapter.refund(
                order.payment_transaction_id,
                amount,
                self.currency,
                reason=refund_reason,
                idempotency_key=return_request.return_number,
            )
        except Exception as e:
            await self.db.refund_transactions.update_one(
                {"_id": transaction_id},
                {"$set": {
                    "refund_status": RefundStatus.FAILED.value,
                    "gateway_response": {"error": str(e), "response": getattr(e, "response", None)},
                    "updated_at": utcnow(),
                }},
            )
            await self.db.returns.update_one(
                {"_id": doc["_id"], "refund_lock.token": lock_token},
                {"$set": {"refund_lock": None}},
            )
            logger.error(f"Refund for return {return_request.return_number} failed via {refund_method.value}: {e}")
            raise

        now = utcnow()
        updated = await self.db.returns.find_one_and_update(
            {"_id": doc["_id"], "status": ReturnStatus.APPROVED.value, "refund_lock.token": lock_token},
            {"$set": {
                "status": ReturnStatus.REFUND_PROCESSED.value,
                "refund_method": refund_method.value,
                "refund_transaction_id": result.refund_ref,
                "refund_processed_at": now,
                "refund_lock": None,
                "updated_at": now,
            }},
            return_document=ReturnDocument.AFTER,
        )
        await self.db.refund_transactions.update_one(
            {"_id": transaction_id},
            {"$set": {
                "refund_status": RefundStatus.COMPLETED.value,
                "refund_transaction_id": result.refund_ref,
                "processed_at": now,
                "gateway_response": to_mongo({"status": result.status, **result.raw}),
                "updated_at": now,
            }},
        )
        if updated is None:
            # Lock was taken over after expiring; the gateway refund still happened
            logger.error(
                f"Refund {result.refund_ref} for return {return_request.return_number} succeeded "
                f"but the return was changed concurrently"
            )
            raise RefundInProgress(return_request_id)

        refunded = quantize_money(order.refunded_amount + amount)
        payment_status = payment_status_after_refund(order.total, refunded)
        await self.db.orders.update_one(
            {"_id": ObjectId(order.id)},
            {"$set": {
                "refunded_amount": to_mongo(refunded),
                "payment_status": payment_status.value,
                "updated_at": now,
            }},
        )

        return_request = ReturnRequest.model_validate(updated)
        logger.info(
            f"Refund {result.refund_ref} of {amount} {self.currency} processed for return "
            f"{return_request.return_number}; order {order.order_number} is now {payment_status.value}"
        )
        self.notifier.send_refund_processed(return_request)
        return return_request

    async def _acquire_refund_lock(self, return_request_id: str, _id: ObjectId) -> str:
        now = utcnow()
        token = secrets.token_hex(8)
        locked = await self.db.returns.find_one_and_update(
            {
                "_id": _id,
                "status": ReturnStatus.APPROVED.value,
                "$or": [
                    {"refund_lock": None},
                    {"refund_lock.acquired_at": {"$lt": now - REFUND_LOCK_TTL}},
                ],
            },
            {"$set": {"refund_lock": {"token": token, "acquired_at": now}}},
        )
        if locked is not None:
            return token

        latest = await self._load_doc(return_request_id)
        if latest.get("status") == ReturnStatus.APPROVED.value:
            raise RefundInProgress(return_request_id)
        raise InvalidStatusTransition(latest["status"], ReturnStatus.REFUND_PROCESSED.value, entity="return request")

    async def _release_order_claim(self, order_id: str, return_request_id: str):
        await self.db.orders.update_one(
            {"_id": ObjectId(order_id), "active_return_id": return_request_id},
            {"$set": {"active_return_id": None, "updated_at": utcnow()}},
        )

    async def _load_doc(self, return_request_id: str) -> dict:
        if not validate_object_id(return_request_id):
            raise ReturnRequestNotFound(return_request_id)
        doc = await self.db.returns.find_one({"_id": ObjectId(return_request_id)})
        if not doc:
            raise ReturnRequestNotFound(return_request_id)
        return doc
