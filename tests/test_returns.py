"""Tests for return requests, admin review and refunds."""

from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import CUSTOMER_EMAIL
from app.core.exceptions import (
    DuplicateRequest,
    InvalidItems,
    InvalidStatusTransition,
    NotEligible,
    NotOwner,
    OrderNotFound,
    PaymentGatewayError,
    RefundInProgress,
    ValidationError,
    WindowExpired,
)
from app.models.order import PaymentMethod, PaymentStatus
from app.models.return_model import ReturnReason, ReturnStatus
from app.schemas.return_schema import ReturnItemInput
from app.services import Requester
from app.services.returns import REFUND_LOCK_TTL
from app.utils.dates import utcnow
from bson import ObjectId

GUEST = Requester(email=CUSTOMER_EMAIL)


def wanted(book, quantity, reason=None):
    return ReturnItemInput(book_id=book.id, quantity=quantity, reason=reason)


@pytest.fixture
def open_return(returns):
    """Open a return request as the guest customer."""

    async def _open_return(order, items, requester=GUEST, **kwargs):
        return await returns.create_return_request(
            order.id, requester, ReturnReason.DAMAGED, "Cover torn on arrival", items, **kwargs
        )

    return _open_return


@pytest.fixture
def approved_return(returns, open_return):
    async def _approved_return(order, items):
        return_request = await open_return(order, items)
        return await returns.update_return_status(return_request.id, ReturnStatus.APPROVED)

    return _approved_return


async def load_order(db, order):
    return await db.orders.find_one({"_id": ObjectId(order.id)})


class TestCreateReturnRequest:
    async def test_refund_uses_price_paid_not_current_price(self, catalog, add_book, delivered_order, open_return):
        book = await add_book(price="10.00", stock=5)
        order = await delivered_order([(book, 2)])
        await catalog.update_book(book.id, {"price": Decimal("15.00")})

        return_request = await open_return(order, [wanted(book, 2)])

        assert return_request.status == ReturnStatus.PENDING
        assert return_request.return_number.startswith("RET-")
        assert return_request.items_to_return[0].unit_price == Decimal("10.00")
        assert return_request.total_refund_amount == Decimal("20.00")

    async def test_claims_the_order(self, db, add_book, delivered_order, open_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])

        return_request = await open_return(order, [wanted(book, 1)])

        assert (await load_order(db, order))["active_return_id"] == return_request.id
        assert await db.returns.count_documents({}) == 1

    async def test_window_expired(self, db, add_book, delivered_order, open_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])

        with pytest.raises(WindowExpired):
            await open_return(order, [wanted(book, 1)], now=order.delivered_at + timedelta(days=31))

        assert await db.returns.count_documents({}) == 0

    async def test_last_day_of_window_is_allowed(self, add_book, delivered_order, open_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])

        return_request = await open_return(order, [wanted(book, 1)], now=order.return_deadline)

        assert return_request.id is not None

    async def test_undelivered_order_is_not_eligible(self, add_book, place_order, open_return):
        book = await add_book()
        order = await place_order([(book, 1)])

        with pytest.raises(NotEligible):
            await open_return(order, [wanted(book, 1)])

    async def test_unknown_order(self, returns):
        with pytest.raises(OrderNotFound):
            await returns.create_return_request(
                "507f1f77bcf86cd799439011", GUEST, ReturnReason.OTHER, "Changed my mind", []
            )

    async def test_other_customer_cannot_return(self, add_book, delivered_order, open_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])

        with pytest.raises(NotOwner):
            await open_return(order, [wanted(book, 1)], requester=Requester(email="mallory@example.com"))

    async def test_guest_email_is_case_insensitive(self, add_book, delivered_order, open_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])

        return_request = await open_return(order, [wanted(book, 1)], requester=Requester(email=" Jane@Example.COM "))

        assert return_request.customer_email == CUSTOMER_EMAIL

    async def test_signed_in_owner(self, add_book, delivered_order, open_return):
        book = await add_book()
        order = await delivered_order([(book, 1)], user_id="user-1")

        return_request = await open_return(order, [wanted(book, 1)], requester=Requester(user_id="user-1"))

        assert return_request.user_id == "user-1"

    async def test_no_items(self, add_book, delivered_order, open_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])

        with pytest.raises(InvalidItems):
            await open_return(order, [])

    async def test_book_not_in_order(self, add_book, delivered_order, open_return):
        book = await add_book(title="Dune")
        other = await add_book(title="Emma")
        order = await delivered_order([(book, 1)])

        with pytest.raises(InvalidItems, match="not part of this order"):
            await open_return(order, [wanted(other, 1)])

    async def test_more_than_ordered(self, add_book, delivered_order, open_return):
        book = await add_book()
        order = await delivered_order([(book, 2)])

        with pytest.raises(InvalidItems, match="only 2 were ordered"):
            await open_return(order, [wanted(book, 1), wanted(book, 2)])

    async def test_second_request_is_a_duplicate(self, db, add_book, delivered_order, open_return):
        book = await add_book()
        order = await delivered_order([(book, 2)])
        await open_return(order, [wanted(book, 1)])

        with pytest.raises(DuplicateRequest):
            await open_return(order, [wanted(book, 1)])

        assert await db.returns.count_documents({}) == 1

    async def test_new_request_allowed_after_rejection(self, returns, add_book, delivered_order, open_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])
        first = await open_return(order, [wanted(book, 1)])
        await returns.update_return_status(first.id, ReturnStatus.REJECTED, "Outside policy")

        second = await open_return(order, [wanted(book, 1)])

        assert second.id != first.id


class TestEligibleOrders:
    async def test_lists_only_returnable_orders(self, returns, add_book, place_order, delivered_order, open_return):
        book = await add_book(stock=10)
        await place_order([(book, 1)])
        returnable = await delivered_order([(book, 1)])
        claimed = await delivered_order([(book, 1)])
        await open_return(claimed, [wanted(book, 1)])
        await delivered_order([(book, 1)], email="other@example.com")

        orders = await returns.eligible_orders(GUEST)

        assert [order.id for order in orders] == [returnable.id]

    async def test_expired_orders_are_excluded(self, returns, add_book, delivered_order):
        book = await add_book()
        order = await delivered_order([(book, 1)])

        orders = await returns.eligible_orders(GUEST, now=order.return_deadline + timedelta(seconds=1))

        assert orders == []

    async def test_anonymous_requester(self, returns):
        with pytest.raises(ValidationError):
            await returns.eligible_orders(Requester())


class TestReturnStatus:
    async def test_approve(self, returns, add_book, delivered_order, open_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])
        return_request = await open_return(order, [wanted(book, 1)])

        approved = await returns.update_return_status(return_request.id, ReturnStatus.APPROVED, "Looks damaged")

        assert approved.status == ReturnStatus.APPROVED
        assert approved.approved_at is not None
        assert approved.admin_notes == "Looks damaged"

    async def test_refund_processed_cannot_be_set_directly(self, returns, add_book, delivered_order, approved_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])
        return_request = await approved_return(order, [wanted(book, 1)])

        with pytest.raises(InvalidStatusTransition):
            await returns.update_return_status(return_request.id, ReturnStatus.REFUND_PROCESSED)

        assert (await returns.get_return(return_request.id)).status == ReturnStatus.APPROVED

    async def test_rejected_is_final(self, returns, add_book, delivered_order, open_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])
        return_request = await open_return(order, [wanted(book, 1)])
        await returns.update_return_status(return_request.id, ReturnStatus.REJECTED)

        with pytest.raises(InvalidStatusTransition):
            await returns.update_return_status(return_request.id, ReturnStatus.APPROVED)

    async def test_cancel_releases_the_order(self, db, returns, add_book, delivered_order, approved_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])
        return_request = await approved_return(order, [wanted(book, 1)])

        await returns.update_return_status(return_request.id, ReturnStatus.CANCELLED)

        assert (await load_order(db, order))["active_return_id"] is None

    async def test_locked_return_cannot_be_cancelled(self, db, returns, add_book, delivered_order, approved_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])
        return_request = await approved_return(order, [wanted(book, 1)])
        await db.returns.update_one(
            {"_id": ObjectId(return_request.id)},
            {"$set": {"refund_lock": {"token": "other-admin", "acquired_at": utcnow()}}},
        )

        with pytest.raises(RefundInProgress):
            await returns.update_return_status(return_request.id, ReturnStatus.CANCELLED)


class TestProcessRefund:
    async def test_full_refund(self, db, returns, gateway, add_book, delivered_order, approved_return, notifier, sender):
        book = await add_book(price="10.00")
        order = await delivered_order([(book, 2)])
        return_request = await approved_return(order, [wanted(book, 2)])

        refunded = await returns.process_refund(return_request.id, PaymentMethod.PAYPAL, "Damaged", admin_id="admin-1")
        await notifier.drain()

        assert refunded.status == ReturnStatus.REFUND_PROCESSED
        assert refunded.refund_method == PaymentMethod.PAYPAL
        assert refunded.refund_transaction_id == "REF-1"
        assert refunded.refund_processed_at is not None
        assert gateway.refunds == [{
            "transaction_ref": "CAP-1",
            "amount": Decimal("20.00"),
            "idempotency_key": return_request.return_number,
        }]
        stored_order = await load_order(db, order)
        assert stored_order["payment_status"] == PaymentStatus.REFUNDED.value
        assert stored_order["refunded_amount"].to_decimal() == Decimal("20.00")
        assert "refund_processed" in sender.kinds

    async def test_partial_refund(self, db, returns, add_book, delivered_order, approved_return):
        book = await add_book(price="10.00")
        order = await delivered_order([(book, 2)])
        return_request = await approved_return(order, [wanted(book, 1)])

        await returns.process_refund(return_request.id, PaymentMethod.PAYPAL)

        stored_order = await load_order(db, order)
        assert stored_order["payment_status"] == PaymentStatus.PARTIALLY_REFUNDED.value
        assert stored_order["refunded_amount"].to_decimal() == Decimal("10.00")

    async def test_failed_refund_can_be_retried_once(self, db, returns, gateway, add_book, delivered_order, approved_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])
        return_request = await approved_return(order, [wanted(book, 1)])
        gateway.refund_failures = 1

        with pytest.raises(PaymentGatewayError):
            await returns.process_refund(return_request.id, PaymentMethod.PAYPAL)

        after_failure = await db.returns.find_one({"_id": ObjectId(return_request.id)})
        assert after_failure["status"] == ReturnStatus.APPROVED.value
        assert after_failure["refund_lock"] is None
        assert (await load_order(db, order))["payment_status"] == PaymentStatus.PAID.value

        refunded = await returns.process_refund(return_request.id, PaymentMethod.PAYPAL)

        assert refunded.status == ReturnStatus.REFUND_PROCESSED
        assert {r["idempotency_key"] for r in gateway.refunds} == {return_request.return_number}
        statuses = [t["refund_status"] async for t in db.refund_transactions.find({}).sort("created_at", 1)]
        assert sorted(statuses) == ["completed", "failed"]

        with pytest.raises(InvalidStatusTransition):
            await returns.process_refund(return_request.id, PaymentMethod.PAYPAL)
        assert len(gateway.refunds) == 2

    async def test_requires_approval(self, returns, gateway, add_book, delivered_order, open_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])
        return_request = await open_return(order, [wanted(book, 1)])

        with pytest.raises(InvalidStatusTransition):
            await returns.process_refund(return_request.id, PaymentMethod.PAYPAL)

        assert gateway.refunds == []

    async def test_incompatible_method(self, returns, gateway, add_book, delivered_order, approved_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])
        return_request = await approved_return(order, [wanted(book, 1)])

        with pytest.raises(ValidationError, match="not compatible"):
            await returns.process_refund(return_request.id, PaymentMethod.STRIPE)

        assert gateway.refunds == []

    async def test_bank_transfer_is_always_allowed(self, returns, gateway, add_book, delivered_order, approved_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])
        return_request = await approved_return(order, [wanted(book, 1)])

        refunded = await returns.process_refund(return_request.id, PaymentMethod.BANK_TRANSFER)

        assert refunded.status == ReturnStatus.REFUND_PROCESSED
        assert refunded.refund_transaction_id.startswith("BT-")
        assert gateway.refunds == []

    async def test_held_lock_blocks_a_second_refund(self, db, returns, gateway, add_book, delivered_order, approved_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])
        return_request = await approved_return(order, [wanted(book, 1)])
        await db.returns.update_one(
            {"_id": ObjectId(return_request.id)},
            {"$set": {"refund_lock": {"token": "other-admin", "acquired_at": utcnow()}}},
        )

        with pytest.raises(RefundInProgress):
            await returns.process_refund(return_request.id, PaymentMethod.PAYPAL)

        assert gateway.refunds == []

    async def test_abandoned_lock_is_taken_over(self, db, returns, add_book, delivered_order, approved_return):
        book = await add_book()
        order = await delivered_order([(book, 1)])
        return_request = await approved_return(order, [wanted(book, 1)])
        stale = utcnow() - REFUND_LOCK_TTL - timedelta(minutes=1)
        await db.returns.update_one(
            {"_id": ObjectId(return_request.id)},
            {"$set": {"refund_lock": {"token": "crashed-worker", "acquired_at": stale}}},
        )

        refunded = await returns.process_refund(return_request.id, PaymentMethod.PAYPAL)

        assert refunded.status == ReturnStatus.REFUND_PROCESSED


class TestMyRequests:
    async def test_lists_own_requests(self, returns, add_book, delivered_order, open_return):
        book = await add_book(stock=5)
        mine = await delivered_order([(book, 1)])
        theirs = await delivered_order([(book, 1)], email="other@example.com")
        await open_return(mine, [wanted(book, 1)])
        await open_return(theirs, [wanted(book, 1)], requester=Requester(email="other@example.com"))

        requests = await returns.my_requests(GUEST)

        assert [rr.order_id for rr in requests] == [mine.id]

    async def test_admin_listing_filters_by_status(self, returns, add_book, delivered_order, open_return):
        book = await add_book(stock=5)
        first = await open_return(await delivered_order([(book, 1)]), [wanted(book, 1)])
        await open_return(await delivered_order([(book, 1)]), [wanted(book, 1)])
        await returns.update_return_status(first.id, ReturnStatus.APPROVED)

        approved = await returns.list_returns(status=ReturnStatus.APPROVED)
        everything = await returns.list_returns()

        assert [rr.id for rr in approved] == [first.id]
        assert len(everything) == 2