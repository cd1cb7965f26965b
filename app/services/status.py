"""Status graphs, eligibility and refund arithmetic shared by the order and return flows"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, FrozenSet, Iterable
import secrets

from app.models.common import quantize_money
from app.models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from app.models.return_model import ReturnItem, ReturnStatus
from app.utils.dates import utcnow

# Fulfilment chain; an order may only move forward along it
ORDER_FLOW = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)

CANCELLABLE_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING}
)

# refund_processed is reachable only through the refund path
RETURN_TRANSITIONS: Dict[ReturnStatus, FrozenSet[ReturnStatus]] = {
    ReturnStatus.PENDING: frozenset({ReturnStatus.APPROVED, ReturnStatus.REJECTED, ReturnStatus.CANCELLED}),
    ReturnStatus.APPROVED: frozenset({ReturnStatus.CANCELLED}),
    ReturnStatus.REJECTED: frozenset(),
    ReturnStatus.REFUND_PROCESSED: frozenset(),
    ReturnStatus.CANCELLED: frozenset(),
}

INACTIVE_RETURN_STATUSES: FrozenSet[ReturnStatus] = frozenset({ReturnStatus.REJECTED, ReturnStatus.CANCELLED})


def can_transition_order(current: OrderStatus, new: OrderStatus) -> bool:
    if new == OrderStatus.CANCELLED:
        return current in CANCELLABLE_STATUSES
    if current not in ORDER_FLOW or new not in ORDER_FLOW:
        return False
    return ORDER_FLOW.index(new) > ORDER_FLOW.index(current)


def can_transition_return(current: ReturnStatus, new: ReturnStatus) -> bool:
    return new in RETURN_TRANSITIONS.get(current, frozenset())


def return_deadline_for(delivered_at: datetime, window_days: int) -> datetime:
    return delivered_at + timedelta(days=window_days)


def is_return_eligible(order: Order, now: datetime = None) -> bool:
    """
    Whether a return request may be opened for ``order`` right now.

    Delivered, still inside its return window, and without an active return.
    The eligible-orders query and return creation both go through here.
    """
    now = now or utcnow()
    return (
        order.status == OrderStatus.DELIVERED
        and order.return_deadline is not None
        and now <= order.return_deadline
        and order.active_return_id is None
    )


def refund_total(items: Iterable[ReturnItem]) -> Decimal:
    """Sum of snapshot unit price times returned quantity"""
    return quantize_money(sum((item.unit_price * item.quantity for item in items), Decimal("0")))


def payment_status_after_refund(order_total: Decimal, refunded_amount: Decimal) -> PaymentStatus:
    if refunded_amount >= order_total:
        return PaymentStatus.REFUNDED
    if refunded_amount > 0:
        return PaymentStatus.PARTIALLY_REFUNDED
    return PaymentStatus.PAID


def refund_method_compatible(original: PaymentMethod, refund_method: PaymentMethod) -> bool:
    """A refund goes back through the original gateway, or out by bank transfer"""
    return refund_method == PaymentMethod.BANK_TRANSFER or refund_method == original


def generate_order_number() -> str:
    """Generate unique order number"""
    timestamp = utcnow().strftime("%Y%m%d")
    random_suffix = secrets.token_hex(4).upper()
    return f"ORD-{timestamp}-{random_suffix}"


def generate_return_number() -> str:
    """Generate unique return number"""
    timestamp = utcnow().strftime("%Y%m%d")
    random_suffix = secrets.token_hex(4).upper()
    return f"RET-{timestamp}-{random_suffix}"
