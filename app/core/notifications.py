"""Fire-and-forget notification dispatch for the order and return flows"""

import asyncio
from typing import Awaitable, Callable, Set
import logging

from app.core.email import EmailSender
from app.core.exceptions import NotificationDispatchError
from app.models.order import Order, OrderStatus
from app.models.return_model import ReturnRequest

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Schedules customer emails as detached tasks.

    Callers never await delivery: a send runs after the triggering operation
    has committed, and a failure is logged without reaching the caller.
    """

    def __init__(self, sender: EmailSender):
        self.sender = sender
        self._pending: Set[asyncio.Task] = set()

    def send_order_confirmation(self, order: Order) -> None:
        self._dispatch(
            "order_confirmation",
            order.customer_email,
            lambda: self.sender.send_order_confirmation(order),
        )

    def send_status_update(self, order: Order, new_status: OrderStatus) -> None:
        self._dispatch(
            f"status_update:{new_status.value}",
            order.customer_email,
            lambda: self.sender.send_status_update(order, new_status),
        )

    def send_refund_processed(self, return_request: ReturnRequest) -> None:
        self._dispatch(
            "refund_processed",
            return_request.customer_email,
            lambda: self.sender.send_refund_processed(return_request),
        )

    async def drain(self):
        """Wait for every scheduled notification to finish"""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def _dispatch(self, kind: str, recipient: str, send: Callable[[], Awaitable[None]]) -> None:
        try:
            task = asyncio.get_running_loop().create_task(self._run(kind, recipient, send))
        except RuntimeError as e:
            logger.error(str(NotificationDispatchError(kind, recipient, f"no running event loop ({e})")))
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run(self, kind: str, recipient: str, send: Callable[[], Awaitable[None]]):
        try:
            await send()
            logger.info(f"Sent {kind} email to {recipient}")
        except Exception as e:
            logger.error(str(NotificationDispatchError(kind, recipient, str(e))))
