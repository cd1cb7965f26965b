"""Razorpay integration using the official SDK"""

import asyncio
from decimal import Decimal
from typing import Any, Callable, Optional
import logging

import razorpay
from razorpay.errors import BadRequestError, GatewayError, ServerError, SignatureVerificationError

from app.core.payments.base import (
    PaymentAuthorization,
    PaymentCapture,
    PaymentGatewayAdapter,
    RazorpayConfirmation,
    RefundResult,
    from_minor_units,
    to_minor_units,
)
from app.models.order import PaymentMethod

logger = logging.getLogger(__name__)

# requests' exceptions derive from OSError
SDK_ERRORS = (BadRequestError, GatewayError, ServerError, OSError)
COMPLETED_REFUND_STATUS = "processed"


class RazorpayGateway(PaymentGatewayAdapter):
    """Razorpay orders (auto-capture), signature verification and refunds"""

    method = PaymentMethod.RAZORPAY

    def __init__(self, key_id: str, key_secret: str, timeout: float = 30.0, client: Any = None):
        super().__init__(timeout)
        self.key_id = key_id
        self.client = client or razorpay.Client(auth=(key_id, key_secret))

    async def _call(self, fn: Callable[..., Any], *args: Any, action: str) -> Any:
        """Run a blocking SDK call in a worker thread, bounded by the timeout"""
        try:
            return await self._bounded(asyncio.to_thread(fn, *args), action)
        except SDK_ERRORS as e:
            raise self._error(f"{action} failed: {e}") from e

    async def authorize(self, amount: Decimal, currency: str, reference: str) -> PaymentAuthorization:
        order = await self._call(
            self.client.order.create,
            {
                "amount": to_minor_units(amount),
                "currency": currency,
                "receipt": reference,
                "payment_capture": 1,
            },
            action="order creation",
        )
        logger.info(f"Created Razorpay order {order['id']} for {reference}")
        return PaymentAuthorization(
            method=self.method,
            reference=order["id"],
            amount=amount,
            currency=currency,
            client_data={"key_id": self.key_id, "order_id": order["id"], "amount": order["amount"]},
        )

    def verify_signature(self, confirmation: RazorpayConfirmation):
        try:
            self.client.utility.verify_payment_signature(
                {
                    "razorpay_order_id": confirmation.razorpay_order_id,
                    "razorpay_payment_id": confirmation.razorpay_payment_id,
                    "razorpay_signature": confirmation.razorpay_signature,
                }
            )
        except SignatureVerificationError as e:
            raise self._error("invalid payment signature") from e

    async def capture(self, confirmation: RazorpayConfirmation, amount: Decimal, currency: str) -> PaymentCapture:
        self.verify_signature(confirmation)

        payment = await self._call(self.client.payment.fetch, confirmation.razorpay_payment_id, action="payment fetch")
        if payment.get("status") == "authorized":
            payment = await self._call(
                self.client.payment.capture,
                confirmation.razorpay_payment_id,
                payment["amount"],
                {"currency": payment.get("currency", currency)},
                action="capture",
            )
        if payment.get("status") != "captured":
            raise self._error(f"payment {confirmation.razorpay_payment_id} is {payment.get('status')}", payment)

        logger.info(f"Verified Razorpay payment {confirmation.razorpay_payment_id}")
        return PaymentCapture(
            method=self.method,
            payment_id=confirmation.razorpay_order_id,
            transaction_ref=confirmation.razorpay_payment_id,
            amount=from_minor_units(payment["amount"]),
            currency=payment.get("currency", currency),
            raw=payment,
        )

    async def refund(
        self,
        transaction_ref: str,
        amount: Decimal,
        currency: str,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> RefundResult:
        data: dict = {"amount": to_minor_units(amount)}
        notes = {k: v for k, v in (("reason", reason), ("reference", idempotency_key)) if v}
        if notes:
            data["notes"] = notes
        if idempotency_key:
            data["receipt"] = idempotency_key

        refund = await self._call(self.client.payment.refund, transaction_ref, data, action="refund")
        refund_status = refund.get("status", "")
        if not refund.get("id") or refund_status != COMPLETED_REFUND_STATUS:
            raise self._error(f"refund of payment {transaction_ref} is {refund_status or 'unknown'}", refund)

        logger.info(f"Refunded Razorpay payment {transaction_ref}: {refund['id']} ({refund_status})")
        return RefundResult(
            method=self.method,
            refund_ref=refund["id"],
            amount=amount,
            status=refund_status,
            raw=refund,
        )
