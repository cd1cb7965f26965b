"""Stripe integration for payment processing"""

import asyncio
from decimal import Decimal
from typing import Optional
import logging

import stripe

from app.core.payments.base import (
    PaymentAuthorization,
    PaymentCapture,
    PaymentGatewayAdapter,
    RefundResult,
    StripeConfirmation,
    from_minor_units,
    to_minor_units,
)
from app.models.order import PaymentMethod

logger = logging.getLogger(__name__)

COMPLETED_REFUND_STATUS = "succeeded"


class StripeGateway(PaymentGatewayAdapter):
    """Stripe PaymentIntents and Refunds"""

    method = PaymentMethod.STRIPE

    def __init__(self, secret_key: str, timeout: float = 30.0):
        super().__init__(timeout)
        self.secret_key = secret_key

    async def authorize(self, amount: Decimal, currency: str, reference: str) -> PaymentAuthorization:
        """
        Create a Stripe Payment Intent

        Args:
            amount: Order total in major units
            currency: Currency code
            reference: Store-side reference kept in the intent metadata

        Returns:
            Authorization carrying the intent's client secret
        """
        try:
            payment_intent = await self._bounded(
                asyncio.to_thread(
                    stripe.PaymentIntent.create,
                    amount=to_minor_units(amount),
                    currency=currency.lower(),
                    metadata={"reference": reference},
                    api_key=self.secret_key,
                ),
                "payment intent creation",
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating payment intent: {str(e)}")
            raise self._error(f"payment intent creation failed: {e}") from e

        logger.info(f"Created payment intent: {payment_intent.id}")
        return PaymentAuthorization(
            method=self.method,
            reference=payment_intent.id,
            amount=amount,
            currency=currency,
            client_data={"payment_intent_id": payment_intent.id, "client_secret": payment_intent.client_secret},
        )

    async def capture(self, confirmation: StripeConfirmation, amount: Decimal, currency: str) -> PaymentCapture:
        """
        Confirm that a Payment Intent has succeeded

        The storefront confirms the intent with Stripe.js, so capture here
        means retrieving it and checking it settled.
        """
        try:
            payment_intent = await self._bounded(
                asyncio.to_thread(
                    stripe.PaymentIntent.retrieve,
                    confirmation.payment_intent_id,
                    api_key=self.secret_key,
                ),
                "payment intent retrieval",
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error retrieving payment intent: {str(e)}")
            raise self._error(f"payment intent retrieval failed: {e}") from e

        if payment_intent.status != "succeeded":
            raise self._error(f"payment intent {payment_intent.id} is {payment_intent.status}")

        return PaymentCapture(
            method=self.method,
            payment_id=payment_intent.id,
            transaction_ref=payment_intent.id,
            amount=from_minor_units(payment_intent.amount_received),
            currency=payment_intent.currency.upper(),
        )

    async def refund(
        self,
        transaction_ref: str,
        amount: Decimal,
        currency: str,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> RefundResult:
        try:
            refund = await self._bounded(
                asyncio.to_thread(
                    stripe.Refund.create,
                    payment_intent=transaction_ref,
                    amount=to_minor_units(amount),
                    reason="requested_by_customer",
                    metadata={"note": reason or ""},
                    idempotency_key=idempotency_key,
                    api_key=self.secret_key,
                ),
                "refund",
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating refund: {str(e)}")
            raise self._error(f"refund failed: {e}") from e

        if refund.status != COMPLETED_REFUND_STATUS:
            raise self._error(f"refund {refund.id} is {refund.status}")

        logger.info(f"Refunded payment intent {transaction_ref}: {refund.id} ({refund.status})")
        return RefundResult(method=self.method, refund_ref=refund.id, amount=amount, status=refund.status)
