"""Payment gateway adapter interface and the tagged payment payloads"""

import asyncio
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Awaitable, Dict, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, Field
from typing_extensions import Annotated

from app.core.exceptions import PaymentGatewayError
from app.models.common import Money
from app.models.order import PaymentMethod

T = TypeVar("T")


class PayPalConfirmation(BaseModel):
    """Approved PayPal checkout order, captured server-side"""
    method: Literal["paypal"] = "paypal"
    order_id: str

    @property
    def payment_reference(self) -> str:
        return self.order_id


class RazorpayConfirmation(BaseModel):
    """Razorpay checkout handler response, verified by signature"""
    method: Literal["razorpay"] = "razorpay"
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str

    @property
    def payment_reference(self) -> str:
        return self.razorpay_order_id


class StripeConfirmation(BaseModel):
    """Stripe PaymentIntent confirmed by the client"""
    method: Literal["stripe"] = "stripe"
    payment_intent_id: str

    @property
    def payment_reference(self) -> str:
        return self.payment_intent_id


PaymentConfirmation = Annotated[
    Union[PayPalConfirmation, RazorpayConfirmation, StripeConfirmation],
    Field(discriminator="method"),
]


class PaymentAuthorization(BaseModel):
    """What the storefront needs to start the gateway's client-side flow"""
    method: PaymentMethod
    reference: str
    amount: Money
    currency: str
    client_data: Dict[str, Any] = {}


class PaymentCapture(BaseModel):
    """Confirmed, captured payment"""
    method: PaymentMethod
    payment_id: str
    transaction_ref: str
    amount: Money
    currency: str
    raw: Dict[str, Any] = {}


class RefundResult(BaseModel):
    """Refund accepted by the gateway"""
    method: PaymentMethod
    refund_ref: str
    amount: Money
    status: str
    raw: Dict[str, Any] = {}


def to_minor_units(amount: Decimal) -> int:
    """Convert an amount to cents / paise"""
    return int((Decimal(amount) * 100).to_integral_value())


def from_minor_units(amount: int) -> Decimal:
    return Decimal(amount) / 100


class PaymentGatewayAdapter(ABC):
    """
    One payment provider behind a uniform interface.

    ``capture`` must only return once the money is confirmed captured and
    ``refund`` only once the gateway reports the refund settled; every other
    outcome, including a timeout, raises PaymentGatewayError.
    """

    method: PaymentMethod

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    @abstractmethod
    async def authorize(self, amount: Decimal, currency: str, reference: str) -> PaymentAuthorization:
        ...

    @abstractmethod
    async def capture(self, confirmation: BaseModel, amount: Decimal, currency: str) -> PaymentCapture:
        ...

    @abstractmethod
    async def refund(
        self,
        transaction_ref: str,
        amount: Decimal,
        currency: str,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> RefundResult:
        ...

    async def _bounded(self, call: Awaitable[T], action: str) -> T:
        """Await a gateway call under the configured timeout"""
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError:
            raise PaymentGatewayError(self.method.value, f"{action} timed out after {self.timeout}s")

    def _error(self, reason: str, response: Optional[dict] = None) -> PaymentGatewayError:
        return PaymentGatewayError(self.method.value, reason, response)
