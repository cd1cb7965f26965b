"""Payment gateway adapters and their registry"""

from typing import Dict, Iterable, List
import logging

from app.config import Settings
from app.core.exceptions import PaymentGatewayError, ValidationError
from app.core.payments.base import (
    PaymentAuthorization,
    PaymentCapture,
    PaymentConfirmation,
    PaymentGatewayAdapter,
    PayPalConfirmation,
    RazorpayConfirmation,
    RefundResult,
    StripeConfirmation,
)
from app.core.payments.manual import ManualRefundGateway
from app.models.order import PaymentMethod

logger = logging.getLogger(__name__)


class PaymentGateways:
    """Registry of configured gateway adapters, keyed by payment method"""

    def __init__(self, adapters: Iterable[PaymentGatewayAdapter]):
        self._adapters: Dict[PaymentMethod, PaymentGatewayAdapter] = {a.method: a for a in adapters}

    def get(self, method) -> PaymentGatewayAdapter:
        try:
            method = PaymentMethod(method)
        except ValueError:
            raise ValidationError(f"Unknown payment method: {method}")
        adapter = self._adapters.get(method)
        if adapter is None:
            raise PaymentGatewayError(method.value, "payment method is not configured")
        return adapter

    @property
    def methods(self) -> List[PaymentMethod]:
        return list(self._adapters)


def build_gateways(settings: Settings) -> PaymentGateways:
    """Instantiate an adapter for every gateway that has credentials"""
    adapters: List[PaymentGatewayAdapter] = [ManualRefundGateway(timeout=settings.payment_timeout_seconds)]

    if settings.paypal_client_id and settings.paypal_client_secret:
        from app.core.payments.paypal import PayPalGateway

        adapters.append(
            PayPalGateway(
                settings.paypal_client_id,
                settings.paypal_client_secret,
                base_url=settings.paypal_base_url,
                brand_name=settings.store_name,
                timeout=settings.payment_timeout_seconds,
            )
        )
    if settings.razorpay_key_id and settings.razorpay_key_secret:
        from app.core.payments.razorpay_gateway import RazorpayGateway

        adapters.append(
            RazorpayGateway(
                settings.razorpay_key_id,
                settings.razorpay_key_secret,
                timeout=settings.payment_timeout_seconds,
            )
        )
    if settings.stripe_secret_key:
        from app.core.payments.stripe_gateway import StripeGateway

        adapters.append(StripeGateway(settings.stripe_secret_key, timeout=settings.payment_timeout_seconds))

    registry = PaymentGateways(adapters)
    logger.info(f"Payment gateways configured: {[m.value for m in registry.methods]}")
    return registry


__all__ = [
    "PaymentAuthorization",
    "PaymentCapture",
    "PaymentConfirmation",
    "PaymentGatewayAdapter",
    "PaymentGateways",
    "PayPalConfirmation",
    "RazorpayConfirmation",
    "RefundResult",
    "StripeConfirmation",
    "build_gateways",
]
