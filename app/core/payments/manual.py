"""Bank transfer refunds, settled outside any gateway"""

from decimal import Decimal
from typing import Optional
import logging
import secrets

from app.core.payments.base import PaymentAuthorization, PaymentCapture, PaymentGatewayAdapter, RefundResult
from app.models.order import PaymentMethod

logger = logging.getLogger(__name__)


class ManualRefundGateway(PaymentGatewayAdapter):
    """Records a refund the store pays out by bank transfer; takes no payments"""

    method = PaymentMethod.BANK_TRANSFER

    async def authorize(self, amount: Decimal, currency: str, reference: str) -> PaymentAuthorization:
        raise self._error("bank transfer cannot be used to pay for orders")

    async def capture(self, confirmation, amount: Decimal, currency: str) -> PaymentCapture:
        raise self._error("bank transfer cannot be used to pay for orders")

    async def refund(
        self,
        transaction_ref: str,
        amount: Decimal,
        currency: str,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> RefundResult:
        refund_ref = f"BT-{secrets.token_hex(6).upper()}"
        logger.info(f"Recorded bank transfer refund {refund_ref} of {amount} {currency} ({idempotency_key})")
        return RefundResult(method=self.method, refund_ref=refund_ref, amount=amount, status="manual")
