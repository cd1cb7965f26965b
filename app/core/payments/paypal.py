"""PayPal Orders v2 integration over the REST API"""

from decimal import Decimal
from typing import Any, Dict, Optional
import logging
import time

import httpx

from app.core.payments.base import (
    PaymentAuthorization,
    PaymentCapture,
    PaymentGatewayAdapter,
    PayPalConfirmation,
    RefundResult,
)
from app.models.order import PaymentMethod

logger = logging.getLogger(__name__)

COMPLETED_REFUND_STATUS = "COMPLETED"


class PayPalGateway(PaymentGatewayAdapter):
    """Creates, captures and refunds PayPal checkout orders"""

    method = PaymentMethod.PAYPAL

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str = "https://api-m.sandbox.paypal.com",
        brand_name: str = "A2Z BOOKSHOP",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout)
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url.rstrip("/")
        self.brand_name = brand_name
        self._transport = transport
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        response = await client.post(
            "/v1/oauth2/token",
            auth=(self.client_id, self.client_secret),
            data={"grant_type": "client_credentials"},
        )
        if response.status_code != 200:
            raise self._error(f"OAuth token request failed with HTTP {response.status_code}")
        payload = response.json()
        self._token = payload["access_token"]
        # Refresh a minute early
        self._token_expires_at = time.monotonic() + int(payload.get("expires_in", 0)) - 60
        return self._token

    async def _request(
        self,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                token = await self._access_token(client)
                response = await client.post(
                    path,
                    json=body or {},
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Prefer": "return=representation",
                        **(headers or {}),
                    },
                )
        except httpx.HTTPError as e:
            raise self._error(f"request to {path} failed: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {"raw": response.text}
        if response.status_code >= 400:
            logger.error(f"PayPal {path} returned HTTP {response.status_code}: {payload}")
            raise self._error(f"HTTP {response.status_code} from {path}", payload)
        return payload

    async def authorize(self, amount: Decimal, currency: str, reference: str) -> PaymentAuthorization:
        body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": reference,
                    "amount": {"currency_code": currency, "value": f"{amount:.2f}"},
                }
            ],
            "application_context": {
                "brand_name": self.brand_name,
                "user_action": "PAY_NOW",
            },
        }
        payload = await self._bounded(self._request("/v2/checkout/orders", body), "order creation")
        approve_url = next(
            (link["href"] for link in payload.get("links", []) if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        logger.info(f"Created PayPal order {payload.get('id')} for {reference}")
        return PaymentAuthorization(
            method=self.method,
            reference=payload["id"],
            amount=amount,
            currency=currency,
            client_data={"order_id": payload["id"], "approve_url": approve_url},
        )

    async def capture(self, confirmation: PayPalConfirmation, amount: Decimal, currency: str) -> PaymentCapture:
        payload = await self._bounded(
            self._request(f"/v2/checkout/orders/{confirmation.order_id}/capture"),
            "capture",
        )
        if payload.get("status") != "COMPLETED":
            raise self._error(f"order {confirmation.order_id} is {payload.get('status')}", payload)

        try:
            capture = payload["purchase_units"][0]["payments"]["captures"][0]
        except (KeyError, IndexError) as e:
            raise self._error("capture response has no capture", payload) from e
        if capture.get("status") != "COMPLETED":
            raise self._error(f"capture {capture.get('id')} is {capture.get('status')}", payload)

        logger.info(f"Captured PayPal order {confirmation.order_id} as {capture['id']}")
        return PaymentCapture(
            method=self.method,
            payment_id=confirmation.order_id,
            transaction_ref=capture["id"],
            amount=Decimal(capture["amount"]["value"]),
            currency=capture["amount"]["currency_code"],
            raw=payload,
        )

    async def refund(
        self,
        transaction_ref: str,
        amount: Decimal,
        currency: str,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> RefundResult:
        body: Dict[str, Any] = {"amount": {"currency_code": currency, "value": f"{amount:.2f}"}}
        if reason:
            body["note_to_payer"] = reason[:255]
        headers = {"PayPal-Request-Id": idempotency_key} if idempotency_key else {}

        payload = await self._bounded(
            self._request(f"/v2/payments/captures/{transaction_ref}/refund", body, headers),
            "refund",
        )
        refund_status = payload.get("status", "")
        if not payload.get("id") or refund_status != COMPLETED_REFUND_STATUS:
            raise self._error(f"refund of capture {transaction_ref} is {refund_status or 'unknown'}", payload)

        logger.info(f"Refunded PayPal capture {transaction_ref}: {payload['id']} ({refund_status})")
        return RefundResult(
            method=self.method,
            refund_ref=payload["id"],
            amount=amount,
            status=refund_status.lower(),
            raw=payload,
        )
