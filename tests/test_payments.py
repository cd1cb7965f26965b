"""Tests for the payment gateway adapters."""

import asyncio
import hashlib
import hmac
import json
from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest
import stripe

from app.core.exceptions import PaymentGatewayError, ValidationError
from app.core.payments import PaymentGateways, PayPalConfirmation, RazorpayConfirmation, StripeConfirmation
from app.core.payments.manual import ManualRefundGateway
from app.core.payments.paypal import PayPalGateway
from app.core.payments.razorpay_gateway import RazorpayGateway
from app.core.payments.stripe_gateway import StripeGateway
from app.models.order import PaymentMethod


class PayPalSandbox:
    """Routes PayPal REST calls to canned responses and records them"""

    def __init__(self):
        self.requests = []
        self.refund_status_code = 201
        self.refund_status = "COMPLETED"

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "A21AA", "expires_in": 32400})
        if path == "/v2/checkout/orders":
            return httpx.Response(201, json={
                "id": "5O190127TN364715T",
                "status": "CREATED",
                "links": [{"rel": "approve", "href": "https://www.sandbox.paypal.com/checkoutnow?token=5O19"}],
            })
        if path.endswith("/capture"):
            return httpx.Response(201, json={
                "id": "5O190127TN364715T",
                "status": "COMPLETED",
                "purchase_units": [{"payments": {"captures": [{
                    "id": "3C679366HH908993F",
                    "status": "COMPLETED",
                    "amount": {"currency_code": "USD", "value": "25.50"},
                }]}}],
            })
        if path.endswith("/refund"):
            if self.refund_status_code >= 400:
                return httpx.Response(self.refund_status_code, json={"name": "UNPROCESSABLE_ENTITY"})
            return httpx.Response(201, json={"id": "1JU08902781691411", "status": self.refund_status})
        return httpx.Response(404, json={"name": "RESOURCE_NOT_FOUND"})

    def calls_to(self, suffix):
        return [r for r in self.requests if r.url.path.endswith(suffix)]


@pytest.fixture
def sandbox():
    return PayPalSandbox()


@pytest.fixture
def paypal(sandbox):
    return PayPalGateway("client-id", "client-secret", base_url="https://paypal.test", transport=httpx.MockTransport(sandbox))


class TestPayPalGateway:
    async def test_authorize_returns_approve_url(self, paypal, sandbox):
        authorization = await paypal.authorize(Decimal("25.50"), "USD", "CHK-1")

        assert authorization.reference == "5O190127TN364715T"
        assert authorization.client_data["approve_url"].startswith("https://www.sandbox.paypal.com")
        body = json.loads(sandbox.calls_to("/v2/checkout/orders")[0].content)
        assert body["purchase_units"][0]["amount"] == {"currency_code": "USD", "value": "25.50"}

    async def test_capture(self, paypal, sandbox):
        capture = await paypal.capture(PayPalConfirmation(order_id="5O190127TN364715T"), Decimal("25.50"), "USD")

        assert capture.payment_id == "5O190127TN364715T"
        assert capture.transaction_ref == "3C679366HH908993F"
        assert capture.amount == Decimal("25.50")
        assert sandbox.calls_to("/capture")[0].headers["Authorization"] == "Bearer A21AA"

    async def test_token_is_reused(self, paypal, sandbox):
        await paypal.authorize(Decimal("1.00"), "USD", "CHK-1")
        await paypal.authorize(Decimal("2.00"), "USD", "CHK-2")

        assert len(sandbox.calls_to("/v1/oauth2/token")) == 1

    async def test_refund_sends_idempotency_key(self, paypal, sandbox):
        result = await paypal.refund("3C679366HH908993F", Decimal("10.00"), "USD", idempotency_key="RET-20240105-9F2C11AB")

        assert result.refund_ref == "1JU08902781691411"
        assert result.status == "completed"
        assert sandbox.calls_to("/refund")[0].headers["PayPal-Request-Id"] == "RET-20240105-9F2C11AB"

    async def test_rejected_refund(self, paypal, sandbox):
        sandbox.refund_status_code = 422

        with pytest.raises(PaymentGatewayError) as exc_info:
            await paypal.refund("3C679366HH908993F", Decimal("10.00"), "USD")

        assert "HTTP 422" in exc_info.value.reason
        assert exc_info.value.response == {"name": "UNPROCESSABLE_ENTITY"}

    async def test_pending_refund_is_not_settled(self, paypal, sandbox):
        sandbox.refund_status = "PENDING"

        with pytest.raises(PaymentGatewayError, match="is PENDING"):
            await paypal.refund("3C679366HH908993F", Decimal("10.00"), "USD", idempotency_key="RET-1")


class FakeRazorpayPayments:
    def __init__(self, status="captured", refund_status="processed"):
        self.status = status
        self.refund_status = refund_status
        self.refunds = []

    def fetch(self, payment_id):
        return {"id": payment_id, "status": self.status, "amount": 2550, "currency": "INR"}

    def capture(self, payment_id, amount, data):
        return {"id": payment_id, "status": "captured", "amount": amount, "currency": data["currency"]}

    def refund(self, payment_id, data):
        self.refunds.append((payment_id, data))
        return {"id": "rfnd_FP8QHiV938haTz", "status": self.refund_status, "amount": data["amount"]}


def razorpay_signature(secret, order_id, payment_id):
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


@pytest.fixture
def razorpay_gateway():
    gateway = RazorpayGateway("rzp_test_key", "rzp_test_secret")
    gateway.client.payment = FakeRazorpayPayments()
    return gateway


class TestRazorpayGateway:
    async def test_capture_with_valid_signature(self, razorpay_gateway):
        confirmation = RazorpayConfirmation(
            razorpay_order_id="order_9A33XWu170gUtm",
            razorpay_payment_id="pay_29QQoUBi66xm2f",
            razorpay_signature=razorpay_signature("rzp_test_secret", "order_9A33XWu170gUtm", "pay_29QQoUBi66xm2f"),
        )

        capture = await razorpay_gateway.capture(confirmation, Decimal("25.50"), "INR")

        assert capture.transaction_ref == "pay_29QQoUBi66xm2f"
        assert capture.amount == Decimal("25.50")

    async def test_authorized_payment_is_captured(self, razorpay_gateway):
        razorpay_gateway.client.payment = FakeRazorpayPayments(status="authorized")
        confirmation = RazorpayConfirmation(
            razorpay_order_id="order_1",
            razorpay_payment_id="pay_1",
            razorpay_signature=razorpay_signature("rzp_test_secret", "order_1", "pay_1"),
        )

        capture = await razorpay_gateway.capture(confirmation, Decimal("25.50"), "INR")

        assert capture.amount == Decimal("25.50")

    async def test_forged_signature(self, razorpay_gateway):
        confirmation = RazorpayConfirmation(
            razorpay_order_id="order_1",
            razorpay_payment_id="pay_1",
            razorpay_signature=razorpay_signature("wrong-secret", "order_1", "pay_1"),
        )

        with pytest.raises(PaymentGatewayError, match="invalid payment signature"):
            await razorpay_gateway.capture(confirmation, Decimal("25.50"), "INR")

    async def test_refund_in_minor_units(self, razorpay_gateway):
        result = await razorpay_gateway.refund("pay_1", Decimal("10.00"), "INR", idempotency_key="RET-1")

        assert result.refund_ref == "rfnd_FP8QHiV938haTz"
        payment_id, data = razorpay_gateway.client.payment.refunds[0]
        assert payment_id == "pay_1"
        assert data["amount"] == 1000
        assert data["receipt"] == "RET-1"

    async def test_pending_refund_is_not_settled(self, razorpay_gateway):
        razorpay_gateway.client.payment = FakeRazorpayPayments(refund_status="pending")

        with pytest.raises(PaymentGatewayError, match="is pending"):
            await razorpay_gateway.refund("pay_1", Decimal("10.00"), "INR", idempotency_key="RET-1")


class TestStripeGateway:
    async def test_capture_checks_intent_succeeded(self, monkeypatch):
        intent = SimpleNamespace(id="pi_123", status="succeeded", amount_received=2550, currency="usd")
        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", lambda *args, **kwargs: intent)

        capture = await StripeGateway("sk_test").capture(StripeConfirmation(payment_intent_id="pi_123"), Decimal("25.50"), "USD")

        assert capture.transaction_ref == "pi_123"
        assert capture.amount == Decimal("25.50")
        assert capture.currency == "USD"

    async def test_unpaid_intent(self, monkeypatch):
        intent = SimpleNamespace(id="pi_123", status="requires_payment_method", amount_received=0, currency="usd")
        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", lambda *args, **kwargs: intent)

        with pytest.raises(PaymentGatewayError, match="requires_payment_method"):
            await StripeGateway("sk_test").capture(StripeConfirmation(payment_intent_id="pi_123"), Decimal("25.50"), "USD")

    async def test_refund_passes_idempotency_key(self, monkeypatch):
        calls = []

        def create_refund(**kwargs):
            calls.append(kwargs)
            return SimpleNamespace(id="re_123", status="succeeded")

        monkeypatch.setattr(stripe.Refund, "create", create_refund)

        result = await StripeGateway("sk_test").refund("pi_123", Decimal("10.00"), "USD", idempotency_key="RET-1")

        assert result.refund_ref == "re_123"
        assert calls[0]["amount"] == 1000
        assert calls[0]["idempotency_key"] == "RET-1"

    async def test_pending_refund_is_not_settled(self, monkeypatch):
        monkeypatch.setattr(stripe.Refund, "create", lambda **kwargs: SimpleNamespace(id="re_123", status="pending"))

        with pytest.raises(PaymentGatewayError, match="re_123 is pending"):
            await StripeGateway("sk_test").refund("pi_123", Decimal("10.00"), "USD", idempotency_key="RET-1")

    async def test_stripe_error_is_wrapped(self, monkeypatch):
        def create_refund(**kwargs):
            raise stripe.InvalidRequestError("No such payment_intent: 'pi_404'", "payment_intent")

        monkeypatch.setattr(stripe.Refund, "create", create_refund)

        with pytest.raises(PaymentGatewayError) as exc_info:
            await StripeGateway("sk_test").refund("pi_404", Decimal("10.00"), "USD")

        assert exc_info.value.public_detail == "Payment could not be completed"


class TestGatewayRegistry:
    def test_unknown_method(self):
        with pytest.raises(ValidationError):
            PaymentGateways([]).get("bitcoin")

    def test_unconfigured_method(self):
        with pytest.raises(PaymentGatewayError):
            PaymentGateways([ManualRefundGateway()]).get(PaymentMethod.STRIPE)

    async def test_calls_are_bounded_by_the_timeout(self):
        gateway = ManualRefundGateway(timeout=0.01)

        with pytest.raises(PaymentGatewayError, match="timed out"):
            await gateway._bounded(asyncio.sleep(1), "refund")

    async def test_bank_transfer_takes_no_payments(self):
        with pytest.raises(PaymentGatewayError):
            await ManualRefundGateway().authorize(Decimal("1.00"), "USD", "CHK-1")
