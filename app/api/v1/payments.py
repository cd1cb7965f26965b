"""Payment endpoints: gateway configuration and payment authorization"""

from fastapi import APIRouter, Depends

from app.api.deps import get_cart_owner, get_checkout_service, get_payment_gateways
from app.config import settings
from app.core.payments import PaymentGateways
from app.models.order import PaymentMethod
from app.schemas.order import AuthorizeResponse, CheckoutRequest, PaymentConfigResponse
from app.services.checkout import CheckoutService

router = APIRouter()


@router.get("/config", response_model=PaymentConfigResponse)
async def payment_config(gateways: PaymentGateways = Depends(get_payment_gateways)):
    """
    Public gateway configuration for the storefront's payment buttons.
    """
    methods = [method for method in gateways.methods if method != PaymentMethod.BANK_TRANSFER]
    return PaymentConfigResponse(
        currency=settings.currency,
        methods=methods,
        paypal_client_id=settings.paypal_client_id if PaymentMethod.PAYPAL in methods else None,
        razorpay_key_id=settings.razorpay_key_id if PaymentMethod.RAZORPAY in methods else None,
    )


@router.post("/{method}/authorize", response_model=AuthorizeResponse)
async def authorize_payment(
    method: PaymentMethod,
    checkout: CheckoutRequest,
    owner: str = Depends(get_cart_owner),
    service: CheckoutService = Depends(get_checkout_service)
):
    """
    Price the cart and open a payment with the chosen gateway.

    The storefront completes the gateway's client-side flow with the returned
    data, then calls /api/orders/complete with the confirmation.
    """
    authorization = await service.authorize(
        method,
        owner,
        checkout.customer,
        checkout.shipping_address,
        billing_address=checkout.billing_address,
        items=checkout.items,
    )
    return AuthorizeResponse(**authorization.model_dump())
