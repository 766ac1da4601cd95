"""
Payments router.

Endpoints:
  POST /payments/create-intent — Create a payment intent for the caller
"""

from fastapi import APIRouter, Depends

from djei.dependencies import get_current_identity, get_payments
from djei.schemas.payment import CreateIntentRequest, CreateIntentResponse
from djei.security import Identity
from djei.services.payment_service import StripePayments

router = APIRouter()


@router.post(
    "/create-intent",
    response_model=CreateIntentResponse,
    summary="Create a payment intent",
)
async def create_intent(
    request: CreateIntentRequest,
    identity: Identity = Depends(get_current_identity),
    payments: StripePayments = Depends(get_payments),
):
    """
    Start a card payment. The returned `clientSecret` is confirmed by the
    frontend; the `paymentIntentId` is later redeemed at /tokens/purchase.
    """
    intent = await payments.create_payment_intent(
        identity,
        amount_cents=request.amount,
        currency=request.currency,
        token_amount=request.token_amount,
        event_id=request.event_id,
        description=request.description,
    )
    return CreateIntentResponse(
        client_secret=intent["client_secret"],
        payment_intent_id=intent["payment_intent_id"],
    )
