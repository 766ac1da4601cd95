"""
Pydantic schemas for payment intent creation.

Amounts are integer cents in the payment currency, as the payment
provider expects them.
"""

from pydantic import Field

from djei.schemas.common import CamelModel


class CreateIntentRequest(CamelModel):
    """Request body for POST /payments/create-intent."""
    amount: int = Field(ge=50, le=99999999, description="Amount in cents")
    currency: str | None = Field(None, pattern=r"^[a-zA-Z]{3}$")
    token_amount: int | None = Field(None, ge=1, le=10000)
    event_id: str | None = Field(None, max_length=255)
    description: str | None = Field(None, max_length=500)


class CreateIntentResponse(CamelModel):
    success: bool = True
    client_secret: str
    payment_intent_id: str
