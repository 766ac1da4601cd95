"""
Pydantic schemas for token ledger endpoints.

Token amounts are whole tokens (integers). Bounds on amounts are enforced
here, before any route body runs.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from djei.schemas.common import CamelModel


class PurchaseRequest(CamelModel):
    """Request body for POST /tokens/purchase."""
    amount: int = Field(ge=1, le=10000, description="Tokens to credit")
    package_type: Literal["50", "100", "250", "500"]
    payment_intent_id: str = Field(min_length=1, max_length=255)


class BidRequest(CamelModel):
    """Request body for POST /tokens/bid."""
    song_id: str = Field(min_length=1, max_length=255)
    bid_amount: int = Field(ge=1, le=1000)
    event_id: str | None = Field(None, max_length=255)


class AdminAdjustRequest(CamelModel):
    """Request body for POST /tokens/admin/adjust."""
    user_id: str = Field(min_length=1, max_length=64)
    adjustment: int = Field(
        ge=-1_000_000,
        le=1_000_000,
        description="Signed; the resulting balance is clamped at 0",
    )
    reason: str = Field(min_length=1, max_length=500)


class BalanceResponse(CamelModel):
    balance: int


class PurchaseResponse(CamelModel):
    success: bool = True
    new_balance: int
    amount_added: int
    duplicate: bool = False
    audit_recorded: bool = True


class BidResponse(CamelModel):
    success: bool = True
    new_balance: int
    bid_amount: int
    song_id: str
    audit_recorded: bool = True


class AdminAdjustResponse(CamelModel):
    success: bool = True
    new_balance: int
    adjustment: int
    applied_adjustment: int
    audit_recorded: bool = True


class TransactionResponse(CamelModel):
    """Public representation of a ledger transaction."""
    id: int
    amount: int
    kind: str
    description: str | None
    reference_id: str | None
    # The ORM attribute is metadata_ (metadata is reserved on declarative models)
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_")
    created_at: datetime

    model_config = {"from_attributes": True}


class Pagination(CamelModel):
    page: int
    limit: int
    has_more: bool


class TransactionListResponse(CamelModel):
    transactions: list[TransactionResponse]
    pagination: Pagination


class ReconcileResponse(CamelModel):
    """
    Integrity check: stored balance vs. the sum of the transaction log.

    `match` is False when a transaction-log write was lost after a balance
    change.
    """
    account_id: str
    balance: int
    ledger_sum: int
    match: bool
