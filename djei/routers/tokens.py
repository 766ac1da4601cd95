"""
Tokens router — the in-app token currency.

Member endpoints (scoped to the authenticated user's own balance):
  GET  /tokens/balance        — Current balance
  POST /tokens/purchase       — Credit purchased tokens (once per payment intent)
  POST /tokens/bid            — Spend tokens on a song
  GET  /tokens/transactions   — Transaction history, newest first

Admin endpoints:
  POST /tokens/admin/adjust               — Signed adjustment, clamped at 0
  GET  /tokens/admin/reconcile/{user_id}  — Balance vs. transaction log check

Bodies are validated by the schemas before a handler runs; a rejected
request never reaches the ledger.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from djei.config import settings
from djei.database import get_db
from djei.dependencies import get_current_identity, get_payments, require_admin
from djei.schemas.token import (
    AdminAdjustRequest,
    AdminAdjustResponse,
    BalanceResponse,
    BidRequest,
    BidResponse,
    Pagination,
    PurchaseRequest,
    PurchaseResponse,
    ReconcileResponse,
    TransactionListResponse,
    TransactionResponse,
)
from djei.security import Identity
from djei.services import ledger_service
from djei.services.payment_service import StripePayments

router = APIRouter()


@router.get(
    "/balance",
    response_model=BalanceResponse,
    summary="Get the caller's token balance",
)
async def get_balance(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Returns 0 for an account that has never held tokens."""
    balance = await ledger_service.get_balance(db, identity.id)
    return BalanceResponse(balance=balance)


@router.post(
    "/purchase",
    response_model=PurchaseResponse,
    summary="Credit purchased tokens",
)
async def purchase_tokens(
    request: PurchaseRequest,
    identity: Identity = Depends(get_current_identity),
    payments: StripePayments = Depends(get_payments),
    db: AsyncSession = Depends(get_db),
):
    """
    Credit the tokens paid for by a payment intent.

    Each paymentIntentId credits at most once. Repeating a request returns
    200 with `amountAdded: 0` and `duplicate: true`. With
    VERIFY_PAYMENT_INTENTS on, the intent must have succeeded and have been
    created for this user and this token amount.
    """
    if settings.VERIFY_PAYMENT_INTENTS:
        await payments.verify_payment_intent(request.payment_intent_id, identity.id, request.amount)

    result = await ledger_service.purchase(
        db=db,
        account_id=identity.id,
        amount=request.amount,
        package_type=request.package_type,
        payment_intent_id=request.payment_intent_id,
    )
    return PurchaseResponse(
        new_balance=result.ledger.new_balance,
        amount_added=result.ledger.applied_amount,
        duplicate=result.duplicate,
        audit_recorded=result.ledger.audit_recorded,
    )


@router.post(
    "/bid",
    response_model=BidResponse,
    summary="Bid tokens on a song",
)
async def place_bid(
    request: BidRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """
    Debit the bid amount and record the bid.

    Rejected with 400 `Insufficient tokens` (including `currentBalance` and
    `required`) when the balance is too low; nothing is debited then.
    """
    result = await ledger_service.place_bid(
        db=db,
        account_id=identity.id,
        song_id=request.song_id,
        bid_amount=request.bid_amount,
        event_id=request.event_id,
    )
    return BidResponse(
        new_balance=result.ledger.new_balance,
        bid_amount=request.bid_amount,
        song_id=request.song_id,
        audit_recorded=result.ledger.audit_recorded,
    )


@router.get(
    "/transactions",
    response_model=TransactionListResponse,
    summary="List the caller's token transactions",
)
async def list_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    items, has_more = await ledger_service.list_transactions(
        db, identity.id, page=page, page_size=limit
    )
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(txn) for txn in items],
        pagination=Pagination(page=page, limit=limit, has_more=has_more),
    )


# ---------------------------------------------------------------------------
# Admin endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/admin/adjust",
    response_model=AdminAdjustResponse,
    summary="[Admin] Adjust a user's token balance",
)
async def admin_adjust(
    request: AdminAdjustRequest,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Apply a signed adjustment to any account.

    The resulting balance is clamped at 0; `appliedAdjustment` is the
    change actually made (e.g. -75 for an adjustment of -1000 on 75).
    """
    result = await ledger_service.adjust_as_admin(
        db=db,
        actor_id=admin.id,
        target_account_id=request.user_id,
        signed_amount=request.adjustment,
        reason=request.reason,
    )
    return AdminAdjustResponse(
        new_balance=result.new_balance,
        adjustment=request.adjustment,
        applied_adjustment=result.applied_amount,
        audit_recorded=result.audit_recorded,
    )


@router.get(
    "/admin/reconcile/{user_id}",
    response_model=ReconcileResponse,
    summary="[Admin] Compare a balance with its transaction log",
)
async def admin_reconcile(
    user_id: str,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await ledger_service.reconcile(db, user_id)
