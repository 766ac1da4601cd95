"""
Token ledger service — balances, transaction log, bids, purchases.

THIS IS THE CORE OF THE SERVICE. It handles:
  - Balance reads (a missing balance row reads as 0)
  - Credits (purchases, rewards) and debits (bids)
  - Admin adjustments, clamped at zero, with an audit entry
  - Transaction history, newest first
  - Purchase deduplication by payment intent id
  - Integrity checks (stored balance vs. sum of the transaction log)

Atomicity of balance changes:
  A balance is never read into Python, modified, and written back. Every
  mutation is one statement the database applies atomically per row:

    credit:  UPDATE user_tokens SET balance = balance + :n ... RETURNING balance
    debit:   UPDATE user_tokens SET balance = balance - :n
             WHERE account_id = :id AND balance >= :n RETURNING balance
    adjust:  compare-and-swap, UPDATE ... WHERE balance = :previously_read,
             retried (LEDGER_CAS_ATTEMPTS) when another writer got there first

  Two concurrent debits against the same account therefore cannot both
  pass the sufficiency check against a stale balance: the second UPDATE
  re-evaluates `balance >= :n` against the row the first one wrote. The
  serialization unit is the account row; there is no global lock.

After the balance has moved:
  The transaction-log row, the bid record and the admin audit entry are
  written after the balance statement, each inside its own SAVEPOINT.
  A failure there does NOT undo the balance change. The write is retried
  (LEDGER_LOG_ATTEMPTS); if it still fails, the full payload is logged at
  error level and the name of the failed record is added to
  LedgerResult.audit_failures, so callers can tell "committed, audit
  incomplete" apart from success.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import delete, select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from djei.config import settings
from djei.database import insert_for
from djei.exceptions import ConflictError, InsufficientFundsError, ValidationError
from djei.log import get_logger
from djei.models.admin_action import AdminAction
from djei.models.song_bid import BidStatus, SongBid
from djei.models.token_balance import TokenBalance
from djei.models.token_purchase import TokenPurchase
from djei.models.token_transaction import TokenTransaction, TransactionKind

logger = get_logger(__name__)

balances = TokenBalance.__table__

# Largest balance the 32-bit INTEGER column holds
MAX_BALANCE = 2**31 - 1


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class LedgerResult:
    """
    Outcome of a balance mutation that has been applied.

    Attributes:
        account_id: The account whose balance changed.
        new_balance: Balance after the mutation.
        applied_amount: Signed change actually applied (post-clamp for
                        admin adjustments, 0 for a duplicate purchase).
        transaction: The transaction-log row, or None if it could not be written.
        audit_failures: Names of follow-up records that failed to write.
    """
    account_id: str
    new_balance: int
    applied_amount: int
    transaction: TokenTransaction | None = None
    audit_failures: list[str] = field(default_factory=list)

    @property
    def audit_recorded(self) -> bool:
        return not self.audit_failures


@dataclass
class BidResult:
    ledger: LedgerResult
    bid: SongBid | None


@dataclass
class PurchaseResult:
    ledger: LedgerResult
    duplicate: bool = False


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _require_positive(amount: int) -> None:
    if amount <= 0:
        raise ValidationError(
            "Validation failed",
            details=[{"field": "amount", "message": "Amount must be greater than 0"}],
        )


async def _ensure_balance_row(db: AsyncSession, account_id: str) -> None:
    """Create the zero balance row for an account if it doesn't exist yet."""
    stmt = (
        insert_for(db, balances)
        .values(account_id=account_id, balance=0, total_earned=0, total_spent=0)
        .on_conflict_do_nothing(index_elements=[balances.c.account_id])
    )
    await db.execute(stmt)


async def _record(db: AsyncSession, ledger: LedgerResult, write, failure_event: str, payload: dict):
    """
    Run `write` (an async callable) inside a SAVEPOINT, with retries.

    Returns whatever `write` returns, or None once all attempts failed. The
    enclosing transaction, and with it the balance change, is left intact.
    """
    attempts = max(1, settings.LEDGER_LOG_ATTEMPTS)
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            async with db.begin_nested():
                return await write()
        except SQLAlchemyError as exc:
            last_error = exc
            logger.warning(
                "ledger.write_retry",
                record=failure_event,
                attempt=attempt,
                error=str(exc),
            )

    logger.error(failure_event, error=str(last_error), **payload)
    ledger.audit_failures.append(failure_event)
    return None


async def _insert_transaction(db: AsyncSession, **values) -> TokenTransaction:
    txn = TokenTransaction(**values)
    db.add(txn)
    await db.flush()
    return txn


async def _append_transaction(
    db: AsyncSession,
    ledger: LedgerResult,
    kind: TransactionKind,
    description: str | None,
    metadata: dict | None,
    reference_id: str | None,
) -> None:
    values = {
        "account_id": ledger.account_id,
        "amount": ledger.applied_amount,
        "kind": TransactionKind(kind).value,
        "description": description,
        "reference_id": reference_id,
        "metadata_": dict(metadata or {}),
    }
    ledger.transaction = await _record(
        db,
        ledger,
        lambda: _insert_transaction(db, **values),
        "ledger.transaction_log_failed",
        {**values, "new_balance": ledger.new_balance},
    )


async def _insert_admin_action(db: AsyncSession, **values) -> AdminAction:
    action = AdminAction(**values)
    db.add(action)
    await db.flush()
    return action


async def _upsert_bid(
    db: AsyncSession,
    account_id: str,
    song_id: str,
    event_id: str | None,
    bid_amount: int,
) -> SongBid:
    """Insert the bid, or replace the account's existing bid on the same song."""
    table = SongBid.__table__
    now = datetime.now(timezone.utc)
    stmt = insert_for(db, table).values(
        account_id=account_id,
        song_id=song_id,
        event_id=event_id,
        bid_amount=bid_amount,
        status=BidStatus.ACTIVE.value,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.account_id, table.c.song_id],
        set_={
            "event_id": stmt.excluded.event_id,
            "bid_amount": stmt.excluded.bid_amount,
            "status": stmt.excluded.status,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await db.execute(stmt)

    result = await db.execute(
        select(SongBid)
        .where(SongBid.account_id == account_id, SongBid.song_id == song_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_balance(db: AsyncSession, account_id: str) -> int:
    """Current balance of an account; 0 if it has never been credited."""
    result = await db.execute(
        select(TokenBalance.balance).where(TokenBalance.account_id == account_id)
    )
    balance = result.scalar_one_or_none()
    return balance if balance is not None else 0


async def list_transactions(
    db: AsyncSession,
    account_id: str,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[TokenTransaction], bool]:
    """
    One page of an account's transactions, newest first.

    Rows with the same created_at are ordered by insertion (id). One extra
    row is fetched to know whether another page exists.

    Returns:
        Tuple of (transactions, has_more).
    """
    offset = (page - 1) * page_size
    result = await db.execute(
        select(TokenTransaction)
        .where(TokenTransaction.account_id == account_id)
        .order_by(TokenTransaction.created_at.desc(), TokenTransaction.id.desc())
        .offset(offset)
        .limit(page_size + 1)
    )
    rows = list(result.scalars().all())
    return rows[:page_size], len(rows) > page_size


async def get_bid(db: AsyncSession, account_id: str, song_id: str) -> SongBid | None:
    result = await db.execute(
        select(SongBid).where(SongBid.account_id == account_id, SongBid.song_id == song_id)
    )
    return result.scalar_one_or_none()


async def reconcile(db: AsyncSession, account_id: str) -> dict:
    """
    Compare the stored balance with the sum of the transaction log.

    A mismatch means a transaction-log write was lost after a balance change
    (see ledger.transaction_log_failed in the logs).
    """
    balance = await get_balance(db, account_id)
    result = await db.execute(
        select(func.coalesce(func.sum(TokenTransaction.amount), 0))
        .where(TokenTransaction.account_id == account_id)
    )
    ledger_sum = int(result.scalar_one())
    return {
        "account_id": account_id,
        "balance": balance,
        "ledger_sum": ledger_sum,
        "match": balance == ledger_sum,
    }


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def credit(
    db: AsyncSession,
    account_id: str,
    amount: int,
    kind: TransactionKind = TransactionKind.PURCHASE,
    description: str | None = None,
    metadata: dict | None = None,
    reference_id: str | None = None,
) -> LedgerResult:
    """
    Add tokens to an account and log a +amount transaction.

    Raises:
        ValidationError: If amount is not positive, or the balance would
                         exceed MAX_BALANCE.
    """
    _require_positive(amount)
    await _ensure_balance_row(db, account_id)

    result = await db.execute(
        update(balances)
        .where(balances.c.account_id == account_id, balances.c.balance <= MAX_BALANCE - amount)
        .values(
            balance=balances.c.balance + amount,
            total_earned=balances.c.total_earned + amount,
        )
        .returning(balances.c.balance)
    )
    new_balance = result.scalar_one_or_none()
    if new_balance is None:
        raise ValidationError(
            "Validation failed",
            details=[{"field": "amount", "message": f"Balance cannot exceed {MAX_BALANCE}"}],
        )
    logger.info(
        "ledger.credit",
        account_id=account_id,
        amount=amount,
        kind=TransactionKind(kind).value,
        new_balance=new_balance,
    )

    ledger = LedgerResult(account_id=account_id, new_balance=new_balance, applied_amount=amount)
    await _append_transaction(db, ledger, kind, description, metadata, reference_id)
    return ledger


async def debit(
    db: AsyncSession,
    account_id: str,
    amount: int,
    kind: TransactionKind = TransactionKind.BID,
    description: str | None = None,
    metadata: dict | None = None,
    reference_id: str | None = None,
) -> LedgerResult:
    """
    Remove tokens from an account and log a -amount transaction.

    The sufficiency check and the write are the same statement, so nothing
    is mutated when the balance is too low.

    Raises:
        ValidationError: If amount is not positive.
        InsufficientFundsError: If the balance is lower than amount.
    """
    _require_positive(amount)

    result = await db.execute(
        update(balances)
        .where(balances.c.account_id == account_id, balances.c.balance >= amount)
        .values(
            balance=balances.c.balance - amount,
            total_spent=balances.c.total_spent + amount,
        )
        .returning(balances.c.balance)
    )
    new_balance = result.scalar_one_or_none()

    if new_balance is None:
        current = await get_balance(db, account_id)
        logger.info("ledger.insufficient_funds", account_id=account_id, current_balance=current, required=amount)
        raise InsufficientFundsError(account_id=account_id, current_balance=current, required=amount)

    logger.info("ledger.debit", account_id=account_id, amount=amount, new_balance=new_balance)

    ledger = LedgerResult(account_id=account_id, new_balance=new_balance, applied_amount=-amount)
    await _append_transaction(db, ledger, kind, description, metadata, reference_id)
    return ledger


async def adjust_as_admin(
    db: AsyncSession,
    actor_id: str,
    target_account_id: str,
    signed_amount: int,
    reason: str,
) -> LedgerResult:
    """
    Apply a signed admin adjustment, clamping the result at zero.

    An adjustment of -1000 on a balance of 75 leaves 0 and logs -75: the
    transaction records what was applied, not what was asked for. An audit
    entry with the old and new balance is written alongside.

    The caller (require_admin) has already verified elevated privilege.

    Raises:
        ValidationError: If the balance would exceed MAX_BALANCE.
        ConflictError: If the balance kept changing under us for every
                       compare-and-swap attempt.
    """
    await _ensure_balance_row(db, target_account_id)

    for attempt in range(1, max(1, settings.LEDGER_CAS_ATTEMPTS) + 1):
        old_balance = await get_balance(db, target_account_id)
        new_balance = max(0, old_balance + signed_amount)
        if new_balance > MAX_BALANCE:
            raise ValidationError(
                "Validation failed",
                details=[{"field": "adjustment", "message": f"Balance cannot exceed {MAX_BALANCE}"}],
            )
        applied = new_balance - old_balance

        values = {"balance": new_balance}
        if applied > 0:
            values["total_earned"] = balances.c.total_earned + applied
        elif applied < 0:
            values["total_spent"] = balances.c.total_spent - applied

        result = await db.execute(
            update(balances)
            .where(
                balances.c.account_id == target_account_id,
                balances.c.balance == old_balance,
            )
            .values(**values)
        )
        if result.rowcount == 1:
            break
        logger.warning("ledger.admin_adjust_conflict", account_id=target_account_id, attempt=attempt)
    else:
        raise ConflictError("Balance changed concurrently, please retry")

    logger.info(
        "ledger.admin_adjust",
        actor_id=actor_id,
        account_id=target_account_id,
        requested=signed_amount,
        applied=applied,
        old_balance=old_balance,
        new_balance=new_balance,
    )

    ledger = LedgerResult(account_id=target_account_id, new_balance=new_balance, applied_amount=applied)
    await _append_transaction(
        db,
        ledger,
        TransactionKind.ADMIN_ADJUSTMENT,
        reason,
        {"admin_id": actor_id, "requested_adjustment": signed_amount},
        None,
    )

    audit = {
        "admin_id": actor_id,
        "action": "token_adjustment",
        "target_user_id": target_account_id,
        "details": {
            "adjustment": signed_amount,
            "applied_adjustment": applied,
            "reason": reason,
            "old_balance": old_balance,
            "new_balance": new_balance,
        },
    }
    await _record(
        db,
        ledger,
        lambda: _insert_admin_action(db, **audit),
        "ledger.audit_write_failed",
        audit,
    )
    return ledger


async def place_bid(
    db: AsyncSession,
    account_id: str,
    song_id: str,
    bid_amount: int,
    event_id: str | None = None,
) -> BidResult:
    """
    Spend tokens on a song and record the account's bid on it.

    A repeated bid on the same song replaces the earlier bid record (the
    earlier debit stays; each bid spends its own tokens).

    Raises:
        InsufficientFundsError: Nothing is debited and no bid is written.
    """
    ledger = await debit(
        db,
        account_id,
        bid_amount,
        kind=TransactionKind.BID,
        description=f"Bid {bid_amount} tokens on song",
        metadata={"songId": song_id, "eventId": event_id},
        reference_id=song_id,
    )

    bid = await _record(
        db,
        ledger,
        lambda: _upsert_bid(db, account_id, song_id, event_id, bid_amount),
        "ledger.bid_write_failed",
        {"account_id": account_id, "song_id": song_id, "event_id": event_id, "bid_amount": bid_amount},
    )
    return BidResult(ledger=ledger, bid=bid)


async def purchase(
    db: AsyncSession,
    account_id: str,
    amount: int,
    package_type: str,
    payment_intent_id: str,
) -> PurchaseResult:
    """
    Credit purchased tokens, at most once per payment intent.

    The intent id is claimed first (insert-if-absent). A request whose
    intent was already claimed credits nothing and reports duplicate=True
    with the current balance.
    """
    _require_positive(amount)

    purchases = TokenPurchase.__table__
    claim = await db.execute(
        insert_for(db, purchases)
        .values(
            payment_intent_id=payment_intent_id,
            account_id=account_id,
            amount=amount,
            package_type=package_type,
        )
        .on_conflict_do_nothing(index_elements=[purchases.c.payment_intent_id])
    )

    if claim.rowcount == 0:
        current = await get_balance(db, account_id)
        logger.info(
            "ledger.purchase_duplicate",
            account_id=account_id,
            payment_intent_id=payment_intent_id,
        )
        return PurchaseResult(
            ledger=LedgerResult(account_id=account_id, new_balance=current, applied_amount=0),
            duplicate=True,
        )

    try:
        ledger = await credit(
            db,
            account_id,
            amount,
            kind=TransactionKind.PURCHASE,
            description=f"Purchased {amount} tokens ({package_type} package)",
            metadata={"paymentIntentId": payment_intent_id, "packageType": package_type},
            reference_id=payment_intent_id,
        )
    except ValidationError:
        # Nothing was credited; leave the intent redeemable
        await db.execute(delete(purchases).where(purchases.c.payment_intent_id == payment_intent_id))
        raise
    return PurchaseResult(ledger=ledger)
