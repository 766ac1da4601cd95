"""
Service-level tests for the token ledger.

These exercise djei.services.ledger_service directly:
  - credit/debit boundaries (exact balance, balance + 1)
  - bids replacing earlier bids on the same song
  - concurrent debits never driving a balance negative
  - balance == sum of transactions after concurrent credits and debits
  - admin adjustments retrying, then giving up, when the balance moves
  - a failed transaction-log write leaving the balance change in place
    and being reported instead of swallowed
"""

import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from djei.config import settings
from djei.exceptions import ConflictError, InsufficientFundsError, ValidationError
from djei.models.song_bid import SongBid
from djei.models.token_balance import TokenBalance
from djei.models.token_purchase import TokenPurchase
from djei.models.token_transaction import TokenTransaction, TransactionKind
from djei.services import ledger_service

ACCOUNT = "acct-1"


async def _sum_of_transactions(db, account_id):
    result = await db.execute(
        select(func.coalesce(func.sum(TokenTransaction.amount), 0))
        .where(TokenTransaction.account_id == account_id)
    )
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Credit / debit
# ---------------------------------------------------------------------------

async def test_absent_balance_reads_zero_without_creating_row(db_session):
    assert await ledger_service.get_balance(db_session, ACCOUNT) == 0
    assert await db_session.get(TokenBalance, ACCOUNT) is None


async def test_credit_creates_balance_and_transaction(db_session):
    result = await ledger_service.credit(
        db_session, ACCOUNT, 100, kind=TransactionKind.REWARD, description="Welcome bonus"
    )
    await db_session.commit()

    assert result.new_balance == 100
    assert result.applied_amount == 100
    assert result.audit_recorded
    assert result.transaction.amount == 100
    assert result.transaction.kind == "reward"

    row = await db_session.get(TokenBalance, ACCOUNT)
    assert row.total_earned == 100
    assert row.total_spent == 0


@pytest.mark.parametrize("amount", [0, -1])
async def test_non_positive_amounts_rejected(db_session, amount):
    with pytest.raises(ValidationError):
        await ledger_service.credit(db_session, ACCOUNT, amount)
    with pytest.raises(ValidationError):
        await ledger_service.debit(db_session, ACCOUNT, amount)


async def test_debit_exact_balance_leaves_zero(db_session):
    await ledger_service.credit(db_session, ACCOUNT, 40)
    result = await ledger_service.debit(db_session, ACCOUNT, 40)

    assert result.new_balance == 0
    assert result.applied_amount == -40
    assert result.transaction.amount == -40


async def test_debit_over_balance_fails_without_mutation(db_session):
    await ledger_service.credit(db_session, ACCOUNT, 40)

    with pytest.raises(InsufficientFundsError) as exc_info:
        await ledger_service.debit(db_session, ACCOUNT, 41)

    assert exc_info.value.current_balance == 40
    assert exc_info.value.required == 41
    assert await ledger_service.get_balance(db_session, ACCOUNT) == 40
    assert await _sum_of_transactions(db_session, ACCOUNT) == 40


async def test_scenario_credit_bid_then_insufficient(db_session):
    assert await ledger_service.get_balance(db_session, ACCOUNT) == 0

    await ledger_service.credit(db_session, ACCOUNT, 100)
    result = await ledger_service.place_bid(db_session, ACCOUNT, "song_1", 25, event_id="evt_1")
    assert result.ledger.new_balance == 75
    assert result.bid.status == "active"
    assert result.bid.bid_amount == 25

    with pytest.raises(InsufficientFundsError) as exc_info:
        await ledger_service.place_bid(db_session, ACCOUNT, "song_2", 76)
    assert (exc_info.value.current_balance, exc_info.value.required) == (75, 76)

    bids = (await db_session.execute(select(SongBid).where(SongBid.account_id == ACCOUNT))).scalars().all()
    assert len(bids) == 1
    assert await ledger_service.get_balance(db_session, ACCOUNT) == 75


async def test_repeated_bid_replaces_bid_record(db_session):
    await ledger_service.credit(db_session, ACCOUNT, 100)
    await ledger_service.place_bid(db_session, ACCOUNT, "song_1", 10)
    result = await ledger_service.place_bid(db_session, ACCOUNT, "song_1", 30, event_id="evt_2")

    bids = (await db_session.execute(select(SongBid).where(SongBid.account_id == ACCOUNT))).scalars().all()
    assert len(bids) == 1
    assert bids[0].bid_amount == 30
    assert bids[0].event_id == "evt_2"
    # Each bid spends its own tokens
    assert result.ledger.new_balance == 60


async def test_purchase_claims_payment_intent_once(db_session):
    first = await ledger_service.purchase(db_session, ACCOUNT, 50, "50", "pi_once")
    second = await ledger_service.purchase(db_session, ACCOUNT, 50, "50", "pi_once")

    assert first.duplicate is False
    assert first.ledger.new_balance == 50
    assert second.duplicate is True
    assert second.ledger.applied_amount == 0
    assert second.ledger.new_balance == 50
    assert await _sum_of_transactions(db_session, ACCOUNT) == 50


async def test_balance_ceiling(db_session):
    await ledger_service.adjust_as_admin(db_session, "admin-1", ACCOUNT, ledger_service.MAX_BALANCE, "seed")

    with pytest.raises(ValidationError):
        await ledger_service.adjust_as_admin(db_session, "admin-1", ACCOUNT, 1, "one more")
    with pytest.raises(ValidationError):
        await ledger_service.credit(db_session, ACCOUNT, 1)
    with pytest.raises(ValidationError):
        await ledger_service.purchase(db_session, ACCOUNT, 50, "50", "pi_over")

    assert await ledger_service.get_balance(db_session, ACCOUNT) == ledger_service.MAX_BALANCE
    assert await db_session.get(TokenPurchase, "pi_over") is None


async def test_reconcile_matches_after_mixed_operations(db_session):
    await ledger_service.credit(db_session, ACCOUNT, 80)
    await ledger_service.debit(db_session, ACCOUNT, 30)
    await ledger_service.adjust_as_admin(db_session, "admin-1", ACCOUNT, -100, "cleanup")

    report = await ledger_service.reconcile(db_session, ACCOUNT)
    assert report == {"account_id": ACCOUNT, "balance": 0, "ledger_sum": 0, "match": True}


# ---------------------------------------------------------------------------
# Admin adjustment compare-and-swap
# ---------------------------------------------------------------------------

async def test_admin_adjust_retries_when_balance_moved(db_session, monkeypatch):
    await ledger_service.credit(db_session, ACCOUNT, 40)
    real_get_balance = ledger_service.get_balance
    reads = []

    async def stale_once(db, account_id):
        reads.append(account_id)
        if len(reads) == 1:
            # What the balance was before another writer moved it
            return 25
        return await real_get_balance(db, account_id)

    monkeypatch.setattr(ledger_service, "get_balance", stale_once)

    result = await ledger_service.adjust_as_admin(db_session, "admin-1", ACCOUNT, -10, "retry")

    assert len(reads) == 2
    assert result.new_balance == 30
    assert result.applied_amount == -10
    assert result.transaction.amount == -10
    assert await real_get_balance(db_session, ACCOUNT) == 30


async def test_admin_adjust_gives_up_after_cas_attempts(db_session, monkeypatch):
    await ledger_service.credit(db_session, ACCOUNT, 40)
    reads = []

    async def always_stale(db, account_id):
        reads.append(account_id)
        return 999

    monkeypatch.setattr(ledger_service, "get_balance", always_stale)
    monkeypatch.setattr(settings, "LEDGER_CAS_ATTEMPTS", 3)

    with pytest.raises(ConflictError):
        await ledger_service.adjust_as_admin(db_session, "admin-1", ACCOUNT, 5, "never lands")

    assert len(reads) == 3
    monkeypatch.undo()
    assert await ledger_service.get_balance(db_session, ACCOUNT) == 40
    assert await _sum_of_transactions(db_session, ACCOUNT) == 40


# ---------------------------------------------------------------------------
# Failed transaction-log writes
# ---------------------------------------------------------------------------

async def test_transaction_log_failure_is_reported_not_rolled_back(db_session, monkeypatch):
    async def broken_insert(db, **values):
        raise OperationalError("INSERT INTO token_transactions", {}, Exception("disk I/O error"))

    monkeypatch.setattr(ledger_service, "_insert_transaction", broken_insert)

    result = await ledger_service.credit(db_session, ACCOUNT, 100)
    await db_session.commit()

    assert result.new_balance == 100
    assert result.transaction is None
    assert result.audit_failures == ["ledger.transaction_log_failed"]
    assert not result.audit_recorded

    assert await ledger_service.get_balance(db_session, ACCOUNT) == 100
    report = await ledger_service.reconcile(db_session, ACCOUNT)
    assert report["match"] is False
    assert report["ledger_sum"] == 0


async def test_transaction_log_write_is_retried(db_session, monkeypatch):
    real_insert = ledger_service._insert_transaction
    calls = []

    async def flaky_insert(db, **values):
        calls.append(values)
        if len(calls) == 1:
            raise OperationalError("INSERT INTO token_transactions", {}, Exception("database is locked"))
        return await real_insert(db, **values)

    monkeypatch.setattr(ledger_service, "_insert_transaction", flaky_insert)

    result = await ledger_service.credit(db_session, ACCOUNT, 10)

    assert len(calls) == 2
    assert result.audit_recorded
    assert result.transaction.amount == 10


# ---------------------------------------------------------------------------
# Concurrency (file-backed database, one connection per operation)
# ---------------------------------------------------------------------------

async def _debit_in_own_session(sessionmaker, account_id, amount):
    async with sessionmaker() as session:
        try:
            await ledger_service.debit(session, account_id, amount)
            await session.commit()
            return True
        except InsufficientFundsError:
            await session.rollback()
            return False


async def _credit_in_own_session(sessionmaker, account_id, amount):
    async with sessionmaker() as session:
        await ledger_service.credit(session, account_id, amount)
        await session.commit()


async def test_concurrent_debits_never_overdraw(file_sessionmaker):
    async with file_sessionmaker() as session:
        await ledger_service.credit(session, ACCOUNT, 60)
        await session.commit()

    outcomes = await asyncio.gather(
        *[_debit_in_own_session(file_sessionmaker, ACCOUNT, 2) for _ in range(50)]
    )

    assert outcomes.count(True) == 30
    assert outcomes.count(False) == 20

    async with file_sessionmaker() as session:
        assert await ledger_service.get_balance(session, ACCOUNT) == 0
        assert (await ledger_service.reconcile(session, ACCOUNT))["match"] is True


async def test_balance_equals_transaction_sum_after_concurrent_operations(file_sessionmaker):
    async with file_sessionmaker() as session:
        await ledger_service.credit(session, ACCOUNT, 20)
        await session.commit()

    tasks = []
    for i in range(40):
        if i % 2:
            tasks.append(_debit_in_own_session(file_sessionmaker, ACCOUNT, 7))
        else:
            tasks.append(_credit_in_own_session(file_sessionmaker, ACCOUNT, 5))
    await asyncio.gather(*tasks)

    async with file_sessionmaker() as session:
        report = await ledger_service.reconcile(session, ACCOUNT)
        row = await session.get(TokenBalance, ACCOUNT)

    assert report["match"] is True
    assert report["balance"] >= 0
    assert row.balance == row.total_earned - row.total_spent
