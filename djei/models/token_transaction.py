"""
TokenTransaction model — the append-only log of balance changes.

Every ledger mutation that changes a balance appends one row here:

  - purchase          +amount  (tokens bought through the payment provider)
  - bid               -amount  (tokens spent bidding on a song)
  - refund / bonus / reward    (reserved for settlement and promotions)
  - admin_adjustment  ±amount  (the amount actually applied, after clamping)

`amount` is signed, so the sum of all rows for an account equals that
account's balance.

Rows are never updated or deleted. `id` is an autoincrementing integer so
that rows created within the same timestamp still have a stable order.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from djei.database import Base


class TransactionKind(str, enum.Enum):
    PURCHASE = "purchase"
    BID = "bid"
    REFUND = "refund"
    BONUS = "bonus"
    REWARD = "reward"
    ADMIN_ADJUSTMENT = "admin_adjustment"


class TokenTransaction(Base):
    __tablename__ = "token_transactions"

    __table_args__ = (
        # Serves the history query: WHERE account_id = ? ORDER BY created_at DESC, id DESC
        Index("ix_token_transactions_account_created", "account_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    account_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    # Signed: positive = credit, negative = debit
    amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    kind: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        index=True,
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    # The song, event or payment intent this row relates to
    reference_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # "metadata" is reserved on declarative classes, hence the trailing underscore
    metadata_: Mapped[dict] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
