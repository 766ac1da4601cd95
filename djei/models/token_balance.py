"""
TokenBalance model — the current token balance of one account.

Each account (an identity-provider user id) has at most one row, created
lazily the first time the ledger mutates it. Reads of a missing row are
treated as a zero balance.

Balance management:
  `balance` is only ever changed by the ledger service, and only through
  single atomic UPDATE statements (`balance = balance + :n`, or a
  conditional `balance = balance - :n WHERE balance >= :n`). Admin
  adjustments compute the new value in Python but write it with
  `WHERE balance = :old`, so a concurrent change makes the write miss.

  A CHECK constraint also keeps the balance non-negative at the database
  level.

  total_earned / total_spent are running totals of credits and debits,
  kept for reporting.
"""

from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from djei.database import Base


class TokenBalance(Base):
    __tablename__ = "user_tokens"

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_user_tokens_non_negative_balance"),
    )

    # Identity-provider user id (opaque string)
    account_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )

    balance: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    total_earned: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    total_spent: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
