"""
TokenPurchase model — one row per payment intent that has been credited.

The payment intent id is the primary key, so a second purchase request
carrying the same intent cannot claim it again: the ledger inserts the
claim with ON CONFLICT DO NOTHING and only credits tokens when the insert
actually created the row.
"""

from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from djei.database import Base


class TokenPurchase(Base):
    __tablename__ = "token_purchases"

    payment_intent_id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )

    account_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    package_type: Mapped[str] = mapped_column(
        String(8),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
