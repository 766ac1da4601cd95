"""
SongBid model — an account's current bid on a song.

A bid is created alongside a `bid` debit. There is one row per
(account_id, song_id): bidding again on the same song replaces the
amount, event and status of the existing row instead of stacking a second
bid.

Status transitions beyond "active" (settled, cancelled) belong to the
event settlement process, not to the ledger.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from djei.database import Base


class BidStatus(str, enum.Enum):
    ACTIVE = "active"
    SETTLED = "settled"
    CANCELLED = "cancelled"


class SongBid(Base):
    __tablename__ = "song_bids"

    __table_args__ = (
        UniqueConstraint("account_id", "song_id", name="uq_song_bids_account_song"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    account_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    song_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    event_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    bid_amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=BidStatus.ACTIVE.value,
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
