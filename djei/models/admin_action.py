"""
AdminAction model — audit trail of privileged operations.

A token adjustment records who did it, to whom, and the balance before and
after, independently of the admin_adjustment transaction row. A role change
records the old and new role.
"""

from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from djei.database import Base


class AdminAction(Base):
    __tablename__ = "admin_actions"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    admin_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    # "token_adjustment" or "role_change"
    action: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    target_user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    details: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
