"""
SQLAlchemy ORM models package.

All models are imported here so that Base.metadata knows every table
before create_all() runs, and so other modules can import from
djei.models directly.
"""

from djei.models.token_balance import TokenBalance  # noqa: F401
from djei.models.token_transaction import TokenTransaction, TransactionKind  # noqa: F401
from djei.models.song_bid import SongBid, BidStatus  # noqa: F401
from djei.models.token_purchase import TokenPurchase  # noqa: F401
from djei.models.admin_action import AdminAction  # noqa: F401
from djei.models.role_profile import (  # noqa: F401
    Role,
    UserRole,
    AttendeeProfile,
    DJProfile,
    VenueProfile,
    PROFILE_MODELS,
)
