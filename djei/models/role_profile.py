"""
Role models — which role an account holds, and the role-specific profile.

Each account holds at most one of three roles: attendee, dj or venue.

  UserRole:         one row per account. Its primary key is the account id,
                    so the "at most one role" rule is enforced by the
                    database: a second assignment cannot insert a row.
  AttendeeProfile,
  DJProfile,
  VenueProfile:     one table per role, keyed by the same account id. Each
                    carries the common profile columns plus its own fields,
                    with the role's defaults applied at insert time.

The column defaults here are the role defaults handed to new profiles
(e.g. a DJ starts unverified with zero ratings and no genres).
"""

import enum
from datetime import date, datetime, timezone

from sqlalchemy import String, Text, Integer, Float, Boolean, Date, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from djei.database import Base


class Role(str, enum.Enum):
    ATTENDEE = "attendee"
    DJ = "dj"
    VENUE = "venue"


class UserRole(Base):
    __tablename__ = "user_roles"

    account_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )

    role: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


class ProfileColumnsMixin:
    """Columns shared by every role profile table."""

    # Same value as UserRole.account_id (the identity-provider user id)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)

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


class AttendeeProfile(ProfileColumnsMixin, Base):
    __tablename__ = "attendee"

    username: Mapped[str | None] = mapped_column(String(50), unique=True, nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    favorite_genres: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    preferred_venues: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    followed_djs: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    notification_preferences: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=lambda: {"email": True, "push": True, "sms": False},
    )
    privacy_settings: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=lambda: {"profile_visibility": "public", "location_sharing": "friends"},
    )


class DJProfile(ProfileColumnsMixin, Base):
    __tablename__ = "dj"

    stage_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    genres: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    years_experience: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    hourly_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    equipment_list: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    spotify_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    soundcloud_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    instagram_handle: Mapped[str | None] = mapped_column(String(100), nullable=True)
    website_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    availability_schedule: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    performance_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    ratings_average: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    ratings_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verification_documents: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class VenueProfile(ProfileColumnsMixin, Base):
    __tablename__ = "venue"

    venue_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    venue_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    website_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    music_genres: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    amenities: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    equipment_available: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    operating_hours: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    booking_info: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    social_media: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ratings_average: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    ratings_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


PROFILE_MODELS = {
    Role.ATTENDEE: AttendeeProfile,
    Role.DJ: DJProfile,
    Role.VENUE: VenueProfile,
}
