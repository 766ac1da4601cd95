"""
Pydantic schemas for role assignment and role profiles.

Profile data is a tagged union keyed by role. Each variant only accepts
the fields of its own role (unknown fields are rejected), and the same
classes validate partial updates: every field is optional, so an update
carries only what changes.

Profile field names stay snake_case (they mirror the profile tables);
the request envelope itself ({role, profileData}) is camelCase.
"""

from datetime import date
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    Field,
    HttpUrl,
    PlainSerializer,
    RootModel,
    field_validator,
)

from djei.models.role_profile import Role
from djei.schemas.common import CamelModel

# Stored as plain text
UrlStr = Annotated[HttpUrl, PlainSerializer(str, return_type=str)]
PhoneStr = Annotated[str, Field(pattern=r"^[0-9+\-() ]{7,20}$")]
HandleStr = Annotated[str, Field(pattern=r"^[a-zA-Z0-9._]{1,30}$")]
UsernameStr = Annotated[str, Field(pattern=r"^[a-zA-Z0-9._]{3,50}$")]


# ---------------------------------------------------------------------------
# Profile data (per role)
# ---------------------------------------------------------------------------

class ProfileDataBase(BaseModel):
    """Fields every role profile has."""
    model_config = {"extra": "forbid", "str_strip_whitespace": True}

    name: str | None = Field(None, min_length=1, max_length=255)
    avatar_url: UrlStr | None = None
    bio: str | None = Field(None, max_length=1000)
    location: str | None = Field(None, max_length=255)
    phone: PhoneStr | None = None

    @field_validator("name")
    @classmethod
    def name_not_null(cls, value):
        # Only runs when a name was supplied; omitting it is fine
        if value is None:
            raise ValueError("Name cannot be null")
        return value


class AttendeeProfileData(ProfileDataBase):
    username: UsernameStr | None = None
    date_of_birth: date | None = None
    favorite_genres: list[str] = Field(default_factory=list)
    preferred_venues: list[str] = Field(default_factory=list)
    followed_djs: list[str] = Field(default_factory=list)
    notification_preferences: dict[str, bool] = Field(default_factory=dict)
    privacy_settings: dict[str, str] = Field(default_factory=dict)


class DJProfileData(ProfileDataBase):
    stage_name: str | None = Field(None, min_length=1, max_length=100)
    genres: list[str] = Field(default_factory=list)
    years_experience: int = Field(0, ge=0, le=100)
    hourly_rate: float | None = Field(None, ge=0)
    equipment_list: list[str] = Field(default_factory=list)
    spotify_id: str | None = None
    soundcloud_url: UrlStr | None = None
    instagram_handle: HandleStr | None = None
    website_url: UrlStr | None = None
    availability_schedule: dict[str, Any] = Field(default_factory=dict)


class VenueProfileData(ProfileDataBase):
    venue_name: str | None = Field(None, min_length=1, max_length=255)
    address: str | None = Field(None, min_length=1, max_length=500)
    city: str | None = Field(None, min_length=1, max_length=100)
    capacity: int | None = Field(None, ge=1, le=100000)
    venue_type: Literal["club", "bar", "restaurant", "concert_hall", "outdoor", "private"] | None = None
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    website_url: UrlStr | None = None
    music_genres: list[str] = Field(default_factory=list)
    amenities: list[str] = Field(default_factory=list)
    equipment_available: list[str] = Field(default_factory=list)
    operating_hours: dict[str, Any] = Field(default_factory=dict)
    booking_info: dict[str, Any] = Field(default_factory=dict)
    social_media: dict[str, str] = Field(default_factory=dict)
    images: list[str] = Field(default_factory=list)


PROFILE_SCHEMAS: dict[Role, type[ProfileDataBase]] = {
    Role.ATTENDEE: AttendeeProfileData,
    Role.DJ: DJProfileData,
    Role.VENUE: VenueProfileData,
}


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class _RoleRequestBase(CamelModel):
    model_config = {"extra": "forbid"}


class AttendeeRoleRequest(_RoleRequestBase):
    role: Literal["attendee"]
    profile_data: AttendeeProfileData = Field(default_factory=AttendeeProfileData)


class DJRoleRequest(_RoleRequestBase):
    role: Literal["dj"]
    profile_data: DJProfileData = Field(default_factory=DJProfileData)


class VenueRoleRequest(_RoleRequestBase):
    role: Literal["venue"]
    profile_data: VenueProfileData = Field(default_factory=VenueProfileData)


class RoleAssignRequest(RootModel):
    """Request body for POST /role: {role, profileData?}, tagged by role."""
    root: Annotated[
        Union[AttendeeRoleRequest, DJRoleRequest, VenueRoleRequest],
        Field(discriminator="role"),
    ]


class ProfileUpdateRequest(_RoleRequestBase):
    """
    Request body for PUT /role.

    profileData is checked against the caller's current role by the
    service, since the role isn't part of the request.
    """
    profile_data: dict[str, Any]


class AdminRoleChangeRequest(CamelModel):
    """Request body for PUT /role/admin/change-role."""
    user_id: str = Field(min_length=1, max_length=64)
    new_role: Literal["attendee", "dj", "venue"]


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class RoleData(CamelModel):
    role: str
    profile: dict[str, Any]
    is_new_user: bool = False
    message: str | None = None


class RoleResponse(CamelModel):
    success: bool = True
    data: RoleData


class RoleDeleteResponse(CamelModel):
    success: bool = True
    message: str = "Role deleted successfully"


class ProfileCompletionResponse(CamelModel):
    percentage: int
    completed_fields: list[str]
    missing_fields: list[str]
    is_complete: bool
