"""
Role service — role assignment and role-specific profiles.

Each account holds at most one role. The user_roles row is claimed with an
insert-if-absent, so two concurrent assignments for the same account
cannot both succeed: the loser sees RoleAlreadyAssignedError carrying the
role that won.

Admins can move an account to another role; the profile follows it to
the new role's table.
"""

from datetime import datetime, timezone

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from djei.database import insert_for
from djei.exceptions import (
    ConflictError,
    RoleAlreadyAssignedError,
    RoleNotFoundError,
    ValidationError,
    validation_details,
)
from djei.log import get_logger
from djei.models.admin_action import AdminAction
from djei.models.role_profile import PROFILE_MODELS, AttendeeProfile, Role, UserRole
from djei.schemas.role import PROFILE_SCHEMAS, ProfileDataBase
from djei.security import Identity

logger = get_logger(__name__)

# Fields a profile needs before it counts as complete
REQUIRED_FIELDS: dict[Role, list[str]] = {
    Role.DJ: ["bio", "location", "stage_name", "genres", "years_experience"],
    Role.VENUE: ["phone", "venue_name", "venue_type", "capacity", "address", "city"],
    Role.ATTENDEE: ["bio", "location", "username", "favorite_genres"],
}

# Profile columns every role shares; they survive a role change
COMMON_PROFILE_FIELDS = ["email", "name", "avatar_url", "bio", "location", "phone"]


def profile_to_dict(profile) -> dict:
    """Column values of a profile row, keyed by column name."""
    return {column.name: getattr(profile, column.key) for column in profile.__table__.columns}


async def _get_user_role(db: AsyncSession, account_id: str) -> str | None:
    result = await db.execute(select(UserRole.role).where(UserRole.account_id == account_id))
    return result.scalar_one_or_none()


async def _ensure_username_free(db: AsyncSession, username: str | None, account_id: str) -> None:
    if not username:
        return
    result = await db.execute(
        select(AttendeeProfile.id).where(
            AttendeeProfile.username == username,
            AttendeeProfile.id != account_id,
        )
    )
    if result.scalar_one_or_none() is not None:
        raise ConflictError("Username already taken")


async def _flush_profile(db: AsyncSession, account_id: str, username: str | None) -> None:
    """
    Flush profile changes.

    _ensure_username_free can race with another account claiming the same
    username. The unique constraint catches that case, and the whole
    transaction (including a fresh role claim) is rolled back.
    """
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        if not username:
            raise
        logger.info("role.username_conflict", account_id=account_id, username=username)
        raise ConflictError("Username already taken")


async def get_role(db: AsyncSession, account_id: str) -> tuple[str, object]:
    """
    Get the account's role and its profile row.

    Raises:
        RoleNotFoundError: If the account has not picked a role yet.
    """
    role = await _get_user_role(db, account_id)
    if role is None:
        raise RoleNotFoundError(account_id)

    profile = await db.get(PROFILE_MODELS[Role(role)], account_id)
    if profile is None:
        raise RoleNotFoundError(account_id)
    return role, profile


async def assign_role(
    db: AsyncSession,
    identity: Identity,
    role: Role,
    profile_data: ProfileDataBase,
) -> tuple[str, object]:
    """
    Give a first-time user a role and create the role's profile.

    Role defaults (empty genre lists, zero ratings, ...) come from the
    profile table; supplied profile fields override them. The name falls
    back to the identity's name, the email always comes from the identity.

    Raises:
        RoleAlreadyAssignedError: If the account already holds a role.
        ConflictError: If an attendee username is taken.
    """
    role = Role(role)
    fields = profile_data.model_dump(exclude_unset=True)

    if role == Role.ATTENDEE:
        await _ensure_username_free(db, fields.get("username"), identity.id)

    roles = UserRole.__table__
    claim = await db.execute(
        insert_for(db, roles)
        .values(account_id=identity.id, role=role.value, created_at=datetime.now(timezone.utc))
        .on_conflict_do_nothing(index_elements=[roles.c.account_id])
    )
    if claim.rowcount == 0:
        current = await _get_user_role(db, identity.id)
        raise RoleAlreadyAssignedError(identity.id, current or "unknown")

    profile = PROFILE_MODELS[role](
        id=identity.id,
        email=identity.email,
        name=fields.pop("name", None) or identity.name,
        avatar_url=fields.pop("avatar_url", None) or identity.avatar_url,
        **fields,
    )
    db.add(profile)
    await _flush_profile(db, profile.id, fields.get("username"))
    await db.refresh(profile)

    logger.info("role.assigned", account_id=identity.id, role=role.value)
    return role.value, profile


async def update_profile(db: AsyncSession, account_id: str, profile_data: dict) -> tuple[str, object]:
    """
    Merge the supplied fields into the account's profile.

    The fields are validated against the current role's profile schema;
    fields belonging to another role are rejected.

    Raises:
        RoleNotFoundError: If the account has no role.
        ValidationError: If a field is unknown or out of range.
        ConflictError: If an attendee username is taken.
    """
    role, profile = await get_role(db, account_id)

    try:
        validated = PROFILE_SCHEMAS[Role(role)].model_validate(profile_data)
    except PydanticValidationError as exc:
        raise ValidationError("Validation failed", details=validation_details(exc.errors()))

    changes = validated.model_dump(exclude_unset=True)
    if "username" in changes:
        await _ensure_username_free(db, changes["username"], account_id)

    for key, value in changes.items():
        setattr(profile, key, value)
    profile.updated_at = datetime.now(timezone.utc)
    await _flush_profile(db, account_id, changes.get("username"))
    await db.refresh(profile)

    logger.info("role.profile_updated", account_id=account_id, role=role, fields=sorted(changes))
    return role, profile


async def delete_role(db: AsyncSession, account_id: str) -> str:
    """
    Remove the account's role and its profile.

    Raises:
        RoleNotFoundError: If the account has no role.
    """
    role = await _get_user_role(db, account_id)
    if role is None:
        raise RoleNotFoundError(account_id)

    model = PROFILE_MODELS[Role(role)]
    await db.execute(delete(model).where(model.id == account_id))
    await db.execute(delete(UserRole).where(UserRole.account_id == account_id))

    logger.info("role.deleted", account_id=account_id, role=role)
    return role


async def change_role_as_admin(
    db: AsyncSession,
    actor_id: str,
    user_id: str,
    new_role: Role,
) -> tuple[str, object]:
    """
    Move an account to another role.

    The profile moves to the new role's table: the common columns (email,
    name, avatar, bio, location, phone) carry over, role-specific fields
    start from the new role's defaults. An admin_actions entry records the
    old and new role. Changing to the role the account already holds
    changes nothing.

    The caller (require_admin) has already verified elevated privilege.

    Raises:
        RoleNotFoundError: If the account has no role to change.
    """
    new_role = Role(new_role)
    old_role, old_profile = await get_role(db, user_id)
    if old_role == new_role.value:
        return old_role, old_profile

    carried = {name: getattr(old_profile, name) for name in COMMON_PROFILE_FIELDS}
    await db.delete(old_profile)
    await db.execute(
        update(UserRole).where(UserRole.account_id == user_id).values(role=new_role.value)
    )

    profile = PROFILE_MODELS[new_role](id=user_id, **carried)
    db.add(profile)
    db.add(
        AdminAction(
            admin_id=actor_id,
            action="role_change",
            target_user_id=user_id,
            details={"old_role": old_role, "new_role": new_role.value},
        )
    )
    await db.flush()
    await db.refresh(profile)

    logger.info(
        "role.changed_by_admin",
        actor_id=actor_id,
        account_id=user_id,
        old_role=old_role,
        new_role=new_role.value,
    )
    return new_role.value, profile


def _is_filled(value) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, list, dict)):
        return len(value) > 0
    return True


async def profile_completion(db: AsyncSession, account_id: str) -> dict:
    """
    How much of the role's required profile is filled in.

    An account without a role is 0% complete with nothing listed.
    """
    role = await _get_user_role(db, account_id)
    if role is None:
        return {"percentage": 0, "completed_fields": [], "missing_fields": [], "is_complete": False}

    profile = await db.get(PROFILE_MODELS[Role(role)], account_id)
    required = REQUIRED_FIELDS[Role(role)]
    completed = [name for name in required if profile is not None and _is_filled(getattr(profile, name))]
    missing = [name for name in required if name not in completed]
    percentage = round(len(completed) / len(required) * 100)

    return {
        "percentage": percentage,
        "completed_fields": completed,
        "missing_fields": missing,
        "is_complete": not missing,
    }
