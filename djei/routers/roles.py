"""
Role router — the caller's role and role profile.

Endpoints:
  GET    /role             — Current role and profile (404 isNewUser for first-time users)
  POST   /role             — Pick a role (once)
  PUT    /role             — Update the role profile
  DELETE /role             — Remove role and profile
  GET    /role/completion  — Profile completion for the current role

Admin endpoints:
  PUT    /role/admin/change-role  — Move a user to another role
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from djei.database import get_db
from djei.dependencies import get_current_identity, require_admin
from djei.schemas.role import (
    AdminRoleChangeRequest,
    ProfileCompletionResponse,
    ProfileUpdateRequest,
    RoleAssignRequest,
    RoleData,
    RoleDeleteResponse,
    RoleResponse,
)
from djei.security import Identity
from djei.services import role_service

router = APIRouter()


@router.get(
    "",
    response_model=RoleResponse,
    summary="Get the caller's role",
)
async def get_role(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    role, profile = await role_service.get_role(db, identity.id)
    return RoleResponse(data=RoleData(role=role, profile=role_service.profile_to_dict(profile)))


@router.post(
    "",
    response_model=RoleResponse,
    status_code=201,
    summary="Assign a role to a first-time user",
)
async def assign_role(
    request: RoleAssignRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """
    Pick attendee, dj or venue, optionally with initial profile data.

    Role defaults fill in whatever profileData leaves out. A user who
    already has a role gets 409 with `currentRole`.
    """
    body = request.root
    role, profile = await role_service.assign_role(db, identity, body.role, body.profile_data)
    return RoleResponse(
        data=RoleData(
            role=role,
            profile=role_service.profile_to_dict(profile),
            message=f"Successfully set role as {role}",
        )
    )


@router.put(
    "",
    response_model=RoleResponse,
    summary="Update the caller's role profile",
)
async def update_profile(
    request: ProfileUpdateRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    role, profile = await role_service.update_profile(db, identity.id, request.profile_data)
    return RoleResponse(
        data=RoleData(
            role=role,
            profile=role_service.profile_to_dict(profile),
            message="Profile updated successfully",
        )
    )


@router.delete(
    "",
    response_model=RoleDeleteResponse,
    summary="Delete the caller's role and profile",
)
async def delete_role(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    await role_service.delete_role(db, identity.id)
    return RoleDeleteResponse()


@router.get(
    "/completion",
    response_model=ProfileCompletionResponse,
    summary="Get profile completion for the caller's role",
)
async def profile_completion(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await role_service.profile_completion(db, identity.id)


# ---------------------------------------------------------------------------
# Admin endpoints
# ---------------------------------------------------------------------------

@router.put(
    "/admin/change-role",
    response_model=RoleResponse,
    summary="[Admin] Move a user to another role",
)
async def admin_change_role(
    request: AdminRoleChangeRequest,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Common profile fields carry over; role-specific fields start from the
    new role's defaults. The change is recorded in admin_actions.
    """
    role, profile = await role_service.change_role_as_admin(
        db, admin.id, request.user_id, request.new_role
    )
    return RoleResponse(
        data=RoleData(
            role=role,
            profile=role_service.profile_to_dict(profile),
            message=f"Role changed to {role}",
        )
    )
