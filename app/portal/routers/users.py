from fastapi import APIRouter, Depends, Request

from app.portal.core.context import trace_id_of
from app.portal.core.deps import require_active_user, require_permission
from app.portal.db.session import get_db
from app.portal.schemas.roles import MessageResponse, RoleItem, UserTypeItem
from app.portal.schemas.users import (
    AllowedAssignmentsResponse,
    AssignRoleRequest,
    AssignRoleResponse,
    CreateUserRequest,
    LocationItem,
    PermissionOverrideItem,
    PermissionOverrideRequest,
    PermissionOverrideResponse,
    ReplaceUserLocationsRequest,
    UserItem,
    UserLocationItem,
    UserLocationsResponse,
    UserResponse,
    UserRoleItem,
    UserRolesResponse,
)
from app.portal.services.audit import AuditEventPayload, AuditService
from app.portal.services.authorization import AuthorizationGate, RoleAssignment
from app.portal.services.users import UserAdminService

router = APIRouter()


def _audit(db, request: Request, actor_id: str, action: str, user_id: str, after: dict) -> None:
    AuditService(db).record_event(
        AuditEventPayload(
            actor_id=actor_id,
            trace_id=trace_id_of(request) or None,
            action=action,
            entity_type="user",
            entity_id=user_id,
            after=after,
        )
    )


@router.get("/users/allowed-assignments", response_model=AllowedAssignmentsResponse)
async def allowed_assignments(
    request: Request,
    current_user=Depends(require_active_user),
    db=Depends(get_db),
):
    allowed = AuthorizationGate(db).allowed_assignments(current_user.id)
    return AllowedAssignmentsResponse(
        user_types=[UserTypeItem.model_validate(item) for item in allowed.user_types],
        roles=[RoleItem.model_validate(item) for item in allowed.roles],
        locations=[LocationItem.model_validate(item) for item in allowed.locations],
        hierarchy_level=allowed.hierarchy_level,
        data_scope=allowed.data_scope.value if allowed.data_scope else None,
        can_manage_all_locations=allowed.can_manage_all_locations,
        trace_id=trace_id_of(request),
    )


@router.post("/users", response_model=UserResponse, status_code=201)
async def create_user(
    request: Request,
    payload: CreateUserRequest,
    current_user=Depends(require_permission("users.create")),
    db=Depends(get_db),
):
    user = UserAdminService(db).create_user(
        current_user.id,
        email=payload.email,
        name=payload.name,
        role_assignments=[
            RoleAssignment(role_id=item.role_id, location_id=item.location_id) for item in payload.role_assignments
        ],
        location_ids=payload.location_ids,
    )
    _audit(db, request, current_user.id, "users.create", user.id, payload.model_dump(mode="json"))
    return UserResponse(user=UserItem.model_validate(user), trace_id=trace_id_of(request))


@router.get("/users/{user_id}/roles", response_model=UserRolesResponse)
async def list_user_roles(
    request: Request,
    user_id: str,
    _current_user=Depends(require_permission("users.view")),
    db=Depends(get_db),
):
    user_roles = UserAdminService(db).list_user_roles(user_id)
    return UserRolesResponse(
        user_id=user_id,
        user_roles=[UserRoleItem.model_validate(item) for item in user_roles],
        trace_id=trace_id_of(request),
    )


@router.post("/users/{user_id}/roles", response_model=AssignRoleResponse)
async def assign_role(
    request: Request,
    user_id: str,
    payload: AssignRoleRequest,
    current_user=Depends(require_permission("users.assign_roles")),
    db=Depends(get_db),
):
    user_role, reactivated = UserAdminService(db).assign_role(
        current_user.id,
        user_id,
        role_id=payload.role_id,
        location_id=payload.location_id,
        expires_at=payload.expires_at,
    )
    _audit(db, request, current_user.id, "users.roles.assign", user_id, payload.model_dump(mode="json"))
    return AssignRoleResponse(
        user_role=UserRoleItem.model_validate(user_role),
        reactivated=reactivated,
        trace_id=trace_id_of(request),
    )


@router.delete("/users/{user_id}/roles/{user_role_id}", response_model=MessageResponse)
async def revoke_role(
    request: Request,
    user_id: str,
    user_role_id: str,
    current_user=Depends(require_permission("users.assign_roles")),
    db=Depends(get_db),
):
    UserAdminService(db).revoke_role(current_user.id, user_id, user_role_id)
    _audit(db, request, current_user.id, "users.roles.revoke", user_id, {"user_role_id": user_role_id})
    return MessageResponse(message="Role assignment removed", trace_id=trace_id_of(request))


@router.put("/users/{user_id}/locations", response_model=UserLocationsResponse)
async def replace_user_locations(
    request: Request,
    user_id: str,
    payload: ReplaceUserLocationsRequest,
    current_user=Depends(require_permission("users.edit")),
    db=Depends(get_db),
):
    locations = UserAdminService(db).replace_user_locations(current_user.id, user_id, payload.location_ids)
    _audit(db, request, current_user.id, "users.locations.replace", user_id, {"location_ids": payload.location_ids})
    return UserLocationsResponse(
        user_id=user_id,
        locations=[UserLocationItem.model_validate(item) for item in locations],
        trace_id=trace_id_of(request),
    )


@router.put("/users/{user_id}/permission-overrides/{permission_id}", response_model=PermissionOverrideResponse)
async def set_permission_override(
    request: Request,
    user_id: str,
    permission_id: str,
    payload: PermissionOverrideRequest,
    current_user=Depends(require_permission("users.edit")),
    db=Depends(get_db),
):
    override = UserAdminService(db).set_permission_override(
        current_user.id,
        user_id,
        permission_id,
        granted=payload.granted,
        expires_at=payload.expires_at,
    )
    _audit(
        db,
        request,
        current_user.id,
        "users.permission_overrides.set",
        user_id,
        {"permission_id": permission_id, **payload.model_dump(mode="json")},
    )
    return PermissionOverrideResponse(
        user_id=user_id,
        override=PermissionOverrideItem.model_validate(override),
        trace_id=trace_id_of(request),
    )


@router.delete("/users/{user_id}/permission-overrides/{permission_id}", response_model=MessageResponse)
async def clear_permission_override(
    request: Request,
    user_id: str,
    permission_id: str,
    current_user=Depends(require_permission("users.edit")),
    db=Depends(get_db),
):
    removed = UserAdminService(db).clear_permission_override(current_user.id, user_id, permission_id)
    if removed:
        _audit(db, request, current_user.id, "users.permission_overrides.clear", user_id, {"permission_id": permission_id})
    message = "Permission override removed" if removed else "No override to remove"
    return MessageResponse(message=message, trace_id=trace_id_of(request))
