from fastapi import APIRouter, Depends, Request

from app.portal.core.context import trace_id_of
from app.portal.core.deps import require_active_user, require_permission
from app.portal.db.session import get_db
from app.portal.schemas.roles import (
    MessageResponse,
    ReplaceRolePermissionsRequest,
    RoleItem,
    RolePermissionItem,
    RolePermissionsResponse,
    RoleResponse,
    RoleUpdateRequest,
    SetRolePermissionRequest,
    SetRolePermissionResponse,
)
from app.portal.services.audit import AuditEventPayload, AuditService
from app.portal.services.roles import RoleAdminService, role_snapshot

router = APIRouter()

MANAGE_ROLES = "admin.manage_roles"


@router.get("/roles/{role_id}", response_model=RoleResponse)
async def get_role(
    request: Request,
    role_id: str,
    _current_user=Depends(require_active_user),
    db=Depends(get_db),
):
    role = RoleAdminService(db).get_role(role_id)
    return RoleResponse(role=RoleItem.model_validate(role), trace_id=trace_id_of(request))


@router.put("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    request: Request,
    role_id: str,
    payload: RoleUpdateRequest,
    current_user=Depends(require_permission(MANAGE_ROLES)),
    db=Depends(get_db),
):
    before, role = RoleAdminService(db).update_role(role_id, payload.model_dump(exclude_unset=True))
    AuditService(db).record_event(
        AuditEventPayload(
            actor_id=current_user.id,
            trace_id=trace_id_of(request) or None,
            action="roles.update",
            entity_type="role",
            entity_id=role_id,
            before=before,
            after=role_snapshot(role),
        )
    )
    return RoleResponse(role=RoleItem.model_validate(role), trace_id=trace_id_of(request))


@router.delete("/roles/{role_id}", response_model=MessageResponse)
async def delete_role(
    request: Request,
    role_id: str,
    current_user=Depends(require_permission(MANAGE_ROLES)),
    db=Depends(get_db),
):
    before = RoleAdminService(db).delete_role(role_id)
    AuditService(db).record_event(
        AuditEventPayload(
            actor_id=current_user.id,
            trace_id=trace_id_of(request) or None,
            action="roles.delete",
            entity_type="role",
            entity_id=role_id,
            before=before,
        )
    )
    return MessageResponse(message="Role deleted successfully", trace_id=trace_id_of(request))


@router.get("/roles/{role_id}/permissions", response_model=RolePermissionsResponse)
async def list_role_permissions(
    request: Request,
    role_id: str,
    _current_user=Depends(require_active_user),
    db=Depends(get_db),
):
    entries = RoleAdminService(db).list_role_permissions(role_id)
    return RolePermissionsResponse(
        role_id=role_id,
        permissions=[RolePermissionItem.model_validate(entry) for entry in entries],
        trace_id=trace_id_of(request),
    )


@router.put("/roles/{role_id}/permissions", response_model=RolePermissionsResponse)
async def replace_role_permissions(
    request: Request,
    role_id: str,
    payload: ReplaceRolePermissionsRequest,
    current_user=Depends(require_permission(MANAGE_ROLES)),
    db=Depends(get_db),
):
    service = RoleAdminService(db)
    before, after = service.replace_role_permissions(role_id, payload.permission_ids)
    AuditService(db).record_event(
        AuditEventPayload(
            actor_id=current_user.id,
            trace_id=trace_id_of(request) or None,
            action="roles.permissions.replace",
            entity_type="role",
            entity_id=role_id,
            before={"permissions": before},
            after={"permissions": after},
        )
    )
    return RolePermissionsResponse(
        role_id=role_id,
        permissions=[RolePermissionItem.model_validate(entry) for entry in service.list_role_permissions(role_id)],
        trace_id=trace_id_of(request),
    )


@router.post("/roles/{role_id}/permissions", response_model=SetRolePermissionResponse)
async def set_role_permission(
    request: Request,
    role_id: str,
    payload: SetRolePermissionRequest,
    current_user=Depends(require_permission(MANAGE_ROLES)),
    db=Depends(get_db),
):
    entry, created = RoleAdminService(db).set_role_permission(role_id, payload.permission_id, payload.granted)
    AuditService(db).record_event(
        AuditEventPayload(
            actor_id=current_user.id,
            trace_id=trace_id_of(request) or None,
            action="roles.permissions.set",
            entity_type="role",
            entity_id=role_id,
            after={"permission_id": payload.permission_id, "granted": payload.granted},
            metadata={"created": created},
        )
    )
    return SetRolePermissionResponse(
        role_id=role_id,
        permission=RolePermissionItem(permission_id=payload.permission_id, granted=entry.granted),
        created=created,
        trace_id=trace_id_of(request),
    )
