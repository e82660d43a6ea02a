from fastapi import APIRouter, Depends, Request

from app.portal.core.context import trace_id_of
from app.portal.core.deps import get_permission_resolver, require_active_user
from app.portal.core.scope import EVERY_LOCATION, manageable_locations
from app.portal.db.session import get_db
from app.portal.schemas.access_control import (
    DecisionResponse,
    EffectivePermissionsResponse,
    HierarchyContextResponse,
    PermissionLayerTrace,
    RoleAssignmentCheckRequest,
)
from app.portal.services.authorization import AuthorizationGate
from app.portal.services.hierarchy import HierarchyResolver
from app.portal.services.permissions import PermissionResolver

router = APIRouter()


def _location_list(locations):
    if locations == EVERY_LOCATION:
        return EVERY_LOCATION
    return sorted(locations)


@router.get("/effective-permissions", response_model=EffectivePermissionsResponse)
async def effective_permissions(
    request: Request,
    current_user=Depends(require_active_user),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    # Diagnostic view of current state; bypasses the cache.
    resolved, trace = resolver.resolve_with_trace(current_user.id)
    return EffectivePermissionsResponse(
        user_id=current_user.id,
        permissions=sorted(resolved.permissions),
        data_scope=resolved.data_scope.value,
        location_ids=sorted(resolved.location_ids),
        accessible_locations=_location_list(manageable_locations(resolved.data_scope, resolved.location_ids)),
        sources_trace=PermissionLayerTrace(
            role_grants=sorted(trace.role_grants),
            override_allow=sorted(trace.override_allow),
            override_deny=sorted(trace.override_deny),
        ),
        trace_id=trace_id_of(request),
    )


@router.get("/hierarchy-context", response_model=HierarchyContextResponse)
async def hierarchy_context(
    request: Request,
    current_user=Depends(require_active_user),
    db=Depends(get_db),
):
    context = HierarchyResolver(db).resolve_hierarchy_context(current_user.id)
    if context is None:
        return HierarchyContextResponse(user_id=current_user.id, has_context=False, trace_id=trace_id_of(request))
    return HierarchyContextResponse(
        user_id=current_user.id,
        has_context=True,
        hierarchy_level=context.hierarchy_level,
        data_scope=context.data_scope.value,
        location_ids=sorted(context.location_ids),
        can_manage_user_types=sorted(context.can_manage_user_types),
        can_manage_at_locations=_location_list(context.can_manage_at_locations),
        trace_id=trace_id_of(request),
    )


@router.post("/can-assign-role", response_model=DecisionResponse)
async def can_assign_role(
    request: Request,
    payload: RoleAssignmentCheckRequest,
    current_user=Depends(require_active_user),
    db=Depends(get_db),
):
    decision = AuthorizationGate(db).can_assign_role(current_user.id, payload.role_id, payload.location_id)
    return DecisionResponse(allowed=decision.allowed, reason=decision.reason, trace_id=trace_id_of(request))
