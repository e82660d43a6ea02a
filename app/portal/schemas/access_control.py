from typing import Literal

from pydantic import BaseModel, Field

DataScopeValue = Literal["SELF", "LOCATION", "ALL_LOCATIONS", "GLOBAL"]


class PermissionLayerTrace(BaseModel):
    role_grants: list[str] = Field(default_factory=list, description="Permissions granted by active roles.")
    override_allow: list[str] = Field(default_factory=list, description="Per-user overrides adding a permission.")
    override_deny: list[str] = Field(default_factory=list, description="Per-user overrides removing a permission.")


class EffectivePermissionsResponse(BaseModel):
    user_id: str
    permissions: list[str] = Field(..., description="Final permission ids after overrides.")
    data_scope: DataScopeValue = Field(..., description="Broadest data scope among active roles.")
    location_ids: list[str] = Field(default_factory=list, description="Active location memberships.")
    accessible_locations: list[str] | Literal["ALL"] = Field(
        ...,
        description="`ALL` for ALL_LOCATIONS/GLOBAL scopes, otherwise the membership list.",
    )
    sources_trace: PermissionLayerTrace
    trace_id: str


class HierarchyContextResponse(BaseModel):
    user_id: str
    has_context: bool = Field(..., description="False when the caller has no active role assignment.")
    hierarchy_level: int | None = None
    data_scope: DataScopeValue | None = None
    location_ids: list[str] = Field(default_factory=list)
    can_manage_user_types: list[str] = Field(default_factory=list)
    can_manage_at_locations: list[str] | Literal["ALL"] = Field(default_factory=list)
    trace_id: str


class RoleAssignmentCheckRequest(BaseModel):
    role_id: str = Field(..., min_length=1)
    location_id: str | None = None


class DecisionResponse(BaseModel):
    allowed: bool
    reason: str | None = None
    trace_id: str
