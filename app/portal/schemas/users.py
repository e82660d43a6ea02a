from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.portal.schemas.access_control import DataScopeValue
from app.portal.schemas.roles import RoleItem, UserTypeItem


class RoleAssignmentRequest(BaseModel):
    role_id: str = Field(..., min_length=1)
    location_id: str | None = None


class CreateUserRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    name: str = Field(..., min_length=1, max_length=255)
    role_assignments: list[RoleAssignmentRequest] = Field(default_factory=list)
    location_ids: list[str] | None = Field(default=None, description="Direct location memberships.")


class UserItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    is_active: bool
    created_at: datetime


class UserResponse(BaseModel):
    user: UserItem
    trace_id: str


class LocationItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    is_active: bool


class UserRoleItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    role_id: str
    location_id: str | None = None
    is_active: bool
    expires_at: datetime | None = None
    assigned_by_id: str | None = None
    created_at: datetime


class UserRolesResponse(BaseModel):
    user_id: str
    user_roles: list[UserRoleItem]
    trace_id: str


class AssignRoleRequest(BaseModel):
    role_id: str = Field(..., min_length=1)
    location_id: str | None = None
    expires_at: datetime | None = None


class AssignRoleResponse(BaseModel):
    user_role: UserRoleItem
    reactivated: bool
    trace_id: str


class UserLocationItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    location_id: str
    is_active: bool
    is_primary: bool


class ReplaceUserLocationsRequest(BaseModel):
    location_ids: list[str]


class UserLocationsResponse(BaseModel):
    user_id: str
    locations: list[UserLocationItem]
    trace_id: str


class PermissionOverrideRequest(BaseModel):
    granted: bool
    expires_at: datetime | None = None


class PermissionOverrideItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    permission_id: str
    granted: bool
    expires_at: datetime | None = None


class PermissionOverrideResponse(BaseModel):
    user_id: str
    override: PermissionOverrideItem
    trace_id: str


class AllowedAssignmentsResponse(BaseModel):
    user_types: list[UserTypeItem]
    roles: list[RoleItem]
    locations: list[LocationItem]
    hierarchy_level: int | None
    data_scope: DataScopeValue | None
    can_manage_all_locations: bool
    trace_id: str
