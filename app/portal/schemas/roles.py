from pydantic import BaseModel, ConfigDict, Field

from app.portal.schemas.access_control import DataScopeValue


class UserTypeItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    hierarchy_level: int
    is_active: bool


class RoleItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None = None
    user_type_id: str
    data_scope: DataScopeValue
    is_default: bool
    is_active: bool
    is_protected: bool
    display_order: int
    user_type: UserTypeItem | None = None


class RoleResponse(BaseModel):
    role: RoleItem
    trace_id: str


class RoleUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    data_scope: DataScopeValue | None = None
    is_default: bool | None = None
    is_active: bool | None = None
    display_order: int | None = None


class RolePermissionItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    permission_id: str
    granted: bool


class RolePermissionsResponse(BaseModel):
    role_id: str
    permissions: list[RolePermissionItem]
    trace_id: str


class ReplaceRolePermissionsRequest(BaseModel):
    permission_ids: list[str] = Field(..., description="Complete set of permissions the role grants.")


class SetRolePermissionRequest(BaseModel):
    permission_id: str = Field(..., min_length=1)
    granted: bool = True


class SetRolePermissionResponse(BaseModel):
    role_id: str
    permission: RolePermissionItem
    created: bool
    trace_id: str


class MessageResponse(BaseModel):
    message: str
    trace_id: str
