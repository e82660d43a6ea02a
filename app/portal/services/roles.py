from __future__ import annotations

from app.portal.core.error_catalog import AppError, ErrorCatalog
from app.portal.core.scope import normalize_scope
from app.portal.db.models import RolePermission
from app.portal.repos.roles import RoleRepository
from app.portal.services.authorization import AuthorizationGate
from app.portal.services.permission_cache import PermissionCache, invalidate_permission_cache

EDITABLE_ROLE_FIELDS = ("name", "description", "data_scope", "is_default", "is_active", "display_order")


def role_snapshot(role) -> dict:
    return {
        "name": role.name,
        "description": role.description,
        "data_scope": role.data_scope,
        "is_default": role.is_default,
        "is_active": role.is_active,
        "display_order": role.display_order,
    }


class RoleAdminService:
    """Role template mutations.

    Every mutation passes the protected-role guard first. A template change can
    affect every holder of the role, so the whole permission cache is cleared
    afterwards.
    """

    def __init__(self, db, cache: PermissionCache | None = None, gate: AuthorizationGate | None = None):
        self.db = db
        self.repo = RoleRepository(db)
        self.cache = cache
        self.gate = gate or AuthorizationGate(db)

    def get_role(self, role_id: str):
        role = self.repo.get(role_id)
        if role is None:
            raise AppError(ErrorCatalog.ROLE_NOT_FOUND, details={"role_id": role_id})
        return role

    def list_role_permissions(self, role_id: str) -> list[RolePermission]:
        self.get_role(role_id)
        return self.repo.list_role_permissions(role_id)

    def update_role(self, role_id: str, changes: dict) -> tuple[dict, object]:
        role = self.get_role(role_id)
        self.gate.ensure_role_mutable(role)
        before = role_snapshot(role)
        for field_name in EDITABLE_ROLE_FIELDS:
            if field_name not in changes or changes[field_name] is None:
                continue
            value = changes[field_name]
            if field_name == "data_scope":
                value = normalize_scope(value).value
            setattr(role, field_name, value)
        self.db.commit()
        self._invalidate()
        return before, role

    def delete_role(self, role_id: str) -> dict:
        role = self.get_role(role_id)
        self.gate.ensure_role_mutable(role)
        active_assignments = self.repo.count_active_assignments(role_id)
        if active_assignments > 0:
            raise AppError(ErrorCatalog.ROLE_IN_USE, details={"active_assignments": active_assignments})
        before = role_snapshot(role)
        self.repo.delete(role)
        self.db.commit()
        self._invalidate()
        return before

    def replace_role_permissions(self, role_id: str, permission_ids: list[str]) -> tuple[list[str], list[str]]:
        role = self.get_role(role_id)
        self.gate.ensure_role_mutable(role)
        self._validate_permission_ids(permission_ids)
        before = sorted(rp.permission_id for rp in self.repo.list_role_permissions(role_id) if rp.granted)
        self.repo.replace_role_permissions(role_id, permission_ids)
        self.db.commit()
        self._invalidate()
        return before, sorted(set(permission_ids))

    def set_role_permission(self, role_id: str, permission_id: str, granted: bool = True) -> tuple[RolePermission, bool]:
        role = self.get_role(role_id)
        self.gate.ensure_role_mutable(role)
        self._validate_permission_ids([permission_id])
        existing = self.repo.get_role_permission(role_id, permission_id)
        created = existing is None
        if existing is None:
            existing = RolePermission(role_id=role_id, permission_id=permission_id, granted=granted)
            self.db.add(existing)
        else:
            existing.granted = granted
        self.db.commit()
        self._invalidate()
        return existing, created

    def _validate_permission_ids(self, permission_ids: list[str]) -> None:
        known = self.repo.existing_permission_ids(permission_ids)
        invalid = sorted(set(permission_ids) - known)
        if invalid:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "Unknown permission id", "invalid": invalid},
            )

    def _invalidate(self) -> None:
        invalidate_permission_cache(None, cache=self.cache)
