from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from app.portal.core.error_catalog import AppError, ErrorCatalog
from app.portal.db.models import User, UserPermission, UserRole
from app.portal.repos.locations import LocationRepository
from app.portal.repos.roles import RoleRepository
from app.portal.repos.users import UserRepository
from app.portal.services.authorization import AuthorizationGate, Decision, RoleAssignment
from app.portal.services.permission_cache import PermissionCache, invalidate_permission_cache


def _as_utc_naive(value: datetime | None) -> datetime | None:
    # Expiry columns hold naive UTC.
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class UserAdminService:
    """User, role-assignment, location and override mutations.

    Each operation is approved by the authorization gate before any write and
    drops the affected user's cached permissions afterwards.
    """

    def __init__(self, db, cache: PermissionCache | None = None, gate: AuthorizationGate | None = None):
        self.db = db
        self.repo = UserRepository(db)
        self.cache = cache
        self.gate = gate or AuthorizationGate(db)

    def get_user(self, user_id: str) -> User:
        user = self.repo.get_by_id(user_id)
        if user is None:
            raise AppError(ErrorCatalog.USER_NOT_FOUND, details={"user_id": user_id})
        return user

    def create_user(
        self,
        actor_id: str,
        *,
        email: str,
        name: str,
        role_assignments: list[RoleAssignment],
        location_ids: list[str] | None = None,
    ) -> User:
        result = self.gate.validate_user_creation(actor_id, role_assignments, location_ids)
        if not result.valid:
            raise AppError(ErrorCatalog.PERMISSION_DENIED, details={"errors": result.errors})

        normalized_email = email.strip().lower()
        if self.repo.get_by_email(normalized_email) is not None:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "Email already in use", "email": normalized_email},
            )
        referenced_locations = set(location_ids or ()) | {
            assignment.location_id for assignment in role_assignments if assignment.location_id
        }
        self._validate_location_ids(referenced_locations)

        user = self.repo.add(User(email=normalized_email, name=name.strip(), is_active=True))
        for assignment in role_assignments:
            self.db.add(
                UserRole(
                    user_id=user.id,
                    role_id=assignment.role_id,
                    location_id=assignment.location_id,
                    assigned_by_id=actor_id,
                )
            )
        self.repo.replace_user_locations(user.id, list(location_ids or ()))
        self.db.commit()
        return user

    def list_user_roles(self, user_id: str) -> list[UserRole]:
        self.get_user(user_id)
        return self.repo.list_user_roles(user_id)

    def assign_role(
        self,
        actor_id: str,
        user_id: str,
        *,
        role_id: str,
        location_id: str | None = None,
        expires_at: datetime | None = None,
    ) -> tuple[UserRole, bool]:
        self.get_user(user_id)
        self._require(self.gate.can_manage_user(actor_id, user_id))
        self._require(self.gate.can_assign_role(actor_id, role_id, location_id))
        if location_id:
            self._validate_location_ids({location_id})

        existing = self.repo.find_user_role(user_id, role_id, location_id)
        if existing is not None:
            existing.is_active = True
            existing.expires_at = _as_utc_naive(expires_at)
            existing.assigned_by_id = actor_id
            self.db.commit()
            self._invalidate(user_id)
            return existing, True

        user_role = UserRole(
            user_id=user_id,
            role_id=role_id,
            location_id=location_id,
            expires_at=_as_utc_naive(expires_at),
            assigned_by_id=actor_id,
        )
        self.db.add(user_role)
        self.db.commit()
        self._invalidate(user_id)
        return user_role, False

    def revoke_role(self, actor_id: str, user_id: str, user_role_id: str) -> UserRole:
        self.get_user(user_id)
        user_role = self.repo.get_user_role(user_id, user_role_id)
        if user_role is None:
            raise AppError(ErrorCatalog.ASSIGNMENT_NOT_FOUND, details={"user_role_id": user_role_id})
        self._require(self.gate.can_manage_user(actor_id, user_id))
        self._require(self.gate.can_assign_role(actor_id, user_role.role_id, user_role.location_id))
        # Assignments are kept for history and only deactivated.
        user_role.is_active = False
        self.db.commit()
        self._invalidate(user_id)
        return user_role

    def replace_user_locations(self, actor_id: str, user_id: str, location_ids: list[str]):
        self.get_user(user_id)
        self._require(self.gate.can_manage_user(actor_id, user_id))
        self._require(self.gate.can_assign_locations(actor_id, location_ids))
        self._validate_location_ids(set(location_ids))
        self.repo.replace_user_locations(user_id, location_ids)
        self.db.commit()
        self._invalidate(user_id)
        return self.repo.list_user_locations(user_id)

    def set_permission_override(
        self,
        actor_id: str,
        user_id: str,
        permission_id: str,
        *,
        granted: bool,
        expires_at: datetime | None = None,
    ) -> UserPermission:
        self.get_user(user_id)
        self._require(self.gate.can_manage_user(actor_id, user_id))
        if not RoleRepository(self.db).existing_permission_ids([permission_id]):
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "Unknown permission id", "invalid": [permission_id]},
            )
        override = self.repo.get_permission_override(user_id, permission_id)
        if override is None:
            override = UserPermission(user_id=user_id, permission_id=permission_id)
            self.db.add(override)
        override.granted = granted
        override.is_active = True
        override.expires_at = _as_utc_naive(expires_at)
        self.db.commit()
        self._invalidate(user_id)
        return override

    def clear_permission_override(self, actor_id: str, user_id: str, permission_id: str) -> bool:
        self.get_user(user_id)
        self._require(self.gate.can_manage_user(actor_id, user_id))
        override = self.repo.get_permission_override(user_id, permission_id)
        if override is None or not override.is_active:
            return False
        # Overrides are kept for history and only deactivated.
        override.is_active = False
        self.db.commit()
        self._invalidate(user_id)
        return True

    def _validate_location_ids(self, location_ids: Iterable[str]) -> None:
        location_ids = set(location_ids)
        unknown = sorted(location_ids - LocationRepository(self.db).existing_ids(location_ids))
        if unknown:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "Unknown location id", "invalid": unknown},
            )

    @staticmethod
    def _require(decision: Decision) -> None:
        if not decision.allowed:
            raise AppError(ErrorCatalog.PERMISSION_DENIED, details={"reason": decision.reason})

    def _invalidate(self, user_id: str) -> None:
        invalidate_permission_cache(user_id, cache=self.cache)
