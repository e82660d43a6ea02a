from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import contains_eager, joinedload

from app.portal.db.models import Role, RolePermission, User, UserLocation, UserPermission, UserRole, UserType


class PermissionStore:
    """Read-only queries over grant data consumed by the resolvers."""

    def __init__(self, db):
        self.db = db

    def user_exists(self, user_id: str) -> bool:
        return self.db.get(User, user_id) is not None

    def list_active_user_roles(self, user_id: str, *, now: datetime):
        stmt = (
            select(UserRole)
            .join(UserRole.role)
            .join(Role.user_type)
            .options(contains_eager(UserRole.role).contains_eager(Role.user_type))
            .where(
                UserRole.user_id == user_id,
                UserRole.is_active.is_(True),
                Role.is_active.is_(True),
                UserType.is_active.is_(True),
                or_(UserRole.expires_at.is_(None), UserRole.expires_at > now),
            )
            .order_by(UserRole.created_at)
        )
        return self.db.execute(stmt).scalars().all()

    def list_granted_role_permissions(self, role_ids) -> list[str]:
        role_ids = list(role_ids)
        if not role_ids:
            return []
        stmt = select(RolePermission.permission_id).where(
            RolePermission.role_id.in_(role_ids),
            RolePermission.granted.is_(True),
        )
        return [row[0] for row in self.db.execute(stmt).all()]

    def list_user_permission_overrides(self, user_id: str, *, now: datetime):
        stmt = (
            select(UserPermission)
            .where(
                UserPermission.user_id == user_id,
                UserPermission.is_active.is_(True),
                or_(UserPermission.expires_at.is_(None), UserPermission.expires_at > now),
            )
            .order_by(UserPermission.permission_id)
        )
        return self.db.execute(stmt).scalars().all()

    def list_active_user_location_ids(self, user_id: str) -> list[str]:
        stmt = select(UserLocation.location_id).where(
            UserLocation.user_id == user_id,
            UserLocation.is_active.is_(True),
        )
        return [row[0] for row in self.db.execute(stmt).all()]

    def list_active_user_types(self):
        stmt = select(UserType).where(UserType.is_active.is_(True)).order_by(UserType.hierarchy_level)
        return self.db.execute(stmt).scalars().all()

    def get_role(self, role_id: str):
        stmt = select(Role).options(joinedload(Role.user_type)).where(Role.id == role_id)
        return self.db.execute(stmt).scalars().first()
