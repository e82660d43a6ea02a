from sqlalchemy import delete, func, select
from sqlalchemy.orm import joinedload

from app.portal.db.models import Permission, Role, RolePermission, UserRole, UserType


class RoleRepository:
    def __init__(self, db):
        self.db = db

    def get(self, role_id: str):
        stmt = select(Role).options(joinedload(Role.user_type)).where(Role.id == role_id)
        return self.db.execute(stmt).scalars().first()

    def list_active_for_user_types(self, user_type_ids):
        user_type_ids = list(user_type_ids)
        if not user_type_ids:
            return []
        stmt = (
            select(Role)
            .join(UserType, Role.user_type_id == UserType.id)
            .options(joinedload(Role.user_type))
            .where(Role.user_type_id.in_(user_type_ids), Role.is_active.is_(True))
            .order_by(UserType.hierarchy_level, Role.display_order, Role.name)
        )
        return self.db.execute(stmt).scalars().all()

    def list_active_user_types(self, user_type_ids):
        user_type_ids = list(user_type_ids)
        if not user_type_ids:
            return []
        stmt = (
            select(UserType)
            .where(UserType.id.in_(user_type_ids), UserType.is_active.is_(True))
            .order_by(UserType.hierarchy_level)
        )
        return self.db.execute(stmt).scalars().all()

    def count_active_assignments(self, role_id: str) -> int:
        stmt = select(func.count()).select_from(UserRole).where(
            UserRole.role_id == role_id,
            UserRole.is_active.is_(True),
        )
        return self.db.execute(stmt).scalar_one()

    def delete(self, role: Role) -> None:
        self.db.delete(role)

    def list_role_permissions(self, role_id: str):
        stmt = (
            select(RolePermission)
            .options(joinedload(RolePermission.permission))
            .where(RolePermission.role_id == role_id)
            .order_by(RolePermission.permission_id)
        )
        return self.db.execute(stmt).scalars().all()

    def get_role_permission(self, role_id: str, permission_id: str):
        stmt = select(RolePermission).where(
            RolePermission.role_id == role_id,
            RolePermission.permission_id == permission_id,
        )
        return self.db.execute(stmt).scalars().first()

    def replace_role_permissions(self, role_id: str, permission_ids: list[str]) -> None:
        self.db.execute(delete(RolePermission).where(RolePermission.role_id == role_id))
        for permission_id in sorted(set(permission_ids)):
            self.db.add(RolePermission(role_id=role_id, permission_id=permission_id, granted=True))

    def existing_permission_ids(self, permission_ids) -> set[str]:
        permission_ids = list(permission_ids)
        if not permission_ids:
            return set()
        stmt = select(Permission.id).where(Permission.id.in_(permission_ids))
        return {row[0] for row in self.db.execute(stmt).all()}
