from sqlalchemy import delete, select
from sqlalchemy.orm import joinedload

from app.portal.db.models import Location, Role, User, UserLocation, UserPermission, UserRole


class UserRepository:
    def __init__(self, db):
        self.db = db

    def get_by_id(self, user_id: str):
        return self.db.get(User, user_id)

    def get_by_email(self, email: str):
        stmt = select(User).where(User.email == email)
        return self.db.execute(stmt).scalars().first()

    def add(self, user: User) -> User:
        self.db.add(user)
        self.db.flush()
        return user

    def list_user_roles(self, user_id: str):
        stmt = (
            select(UserRole)
            .options(joinedload(UserRole.role).joinedload(Role.user_type), joinedload(UserRole.location))
            .where(UserRole.user_id == user_id)
            .order_by(UserRole.created_at.desc())
        )
        return self.db.execute(stmt).scalars().all()

    def get_user_role(self, user_id: str, user_role_id: str):
        stmt = select(UserRole).where(UserRole.id == user_role_id, UserRole.user_id == user_id)
        return self.db.execute(stmt).scalars().first()

    def find_user_role(self, user_id: str, role_id: str, location_id: str | None):
        stmt = select(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
        if location_id is None:
            stmt = stmt.where(UserRole.location_id.is_(None))
        else:
            stmt = stmt.where(UserRole.location_id == location_id)
        return self.db.execute(stmt).scalars().first()

    def list_user_locations(self, user_id: str):
        stmt = (
            select(UserLocation)
            .join(Location, UserLocation.location_id == Location.id)
            .options(joinedload(UserLocation.location))
            .where(UserLocation.user_id == user_id)
            .order_by(UserLocation.is_primary.desc(), Location.name)
        )
        return self.db.execute(stmt).scalars().all()

    def replace_user_locations(self, user_id: str, location_ids: list[str]) -> None:
        self.db.execute(delete(UserLocation).where(UserLocation.user_id == user_id))
        seen: set[str] = set()
        for location_id in location_ids:
            if location_id in seen:
                continue
            self.db.add(UserLocation(user_id=user_id, location_id=location_id, is_primary=not seen))
            seen.add(location_id)

    def get_permission_override(self, user_id: str, permission_id: str):
        stmt = select(UserPermission).where(
            UserPermission.user_id == user_id,
            UserPermission.permission_id == permission_id,
        )
        return self.db.execute(stmt).scalars().first()
