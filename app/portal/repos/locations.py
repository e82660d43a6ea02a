from sqlalchemy import select

from app.portal.core.scope import EVERY_LOCATION, LocationSet
from app.portal.db.models import Location


class LocationRepository:
    def __init__(self, db):
        self.db = db

    def list_active(self, location_ids: LocationSet = EVERY_LOCATION):
        stmt = select(Location).where(Location.is_active.is_(True)).order_by(Location.name)
        if location_ids != EVERY_LOCATION:
            if not location_ids:
                return []
            stmt = stmt.where(Location.id.in_(sorted(location_ids)))
        return self.db.execute(stmt).scalars().all()

    def existing_ids(self, location_ids) -> set[str]:
        location_ids = list(location_ids)
        if not location_ids:
            return set()
        stmt = select(Location.id).where(Location.id.in_(location_ids))
        return {row[0] for row in self.db.execute(stmt).all()}
