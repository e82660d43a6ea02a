from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from app.portal.core.scope import EVERY_LOCATION, DataScope, LocationSet, manageable_locations, max_scope
from app.portal.repos.permissions import PermissionStore


@dataclass(frozen=True)
class HierarchyContext:
    user_id: str
    hierarchy_level: int
    data_scope: DataScope
    location_ids: frozenset[str]
    can_manage_user_types: frozenset[str]
    can_manage_at_locations: LocationSet

    @property
    def can_manage_all_locations(self) -> bool:
        return self.can_manage_at_locations == EVERY_LOCATION


class HierarchyResolver:
    """Computes what an actor may manage from their active role assignments.

    Lower hierarchy levels are more senior. An actor manages only user types
    whose level is strictly greater than their own most senior level, and
    only at locations covered by their broadest data scope.
    """

    def __init__(self, db, now: Callable[[], datetime] = datetime.utcnow):
        self.store = PermissionStore(db)
        self.now = now

    def resolve_hierarchy_context(self, user_id: str) -> HierarchyContext | None:
        if not user_id:
            return None
        user_roles = self.store.list_active_user_roles(user_id, now=self.now())
        if not user_roles:
            return None

        hierarchy_level = min(ur.role.user_type.hierarchy_level for ur in user_roles)
        data_scope = max_scope(ur.role.data_scope for ur in user_roles)

        location_ids = {ur.location_id for ur in user_roles if ur.location_id}
        location_ids.update(self.store.list_active_user_location_ids(user_id))

        can_manage_user_types = frozenset(
            user_type.id
            for user_type in self.store.list_active_user_types()
            if user_type.hierarchy_level > hierarchy_level
        )
        return HierarchyContext(
            user_id=user_id,
            hierarchy_level=hierarchy_level,
            data_scope=data_scope,
            location_ids=frozenset(location_ids),
            can_manage_user_types=can_manage_user_types,
            can_manage_at_locations=manageable_locations(data_scope, location_ids),
        )
