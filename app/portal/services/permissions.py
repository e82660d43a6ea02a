from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable

from app.portal.core.metrics import metrics
from app.portal.core.scope import DataScope, LocationSet, is_broad_scope, manageable_locations, max_scope
from app.portal.repos.permissions import PermissionStore
from app.portal.services.permission_cache import PermissionCache, get_permission_cache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EffectivePermissions:
    permissions: frozenset[str] = field(default_factory=frozenset)
    data_scope: DataScope = DataScope.SELF
    location_ids: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class PermissionTrace:
    role_grants: frozenset[str]
    override_allow: frozenset[str]
    override_deny: frozenset[str]


@dataclass(frozen=True)
class PermissionDecision:
    key: str
    allowed: bool
    source: str


class PermissionResolver:
    def __init__(
        self,
        db,
        cache: PermissionCache | None = None,
        now: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = PermissionStore(db)
        self.cache = cache if cache is not None else get_permission_cache()
        self.now = now

    def resolve_effective_permissions(self, user_id: str) -> EffectivePermissions:
        cached = self.cache.get(user_id)
        metrics.record_permission_cache(hit=cached is not None)
        if cached is not None:
            return cached
        result, _trace = self.resolve_with_trace(user_id)
        self.cache.set(user_id, result)
        return result

    def resolve_with_trace(self, user_id: str) -> tuple[EffectivePermissions, PermissionTrace]:
        """Resolve without consulting the cache, keeping each layer's contribution."""
        if not user_id or not self.store.user_exists(user_id):
            empty = frozenset()
            return EffectivePermissions(), PermissionTrace(empty, empty, empty)

        now = self.now()
        user_roles = self.store.list_active_user_roles(user_id, now=now)
        role_grants = frozenset(self.store.list_granted_role_permissions({ur.role_id for ur in user_roles}))
        data_scope = max_scope(ur.role.data_scope for ur in user_roles)
        location_ids = frozenset(self.store.list_active_user_location_ids(user_id))

        override_allow: set[str] = set()
        override_deny: set[str] = set()
        for override in self.store.list_user_permission_overrides(user_id, now=now):
            if override.granted:
                override_allow.add(override.permission_id)
            else:
                override_deny.add(override.permission_id)

        # Overrides apply after the role union so they win regardless of order.
        permissions = (role_grants | override_allow) - override_deny
        result = EffectivePermissions(
            permissions=frozenset(permissions),
            data_scope=data_scope,
            location_ids=location_ids,
        )
        trace = PermissionTrace(
            role_grants=role_grants,
            override_allow=frozenset(override_allow),
            override_deny=frozenset(override_deny),
        )
        return result, trace

    def evaluate_permission(self, user_id: str, permission_id: str) -> PermissionDecision:
        key = permission_id.strip()
        allowed = key in self.resolve_effective_permissions(user_id).permissions
        if not allowed:
            logger.info("Permission denied", extra={"user_id": user_id, "permission_id": key})
        return PermissionDecision(key=key, allowed=allowed, source="effective" if allowed else "default_deny")

    def has_permission(self, user_id: str, permission_id: str) -> bool:
        return permission_id in self.resolve_effective_permissions(user_id).permissions

    def has_any_permission(self, user_id: str, permission_ids: Iterable[str]) -> bool:
        permissions = self.resolve_effective_permissions(user_id).permissions
        return any(permission_id in permissions for permission_id in permission_ids)

    def has_all_permissions(self, user_id: str, permission_ids: Iterable[str]) -> bool:
        permissions = self.resolve_effective_permissions(user_id).permissions
        return all(permission_id in permissions for permission_id in permission_ids)

    def can_access_location(self, user_id: str, location_id: str) -> bool:
        resolved = self.resolve_effective_permissions(user_id)
        if is_broad_scope(resolved.data_scope):
            return True
        if resolved.data_scope == DataScope.LOCATION:
            return location_id in resolved.location_ids
        return False

    def accessible_location_ids(self, user_id: str) -> LocationSet:
        resolved = self.resolve_effective_permissions(user_id)
        return manageable_locations(resolved.data_scope, resolved.location_ids)

    def invalidate(self, user_id: str | None = None) -> None:
        self.cache.invalidate(user_id)
