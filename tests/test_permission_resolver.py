from app.portal.core.scope import EVERY_LOCATION, DataScope
from app.portal.db.models import UserType
from app.portal.services.permission_cache import InMemoryPermissionCache, NullPermissionCache
from app.portal.services.permissions import EffectivePermissions, PermissionResolver
from tests.portal_helpers import (
    add_membership,
    add_override,
    assign_role,
    create_location,
    create_role,
    create_user,
    create_user_type,
    tomorrow,
    yesterday,
)


def _role(db_session, role_id="r1", *, data_scope="LOCATION", permissions=("users.edit", "users.view")):
    user_type = db_session.get(UserType, "staff") or create_user_type(db_session, type_id="staff", level=20)
    return create_role(db_session, role_id=role_id, user_type=user_type, data_scope=data_scope, permissions=permissions)


def test_override_deny_removes_role_grant(db_session):
    role = _role(db_session)
    user = create_user(db_session, email="associate@example.com")
    assign_role(db_session, user, role)
    add_override(db_session, user, "users.edit", granted=False)

    resolved = PermissionResolver(db_session, cache=NullPermissionCache()).resolve_effective_permissions(user.id)

    assert resolved.permissions == frozenset({"users.view"})


def test_override_allow_adds_permission_without_role_grant(db_session):
    role = _role(db_session, permissions=("wiki.view",))
    user = create_user(db_session, email="hygienist@example.com")
    assign_role(db_session, user, role)
    add_override(db_session, user, "reports.view", granted=True)

    resolved = PermissionResolver(db_session, cache=NullPermissionCache()).resolve_effective_permissions(user.id)

    assert resolved.permissions == frozenset({"wiki.view", "reports.view"})


def test_permissions_union_across_roles_and_scope_is_maximum(db_session):
    location_role = _role(db_session, "front_desk", data_scope="LOCATION", permissions=("wiki.view",))
    corporate_role = _role(db_session, "hr", data_scope="ALL_LOCATIONS", permissions=("users.view", "reports.view"))
    user = create_user(db_session, email="multi@example.com")
    assign_role(db_session, user, location_role)
    assign_role(db_session, user, corporate_role)

    resolved = PermissionResolver(db_session, cache=NullPermissionCache()).resolve_effective_permissions(user.id)

    assert resolved.permissions == frozenset({"wiki.view", "users.view", "reports.view"})
    assert resolved.data_scope == DataScope.ALL_LOCATIONS


def test_expired_and_inactive_records_are_ignored(db_session):
    active_role = _role(db_session, "active", data_scope="LOCATION", permissions=("wiki.view",))
    expired_role = _role(db_session, "expired", data_scope="GLOBAL", permissions=("admin.access",))
    inactive_role = _role(db_session, "inactive", data_scope="ALL_LOCATIONS", permissions=("reports.view",))
    user = create_user(db_session, email="expiry@example.com")
    assign_role(db_session, user, active_role)
    assign_role(db_session, user, expired_role, expires_at=yesterday())
    assign_role(db_session, user, inactive_role, is_active=False)
    add_override(db_session, user, "wiki.view", granted=False, expires_at=yesterday())
    add_override(db_session, user, "courses.view", granted=True, expires_at=tomorrow())

    resolved = PermissionResolver(db_session, cache=NullPermissionCache()).resolve_effective_permissions(user.id)

    assert resolved.permissions == frozenset({"wiki.view", "courses.view"})
    assert resolved.data_scope == DataScope.LOCATION


def test_unknown_user_resolves_to_empty(db_session):
    resolver = PermissionResolver(db_session, cache=NullPermissionCache())

    assert resolver.resolve_effective_permissions("missing") == EffectivePermissions()
    assert resolver.resolve_effective_permissions("") == EffectivePermissions()


def test_user_without_roles_has_no_permissions(db_session):
    user = create_user(db_session, email="nobody@example.com")

    resolved = PermissionResolver(db_session, cache=NullPermissionCache()).resolve_effective_permissions(user.id)

    assert resolved.permissions == frozenset()
    assert resolved.data_scope == DataScope.SELF


def test_location_ids_come_from_active_memberships(db_session):
    role = _role(db_session)
    loc_1 = create_location(db_session, "loc-1")
    loc_2 = create_location(db_session, "loc-2")
    loc_3 = create_location(db_session, "loc-3")
    user = create_user(db_session, email="member@example.com")
    assign_role(db_session, user, role, location=loc_3)
    add_membership(db_session, user, loc_1)
    add_membership(db_session, user, loc_2, is_active=False)

    resolver = PermissionResolver(db_session, cache=NullPermissionCache())
    resolved = resolver.resolve_effective_permissions(user.id)

    assert resolved.location_ids == frozenset({"loc-1"})
    assert resolver.can_access_location(user.id, "loc-1")
    assert not resolver.can_access_location(user.id, "loc-2")
    assert resolver.accessible_location_ids(user.id) == frozenset({"loc-1"})


def test_broad_scope_accesses_every_location(db_session):
    role = _role(db_session, "regional", data_scope="ALL_LOCATIONS")
    user = create_user(db_session, email="regional@example.com")
    assign_role(db_session, user, role)

    resolver = PermissionResolver(db_session, cache=NullPermissionCache())

    assert resolver.can_access_location(user.id, "any-location")
    assert resolver.accessible_location_ids(user.id) == EVERY_LOCATION


def test_permission_predicates(db_session):
    role = _role(db_session)
    user = create_user(db_session, email="predicates@example.com")
    assign_role(db_session, user, role)
    resolver = PermissionResolver(db_session, cache=NullPermissionCache())

    assert resolver.has_permission(user.id, "users.view")
    assert not resolver.has_permission(user.id, "admin.access")
    assert resolver.has_any_permission(user.id, ["admin.access", "users.edit"])
    assert not resolver.has_any_permission(user.id, [])
    assert resolver.has_all_permissions(user.id, ["users.view", "users.edit"])
    assert not resolver.has_all_permissions(user.id, ["users.view", "admin.access"])

    decision = resolver.evaluate_permission(user.id, " admin.access ")
    assert decision.key == "admin.access"
    assert not decision.allowed
    assert decision.source == "default_deny"


def test_cached_result_is_served_until_invalidated(db_session):
    role = _role(db_session, permissions=("users.view",))
    user = create_user(db_session, email="cached@example.com")
    assign_role(db_session, user, role)
    cache = InMemoryPermissionCache(ttl_seconds=300)
    resolver = PermissionResolver(db_session, cache=cache)

    assert resolver.resolve_effective_permissions(user.id).permissions == frozenset({"users.view"})
    add_override(db_session, user, "users.view", granted=False)
    assert resolver.resolve_effective_permissions(user.id).permissions == frozenset({"users.view"})

    resolver.invalidate(user.id)
    assert resolver.resolve_effective_permissions(user.id).permissions == frozenset()


def test_resolve_with_trace_reports_each_layer(db_session):
    role = _role(db_session)
    user = create_user(db_session, email="trace@example.com")
    assign_role(db_session, user, role)
    add_override(db_session, user, "users.edit", granted=False)
    add_override(db_session, user, "wiki.view", granted=True)

    resolved, trace = PermissionResolver(db_session, cache=NullPermissionCache()).resolve_with_trace(user.id)

    assert trace.role_grants == frozenset({"users.edit", "users.view"})
    assert trace.override_allow == frozenset({"wiki.view"})
    assert trace.override_deny == frozenset({"users.edit"})
    assert resolved.permissions == frozenset({"users.view", "wiki.view"})


def test_deactivated_role_or_user_type_stops_granting(db_session):
    kept = _role(db_session, "kept", data_scope="LOCATION", permissions=("wiki.view",))
    retired = _role(db_session, "retired", data_scope="GLOBAL", permissions=("reports.view",))
    user = create_user(db_session, email="retired@example.com")
    assign_role(db_session, user, kept)
    assign_role(db_session, user, retired)
    resolver = PermissionResolver(db_session, cache=NullPermissionCache())

    retired.is_active = False
    db_session.commit()
    resolved = resolver.resolve_effective_permissions(user.id)
    assert resolved.permissions == frozenset({"wiki.view"})
    assert resolved.data_scope == DataScope.LOCATION

    db_session.get(UserType, "staff").is_active = False
    db_session.commit()
    assert resolver.resolve_effective_permissions(user.id).permissions == frozenset()
