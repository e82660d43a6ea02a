import json
import logging

import pytest

from app.portal.core.error_catalog import AppError
from app.portal.services.authorization import (
    CANNOT_DETERMINE_PERMISSIONS,
    DIRECT_LOCATION_DENIED,
    LOCATION_DENIED_REASON,
    NO_CONTEXT_REASON,
    ROLE_NOT_FOUND_REASON,
    SELF_MANAGEMENT_REASON,
    TARGET_LOCATION_DENIED_REASON,
    AuthorizationGate,
    RoleAssignment,
)
from tests.portal_helpers import assign_role, create_location, create_role, create_user, create_user_type


@pytest.fixture()
def org(db_session):
    top = create_user_type(db_session, type_id="super_admin", level=0, name="Super Admin")
    corporate = create_user_type(db_session, type_id="corporate", level=10, name="Corporate Staff")
    staff = create_user_type(db_session, type_id="location_staff", level=20, name="Location Staff")
    loc_1 = create_location(db_session, "loc-1")
    loc_2 = create_location(db_session, "loc-2")
    roles = {
        "protected": create_role(
            db_session, role_id="protected_admin", user_type=top, data_scope="GLOBAL", is_protected=True
        ),
        "corporate_admin": create_role(db_session, role_id="corporate_admin", user_type=corporate, data_scope="ALL_LOCATIONS"),
        "practice_manager": create_role(db_session, role_id="practice_manager", user_type=corporate, data_scope="LOCATION"),
        "front_desk": create_role(db_session, role_id="front_desk", user_type=staff, data_scope="LOCATION"),
        "hygienist": create_role(db_session, role_id="hygienist", user_type=staff, data_scope="LOCATION"),
    }
    owner = create_user(db_session, email="owner@example.com")
    assign_role(db_session, owner, create_role(db_session, role_id="owner", user_type=top, data_scope="GLOBAL"))
    corporate_admin = create_user(db_session, email="corp@example.com")
    assign_role(db_session, corporate_admin, roles["corporate_admin"])
    manager = create_user(db_session, email="manager@example.com")
    assign_role(db_session, manager, roles["practice_manager"], location=loc_1)
    return {
        "roles": roles,
        "owner": owner,
        "corporate_admin": corporate_admin,
        "manager": manager,
        "locations": (loc_1, loc_2),
    }


def test_location_scoped_actor_limited_to_own_locations(db_session, org):
    gate = AuthorizationGate(db_session)
    manager = org["manager"]

    assert gate.can_assign_role(manager.id, "front_desk", "loc-1").allowed
    denied = gate.can_assign_role(manager.id, "front_desk", "loc-2")
    assert not denied.allowed
    assert denied.reason == LOCATION_DENIED_REASON


def test_broad_scope_actor_assigns_at_any_location(db_session, org):
    gate = AuthorizationGate(db_session)

    assert gate.can_assign_role(org["corporate_admin"].id, "front_desk", "loc-2").allowed
    assert gate.can_assign_role(org["corporate_admin"].id, "front_desk", "unknown-site").allowed


def test_location_check_skipped_without_target_location(db_session, org):
    gate = AuthorizationGate(db_session)

    assert gate.can_assign_role(org["manager"].id, "hygienist").allowed


def test_same_level_role_is_denied_with_user_type_name(db_session, org):
    gate = AuthorizationGate(db_session)

    decision = gate.can_assign_role(org["manager"].id, "corporate_admin")

    assert not decision.allowed
    assert '"Corporate Staff"' in decision.reason


def test_unknown_role_and_missing_context(db_session, org):
    gate = AuthorizationGate(db_session)
    outsider = create_user(db_session, email="outsider@example.com")

    assert gate.can_assign_role(org["owner"].id, "missing").reason == ROLE_NOT_FOUND_REASON
    assert gate.can_assign_role(outsider.id, "front_desk").reason == NO_CONTEXT_REASON


def test_protected_role_assignment_denied_even_for_top_of_hierarchy(db_session, org):
    decision = AuthorizationGate(db_session).can_assign_role(org["owner"].id, "protected_admin")

    assert not decision.allowed
    assert "protected" in decision.reason


def test_protected_role_assignment_can_be_enabled(db_session, org):
    gate = AuthorizationGate(db_session, allow_protected_role_assignment=True)

    # Still bound by hierarchy: the protected role sits at the owner's own level.
    decision = gate.can_assign_role(org["owner"].id, "protected_admin")
    assert not decision.allowed
    assert "protected" not in decision.reason


def test_validate_user_creation_collects_role_errors(db_session, org):
    gate = AuthorizationGate(db_session)

    result = gate.validate_user_creation(
        org["manager"].id,
        [
            RoleAssignment("front_desk", "loc-1"),
            RoleAssignment("front_desk", "loc-2"),
            RoleAssignment("corporate_admin"),
        ],
    )

    assert not result.valid
    assert len(result.errors) == 2
    assert result.errors[0] == LOCATION_DENIED_REASON


def test_validate_user_creation_reports_single_location_error(db_session, org):
    gate = AuthorizationGate(db_session)

    result = gate.validate_user_creation(
        org["manager"].id,
        [RoleAssignment("front_desk", "loc-1")],
        ["loc-2", "loc-3", "loc-4"],
    )

    assert result.errors == [DIRECT_LOCATION_DENIED]


def test_validate_user_creation_success_and_no_context(db_session, org):
    gate = AuthorizationGate(db_session)
    outsider = create_user(db_session, email="nocontext@example.com")

    ok = gate.validate_user_creation(org["manager"].id, [RoleAssignment("front_desk", "loc-1")], ["loc-1"])
    assert ok.valid
    assert ok.errors == []

    denied = gate.validate_user_creation(outsider.id, [RoleAssignment("front_desk")])
    assert not denied.valid
    assert denied.errors == [CANNOT_DETERMINE_PERMISSIONS]


def test_can_assign_locations(db_session, org):
    gate = AuthorizationGate(db_session)

    assert gate.can_assign_locations(org["manager"].id, ["loc-1"]).allowed
    assert gate.can_assign_locations(org["manager"].id, ["loc-1", "loc-2"]).reason == DIRECT_LOCATION_DENIED
    assert gate.can_assign_locations(org["corporate_admin"].id, ["loc-1", "loc-2"]).allowed


def test_protected_role_mutation_always_rejected(db_session, org):
    gate = AuthorizationGate(db_session)
    protected = org["roles"]["protected"]

    decision = gate.check_role_mutation(protected)
    assert not decision.allowed
    assert gate.check_role_mutation(org["roles"]["front_desk"]).allowed

    with pytest.raises(AppError) as excinfo:
        gate.ensure_role_mutable(protected)
    assert excinfo.value.error.code == "PROTECTED_ROLE"


def test_allowed_assignments_lists_manageable_targets(db_session, org):
    gate = AuthorizationGate(db_session)

    allowed = gate.allowed_assignments(org["manager"].id)
    assert [user_type.id for user_type in allowed.user_types] == ["location_staff"]
    assert {role.id for role in allowed.roles} == {"front_desk", "hygienist"}
    assert [location.id for location in allowed.locations] == ["loc-1"]
    assert not allowed.can_manage_all_locations

    owner_view = gate.allowed_assignments(org["owner"].id)
    assert "protected_admin" not in {role.id for role in owner_view.roles}
    assert {location.id for location in owner_view.locations} == {"loc-1", "loc-2"}
    assert owner_view.can_manage_all_locations


def test_allowed_assignments_without_context(db_session, org):
    outsider = create_user(db_session, email="none@example.com")

    allowed = AuthorizationGate(db_session).allowed_assignments(outsider.id)

    assert allowed.roles == []
    assert allowed.hierarchy_level is None


def test_inactive_role_cannot_be_assigned(db_session, org):
    org["roles"]["hygienist"].is_active = False
    db_session.commit()

    decision = AuthorizationGate(db_session).can_assign_role(org["owner"].id, "hygienist")

    assert decision.reason == ROLE_NOT_FOUND_REASON


def test_can_manage_user_requires_seniority_and_location_cover(db_session, org):
    gate = AuthorizationGate(db_session)
    manager = org["manager"]
    loc_1, loc_2 = org["locations"]
    local_desk = create_user(db_session, email="local@example.com")
    assign_role(db_session, local_desk, org["roles"]["front_desk"], location=loc_1)
    remote_desk = create_user(db_session, email="remote@example.com")
    assign_role(db_session, remote_desk, org["roles"]["front_desk"], location=loc_2)
    newcomer = create_user(db_session, email="newcomer@example.com")

    assert gate.can_manage_user(manager.id, local_desk.id).allowed
    assert gate.can_manage_user(manager.id, newcomer.id).allowed
    assert gate.can_manage_user(manager.id, remote_desk.id).reason == TARGET_LOCATION_DENIED_REASON
    assert gate.can_manage_user(manager.id, manager.id).reason == SELF_MANAGEMENT_REASON
    assert '"Corporate Staff"' in gate.can_manage_user(manager.id, org["corporate_admin"].id).reason
    assert '"Super Admin"' in gate.can_manage_user(manager.id, org["owner"].id).reason
    assert gate.can_manage_user(org["corporate_admin"].id, remote_desk.id).allowed
    assert gate.can_manage_user(newcomer.id, local_desk.id).reason == NO_CONTEXT_REASON


def test_denials_are_logged_as_json(db_session, org, caplog):
    caplog.set_level(logging.INFO, logger="app.portal.services.authorization")

    AuthorizationGate(db_session).can_assign_role(org["manager"].id, "front_desk", "loc-2")

    payloads = [
        json.loads(record.getMessage())
        for record in caplog.records
        if record.name == "app.portal.services.authorization"
    ]
    assert payloads == [
        {
            "event": "authorization_denied",
            "check": "assign_role",
            "actor_id": org["manager"].id,
            "target_id": "front_desk",
            "reason": LOCATION_DENIED_REASON,
        }
    ]
