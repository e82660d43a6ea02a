import pytest

from app.portal.db.models import Role, User
from app.portal.db.seed import run_seed
from app.portal.repos.audit import AuditRepository
from tests.portal_helpers import assign_role, auth_headers, create_user


@pytest.fixture()
def admins(client, db_session):
    run_seed(db_session)
    corporate = create_user(db_session, email="corp@example.com")
    assign_role(db_session, corporate, db_session.get(Role, "corporate_admin"))
    desk = create_user(db_session, email="desk@example.com")
    assign_role(db_session, desk, db_session.get(Role, "front_desk"))
    return {"corporate": corporate, "desk": desk, "superadmin": db_session.get(User, "superadmin")}


def test_get_role(client, admins):
    response = client.get("/portal/roles/front_desk", headers=auth_headers(admins["desk"]))

    assert response.status_code == 200
    role = response.json()["role"]
    assert role["data_scope"] == "LOCATION"
    assert role["is_default"] is True
    assert role["user_type"]["hierarchy_level"] == 20


def test_get_unknown_role(client, admins):
    response = client.get("/portal/roles/missing", headers=auth_headers(admins["desk"]))

    assert response.status_code == 404
    assert response.json()["code"] == "ROLE_NOT_FOUND"


def test_update_role_records_audit(client, db_session, admins):
    response = client.put(
        "/portal/roles/dentist",
        headers=auth_headers(admins["corporate"]),
        json={"description": "Licensed dentist", "display_order": 3},
    )

    assert response.status_code == 200
    assert response.json()["role"]["description"] == "Licensed dentist"
    events = AuditRepository(db_session).list_for_entity("role", "dentist")
    assert events[-1].action == "roles.update"
    assert events[-1].before_payload["description"] is None
    assert events[-1].after_payload["display_order"] == 3


def test_update_role_requires_manage_roles(client, admins):
    response = client.put("/portal/roles/dentist", headers=auth_headers(admins["desk"]), json={"name": "X"})

    assert response.status_code == 403
    assert response.json()["details"] == {"permission": "admin.manage_roles"}


@pytest.mark.parametrize(
    "method,path,body",
    [
        ("put", "/portal/roles/super_admin", {"name": "Renamed"}),
        ("delete", "/portal/roles/super_admin", None),
        ("put", "/portal/roles/super_admin/permissions", {"permission_ids": []}),
        ("post", "/portal/roles/super_admin/permissions", {"permission_id": "wiki.view", "granted": False}),
    ],
)
def test_protected_role_cannot_be_changed_even_by_superadmin(client, admins, method, path, body):
    kwargs = {"headers": auth_headers(admins["superadmin"])}
    if body is not None:
        kwargs["json"] = body

    response = getattr(client, method)(path, **kwargs)

    assert response.status_code == 403
    assert response.json()["code"] == "PROTECTED_ROLE"


def test_delete_role_in_use(client, admins):
    response = client.delete("/portal/roles/front_desk", headers=auth_headers(admins["corporate"]))

    assert response.status_code == 400
    assert response.json()["code"] == "ROLE_IN_USE"


def test_delete_unused_role(client, admins):
    headers = auth_headers(admins["corporate"])

    deleted = client.delete("/portal/roles/office_manager", headers=headers)
    assert deleted.status_code == 200

    missing = client.get("/portal/roles/office_manager", headers=headers)
    assert missing.status_code == 404


def test_replace_role_permissions_takes_effect_immediately(client, admins):
    desk_headers = auth_headers(admins["desk"])
    corporate_headers = auth_headers(admins["corporate"])

    # Warm the cache for the desk user through a permission-guarded route.
    assert client.get("/portal/users/desk-any/roles", headers=desk_headers).status_code == 403

    replaced = client.put(
        "/portal/roles/front_desk/permissions",
        headers=corporate_headers,
        json={"permission_ids": ["users.view", "wiki.view"]},
    )
    assert replaced.status_code == 200
    assert [item["permission_id"] for item in replaced.json()["permissions"]] == ["users.view", "wiki.view"]

    response = client.get(f"/portal/users/{admins['desk'].id}/roles", headers=desk_headers)
    assert response.status_code == 200


def test_set_role_permission_upsert(client, admins):
    headers = auth_headers(admins["corporate"])

    created = client.post(
        "/portal/roles/hygienist/permissions",
        headers=headers,
        json={"permission_id": "wiki.view"},
    )
    assert created.json()["created"] is True

    updated = client.post(
        "/portal/roles/hygienist/permissions",
        headers=headers,
        json={"permission_id": "wiki.view", "granted": False},
    )
    assert updated.json()["created"] is False
    assert updated.json()["permission"] == {"permission_id": "wiki.view", "granted": False}

    listed = client.get("/portal/roles/hygienist/permissions", headers=headers)
    assert listed.json()["permissions"] == [{"permission_id": "wiki.view", "granted": False}]


def test_unknown_permission_is_rejected(client, admins):
    response = client.put(
        "/portal/roles/dentist/permissions",
        headers=auth_headers(admins["corporate"]),
        json={"permission_ids": ["made.up"]},
    )

    assert response.status_code == 422
    assert response.json()["details"]["invalid"] == ["made.up"]
