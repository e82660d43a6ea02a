from sqlalchemy import select

from app.portal.core.config import settings
from app.portal.db.models import Permission, Role, RolePermission, User, UserRole, UserType


DEFAULT_USER_TYPES = [
    ("super_admin", "Super Admin", "Full system access across all locations", 0),
    ("corporate", "Corporate Staff", "Corporate-level access (HR, Finance, Operations)", 10),
    ("location_staff", "Location Staff", "Staff assigned to specific dental locations", 20),
]

# (id, name, user_type_id, data_scope, is_protected, is_default)
DEFAULT_ROLES = [
    ("super_admin", "Super Administrator", "super_admin", "GLOBAL", True, False),
    ("corporate_admin", "Corporate Admin", "corporate", "ALL_LOCATIONS", False, False),
    ("hr_manager", "HR Manager", "corporate", "ALL_LOCATIONS", False, False),
    ("finance_manager", "Finance Manager", "corporate", "ALL_LOCATIONS", False, False),
    ("operations_manager", "Operations Manager", "corporate", "ALL_LOCATIONS", False, False),
    ("practice_manager", "Practice Manager", "location_staff", "LOCATION", False, False),
    ("dentist", "Dentist", "location_staff", "LOCATION", False, False),
    ("hygienist", "Hygienist", "location_staff", "LOCATION", False, False),
    ("dental_assistant", "Dental Assistant", "location_staff", "LOCATION", False, False),
    ("front_desk", "Front Desk", "location_staff", "LOCATION", False, True),
    ("office_manager", "Office Manager", "location_staff", "LOCATION", False, False),
]

DEFAULT_PERMISSIONS = [
    ("users.view", "View Users", "Users"),
    ("users.create", "Create Users", "Users"),
    ("users.edit", "Edit Users", "Users"),
    ("users.delete", "Delete Users", "Users"),
    ("users.assign_roles", "Assign Roles", "Users"),
    ("locations.view", "View Locations", "Locations"),
    ("locations.create", "Create Locations", "Locations"),
    ("locations.edit", "Edit Locations", "Locations"),
    ("locations.delete", "Delete Locations", "Locations"),
    ("courses.view", "View Courses", "Courses"),
    ("courses.create", "Create Courses", "Courses"),
    ("courses.edit", "Edit Courses", "Courses"),
    ("courses.delete", "Delete Courses", "Courses"),
    ("courses.enroll", "Enroll in Courses", "Courses"),
    ("wiki.view", "View Wiki Articles", "Wiki"),
    ("wiki.create", "Create Wiki Articles", "Wiki"),
    ("wiki.edit", "Edit Wiki Articles", "Wiki"),
    ("wiki.delete", "Delete Wiki Articles", "Wiki"),
    ("reports.view", "View Reports", "Reports"),
    ("reports.export", "Export Reports", "Reports"),
    ("admin.access", "Access Admin Panel", "Admin"),
    ("admin.manage_roles", "Manage Roles & Permissions", "Admin"),
    ("admin.manage_settings", "Manage System Settings", "Admin"),
]

ALL_PERMISSIONS = [code for code, _name, _category in DEFAULT_PERMISSIONS]

DEFAULT_ROLE_PERMISSIONS = {
    "super_admin": ALL_PERMISSIONS,
    "corporate_admin": [
        "users.view",
        "users.create",
        "users.edit",
        "users.assign_roles",
        "locations.view",
        "locations.edit",
        "courses.view",
        "wiki.view",
        "reports.view",
        "reports.export",
        "admin.access",
        "admin.manage_roles",
    ],
    "practice_manager": [
        "users.view",
        "users.create",
        "users.edit",
        "users.assign_roles",
        "locations.view",
        "courses.view",
        "courses.enroll",
        "wiki.view",
        "reports.view",
    ],
    "front_desk": ["courses.view", "courses.enroll", "wiki.view"],
}


def _get_or_create_user_types(db):
    existing = {user_type.id for user_type in db.execute(select(UserType)).scalars().all()}
    for type_id, name, description, level in DEFAULT_USER_TYPES:
        if type_id in existing:
            continue
        db.add(
            UserType(
                id=type_id,
                name=name,
                description=description,
                hierarchy_level=level,
                display_order=level,
            )
        )


def _get_or_create_roles(db):
    existing = {role.id for role in db.execute(select(Role)).scalars().all()}
    for order, (role_id, name, user_type_id, data_scope, is_protected, is_default) in enumerate(DEFAULT_ROLES):
        if role_id in existing:
            continue
        db.add(
            Role(
                id=role_id,
                name=name,
                user_type_id=user_type_id,
                data_scope=data_scope,
                is_protected=is_protected,
                is_default=is_default,
                display_order=order,
            )
        )


def _get_or_create_permissions(db):
    existing = {perm.id for perm in db.execute(select(Permission)).scalars().all()}
    for code, name, category in DEFAULT_PERMISSIONS:
        if code in existing:
            continue
        db.add(Permission(id=code, name=name, category=category))


def _assign_role_permissions(db):
    existing_pairs = {
        (rp.role_id, rp.permission_id) for rp in db.execute(select(RolePermission)).scalars().all()
    }
    for role_id, permission_ids in DEFAULT_ROLE_PERMISSIONS.items():
        for permission_id in permission_ids:
            if (role_id, permission_id) in existing_pairs:
                continue
            db.add(RolePermission(role_id=role_id, permission_id=permission_id, granted=True))


def _get_or_create_superadmin(db):
    user = db.get(User, settings.SUPERADMIN_USER_ID)
    if user is None:
        user = User(
            id=settings.SUPERADMIN_USER_ID,
            email=settings.SUPERADMIN_EMAIL,
            name=settings.SUPERADMIN_NAME,
            is_active=True,
        )
        db.add(user)
        db.flush()
    assignment = (
        db.execute(select(UserRole).where(UserRole.user_id == user.id, UserRole.role_id == "super_admin"))
        .scalars()
        .first()
    )
    if assignment is None:
        db.add(UserRole(user_id=user.id, role_id="super_admin", is_active=True))
    return user


def run_seed(db):
    _get_or_create_user_types(db)
    _get_or_create_permissions(db)
    db.flush()
    _get_or_create_roles(db)
    db.flush()
    _assign_role_permissions(db)
    _get_or_create_superadmin(db)
    db.commit()
