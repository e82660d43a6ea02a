"""Authorization decisions consumed by the user and role endpoints.

Business-rule denials are returned as values (``Decision`` /
``ValidationResult``) so callers branch without try/except. Store failures are
not caught here and propagate to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from app.portal.core.config import settings
from app.portal.core.error_catalog import AppError, ErrorCatalog
from app.portal.core.logging import log_json
from app.portal.core.metrics import metrics
from app.portal.core.scope import DataScope, location_allowed, normalize_scope
from app.portal.repos.locations import LocationRepository
from app.portal.repos.permissions import PermissionStore
from app.portal.repos.roles import RoleRepository
from app.portal.services.hierarchy import HierarchyContext, HierarchyResolver

logger = logging.getLogger(__name__)

NO_CONTEXT_REASON = "No manageable context: you have no active role assignments."
ROLE_NOT_FOUND_REASON = "Role not found"
LOCATION_DENIED_REASON = "No permission for this location: you can only assign users to locations you have access to."
CANNOT_DETERMINE_PERMISSIONS = "Unable to determine your permissions. Please contact an administrator."
DIRECT_LOCATION_DENIED = "You do not have permission to assign users to this location."
SELF_MANAGEMENT_REASON = "You cannot change your own roles, locations or permissions."
TARGET_LOCATION_DENIED_REASON = "This user works at locations outside the ones you manage."


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str | None = None


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RoleAssignment:
    role_id: str
    location_id: str | None = None


@dataclass(frozen=True)
class AllowedAssignments:
    user_types: list
    roles: list
    locations: list
    hierarchy_level: int | None
    data_scope: DataScope | None
    can_manage_all_locations: bool


def _user_type_denied_reason(user_type_name: str) -> str:
    return (
        f'You cannot assign roles from user type "{user_type_name}". '
        "You can only manage user types with lower authority than your own."
    )


def _target_user_type_denied_reason(user_type_name: str) -> str:
    return (
        f'You cannot manage users holding a "{user_type_name}" role. '
        "You can only manage user types with lower authority than your own."
    )


class AuthorizationGate:
    def __init__(
        self,
        db,
        hierarchy: HierarchyResolver | None = None,
        allow_protected_role_assignment: bool | None = None,
    ):
        self.db = db
        self.store = PermissionStore(db)
        self.hierarchy = hierarchy or HierarchyResolver(db)
        if allow_protected_role_assignment is None:
            allow_protected_role_assignment = settings.ALLOW_PROTECTED_ROLE_ASSIGNMENT
        self.allow_protected_role_assignment = allow_protected_role_assignment

    def can_assign_role(
        self,
        actor_id: str,
        target_role_id: str,
        target_location_id: str | None = None,
    ) -> Decision:
        context = self.hierarchy.resolve_hierarchy_context(actor_id)
        if context is None:
            return self._deny("assign_role", actor_id, target_role_id, NO_CONTEXT_REASON)
        return self.check_role_assignment(context, target_role_id, target_location_id)

    def check_role_assignment(
        self,
        context: HierarchyContext,
        target_role_id: str,
        target_location_id: str | None = None,
    ) -> Decision:
        role = self.store.get_role(target_role_id)
        if role is None or not role.is_active:
            return self._deny("assign_role", context.user_id, target_role_id, ROLE_NOT_FOUND_REASON)

        if role.is_protected and not self.allow_protected_role_assignment:
            return self._deny(
                "assign_role",
                context.user_id,
                target_role_id,
                f'Role "{role.name}" is protected and cannot be assigned.',
            )

        if role.user_type_id not in context.can_manage_user_types:
            return self._deny(
                "assign_role",
                context.user_id,
                target_role_id,
                _user_type_denied_reason(role.user_type.name),
            )

        if normalize_scope(role.data_scope) == DataScope.LOCATION and target_location_id:
            if not location_allowed(context.can_manage_at_locations, target_location_id):
                return self._deny("assign_role", context.user_id, target_role_id, LOCATION_DENIED_REASON)

        return Decision(allowed=True)

    def validate_user_creation(
        self,
        actor_id: str,
        role_assignments: Iterable[RoleAssignment],
        location_ids: Iterable[str] | None = None,
    ) -> ValidationResult:
        context = self.hierarchy.resolve_hierarchy_context(actor_id)
        if context is None:
            metrics.increment_rbac_denied("validate_user_creation")
            return ValidationResult(valid=False, errors=[CANNOT_DETERMINE_PERMISSIONS])

        errors: list[str] = []
        for assignment in role_assignments:
            decision = self.check_role_assignment(context, assignment.role_id, assignment.location_id)
            if not decision.allowed:
                errors.append(decision.reason or "Permission denied for role assignment")

        location_error = self.check_locations(context, location_ids or ())
        if location_error:
            errors.append(location_error)

        return ValidationResult(valid=not errors, errors=errors)

    def can_assign_locations(self, actor_id: str, location_ids: Iterable[str]) -> Decision:
        context = self.hierarchy.resolve_hierarchy_context(actor_id)
        if context is None:
            return self._deny("assign_locations", actor_id, "", NO_CONTEXT_REASON)
        location_error = self.check_locations(context, location_ids)
        if location_error:
            return self._deny("assign_locations", actor_id, "", location_error)
        return Decision(allowed=True)

    def can_manage_user(self, actor_id: str, target_user_id: str) -> Decision:
        """Whether the actor outranks the target user wherever the target works.

        Users without active roles or locations are manageable by any actor
        with a context.
        """
        context = self.hierarchy.resolve_hierarchy_context(actor_id)
        if context is None:
            return self._deny("manage_user", actor_id, target_user_id, NO_CONTEXT_REASON)
        if target_user_id == actor_id:
            return self._deny("manage_user", actor_id, target_user_id, SELF_MANAGEMENT_REASON)

        target_roles = self.store.list_active_user_roles(target_user_id, now=self.hierarchy.now())
        for user_role in target_roles:
            user_type = user_role.role.user_type
            if user_type.id not in context.can_manage_user_types:
                return self._deny(
                    "manage_user", actor_id, target_user_id, _target_user_type_denied_reason(user_type.name)
                )

        target_locations = {ur.location_id for ur in target_roles if ur.location_id}
        target_locations.update(self.store.list_active_user_location_ids(target_user_id))
        if self.check_locations(context, sorted(target_locations)):
            return self._deny("manage_user", actor_id, target_user_id, TARGET_LOCATION_DENIED_REASON)
        return Decision(allowed=True)

    @staticmethod
    def check_locations(context: HierarchyContext, location_ids: Iterable[str]) -> str | None:
        # One generic error at the first violation; offending ids are not enumerated.
        for location_id in location_ids:
            if not location_allowed(context.can_manage_at_locations, location_id):
                return DIRECT_LOCATION_DENIED
        return None

    @staticmethod
    def check_role_mutation(role) -> Decision:
        if role is not None and role.is_protected:
            metrics.increment_rbac_denied("role_mutation")
            return Decision(allowed=False, reason=f'Role "{role.name}" is protected and cannot be modified.')
        return Decision(allowed=True)

    def ensure_role_mutable(self, role) -> None:
        decision = self.check_role_mutation(role)
        if not decision.allowed:
            raise AppError(ErrorCatalog.PROTECTED_ROLE, details={"role_id": role.id, "reason": decision.reason})

    def allowed_assignments(self, actor_id: str) -> AllowedAssignments:
        context = self.hierarchy.resolve_hierarchy_context(actor_id)
        if context is None:
            return AllowedAssignments(
                user_types=[],
                roles=[],
                locations=[],
                hierarchy_level=None,
                data_scope=None,
                can_manage_all_locations=False,
            )
        role_repo = RoleRepository(self.db)
        roles = [
            role
            for role in role_repo.list_active_for_user_types(context.can_manage_user_types)
            if self.allow_protected_role_assignment or not role.is_protected
        ]
        return AllowedAssignments(
            user_types=role_repo.list_active_user_types(context.can_manage_user_types),
            roles=roles,
            locations=LocationRepository(self.db).list_active(context.can_manage_at_locations),
            hierarchy_level=context.hierarchy_level,
            data_scope=context.data_scope,
            can_manage_all_locations=context.can_manage_all_locations,
        )

    @staticmethod
    def _deny(check: str, actor_id: str, target_id: str, reason: str) -> Decision:
        metrics.increment_rbac_denied(check)
        log_json(
            logger,
            {
                "event": "authorization_denied",
                "check": check,
                "actor_id": actor_id,
                "target_id": target_id,
                "reason": reason,
            },
        )
        return Decision(allowed=False, reason=reason)
