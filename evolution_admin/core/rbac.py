"""Role-Based Access Control policy.

Every permission question is answered here, dispatched on the actor's role:

    superAdmin  -> everything
    admin       -> usuario-role targets sharing a location with the actor
    usuario     -> nothing

Predicates are pure; ``ensure_*`` variants raise ForbiddenError.
"""
from __future__ import annotations
from typing import Optional

from .exceptions import ForbiddenError
from .models import (
    ActorContext,
    ROLE_ADMIN,
    ROLE_SUPER_ADMIN,
    ROLE_USUARIO,
    shares_local,
)

# Fields an admin actor may submit but never apply
ADMIN_STRIPPED_FIELDS = ("role", "locales", "localPrincipal")


class _DenyAllRules:
    """Rules for actors without administrative privileges."""

    def can_view(self, actor: ActorContext, target: dict) -> bool:
        return False

    def can_create(self, actor: ActorContext, desired_role: str, requested_locales: list[str]) -> bool:
        return False

    def can_mutate(self, actor: ActorContext, target: dict, changes: dict) -> bool:
        return False

    def can_reset_password(self, actor: ActorContext, target: dict) -> bool:
        return False

    def can_toggle_status(self, actor: ActorContext, target: dict) -> bool:
        return False

    def can_delete(self, actor: ActorContext, target: dict) -> bool:
        return False

    def can_view_admin_stats(self, actor: ActorContext, admin_id: Optional[str]) -> bool:
        return False

    def can_manage_assignments(self, actor: ActorContext) -> bool:
        return False

    def default_locales(self, actor: ActorContext, requested_locales: list[str]) -> list[str]:
        return list(requested_locales)

    def mutable_fields(self, actor: ActorContext, changes: dict) -> dict:
        return dict(changes)


class _AdminRules(_DenyAllRules):
    """Location-scoped administrator."""

    def can_view(self, actor, target):
        return target.get("role", ROLE_USUARIO) == ROLE_USUARIO and shares_local(actor, target)

    def can_create(self, actor, desired_role, requested_locales):
        if desired_role != ROLE_USUARIO:
            return False
        own = set(actor.locales)
        return all(local_id in own for local_id in requested_locales)

    def can_mutate(self, actor, target, changes):
        if not self.can_view(actor, target):
            return False
        return changes.get("role") != ROLE_SUPER_ADMIN

    def can_reset_password(self, actor, target):
        return self.can_view(actor, target)

    def can_toggle_status(self, actor, target):
        return self.can_view(actor, target)

    def can_view_admin_stats(self, actor, admin_id):
        return admin_id is not None and admin_id == actor.id

    def default_locales(self, actor, requested_locales):
        return list(requested_locales) if requested_locales else list(actor.locales)

    def mutable_fields(self, actor, changes):
        return {key: value for key, value in changes.items() if key not in ADMIN_STRIPPED_FIELDS}


class _SuperAdminRules(_DenyAllRules):
    """Unrestricted administrator."""

    def can_view(self, actor, target):
        return True

    def can_create(self, actor, desired_role, requested_locales):
        return True

    def can_mutate(self, actor, target, changes):
        return True

    def can_reset_password(self, actor, target):
        return True

    def can_toggle_status(self, actor, target):
        return True

    def can_delete(self, actor, target):
        return True

    def can_view_admin_stats(self, actor, admin_id):
        return True

    def can_manage_assignments(self, actor):
        return True


_RULES = {
    ROLE_SUPER_ADMIN: _SuperAdminRules(),
    ROLE_ADMIN: _AdminRules(),
    ROLE_USUARIO: _DenyAllRules(),
}


def _rules_for(actor: ActorContext) -> _DenyAllRules:
    return _RULES.get(actor.role, _RULES[ROLE_USUARIO])


# ─────────────────────────────────────────────────────────────────────────────
# Predicates
# ─────────────────────────────────────────────────────────────────────────────

def can_view(actor: ActorContext, target: dict) -> bool:
    """Check if actor may see the target user."""
    return _rules_for(actor).can_view(actor, target)


def can_create(actor: ActorContext, desired_role: str, requested_locales: Optional[list[str]] = None) -> bool:
    """Check if actor may create a user with the role in the given locations."""
    return _rules_for(actor).can_create(actor, desired_role, list(requested_locales or []))


def can_mutate(actor: ActorContext, target: dict, changes: dict) -> bool:
    """Check if actor may apply ``changes`` (after stripping) to the target."""
    if target.get("role") == ROLE_SUPER_ADMIN and not actor.is_super_admin:
        return False
    if changes.get("role") == ROLE_SUPER_ADMIN and not actor.is_super_admin:
        return False
    return _rules_for(actor).can_mutate(actor, target, changes)


def can_reset_password(actor: ActorContext, target: dict) -> bool:
    return _rules_for(actor).can_reset_password(actor, target)


def can_toggle_status(actor: ActorContext, target: dict) -> bool:
    return _rules_for(actor).can_toggle_status(actor, target)


def can_delete(actor: ActorContext, target: dict) -> bool:
    """Soft-delete is reserved to superAdmin."""
    return _rules_for(actor).can_delete(actor, target)


def can_view_admin_stats(actor: ActorContext, admin_id: Optional[str] = None) -> bool:
    """superAdmin sees every admin; an admin only its own figures.

    ``admin_id=None`` asks for the all-admins rollup.
    """
    return _rules_for(actor).can_view_admin_stats(actor, admin_id)


def can_manage_assignments(actor: ActorContext) -> bool:
    return _rules_for(actor).can_manage_assignments(actor)


def mutable_fields(actor: ActorContext, changes: dict) -> dict:
    """Return ``changes`` without the fields the actor may not touch.

    Admin actors lose ``role``, ``locales`` and ``localPrincipal`` silently.
    """
    return _rules_for(actor).mutable_fields(actor, changes)


def default_locales(actor: ActorContext, requested_locales: Optional[list[str]]) -> list[str]:
    """Locations for a new user; an admin's empty selection means all of its own."""
    return _rules_for(actor).default_locales(actor, list(requested_locales or []))


def scope_filters(actor: ActorContext, filters: dict, requested_local: Optional[str] = None) -> dict:
    """Fold the actor's visibility into a user query.

    Admin actors only ever see usuario-role users in their own locations; the
    restriction is part of the query, not a post-filter.
    """
    scoped = dict(filters)
    if requested_local:
        scoped["locales"] = requested_local

    if actor.is_super_admin:
        return scoped

    if not actor.is_admin:
        scoped["id"] = {"$in": []}
        return scoped

    requested_role = scoped.get("role")
    if requested_role not in (None, ROLE_USUARIO):
        scoped["role"] = {"$in": []}
    else:
        scoped["role"] = ROLE_USUARIO

    own = list(actor.locales)
    if requested_local:
        scoped["locales"] = requested_local if requested_local in own else {"$in": []}
    else:
        scoped["locales"] = {"$in": own}
    return scoped


# ─────────────────────────────────────────────────────────────────────────────
# Raising variants
# ─────────────────────────────────────────────────────────────────────────────

def ensure_can_view(actor: ActorContext, target: dict) -> None:
    if not can_view(actor, target):
        raise ForbiddenError("Not allowed to view this user")


def ensure_can_create(actor: ActorContext, desired_role: str, requested_locales: list[str]) -> None:
    if not actor.is_super_admin and not actor.is_admin:
        raise ForbiddenError("Not allowed to create users")
    if desired_role == ROLE_SUPER_ADMIN and not actor.is_super_admin:
        raise ForbiddenError("Only a superAdmin can assign the superAdmin role")
    if not can_create(actor, desired_role, requested_locales):
        if desired_role != ROLE_USUARIO:
            raise ForbiddenError(f"Not allowed to create users with role '{desired_role}'")
        raise ForbiddenError("Users can only be assigned to your own locations")


def ensure_can_mutate(actor: ActorContext, target: dict, changes: dict) -> None:
    if target.get("role") == ROLE_SUPER_ADMIN and not actor.is_super_admin:
        raise ForbiddenError("Not allowed to modify a superAdmin")
    if changes.get("role") == ROLE_SUPER_ADMIN and not actor.is_super_admin:
        raise ForbiddenError("Only a superAdmin can assign the superAdmin role")
    if not can_mutate(actor, target, changes):
        raise ForbiddenError("Not allowed to edit users outside your locations")


def ensure_can_reset_password(actor: ActorContext, target: dict) -> None:
    if not can_reset_password(actor, target):
        raise ForbiddenError("Not allowed to reset the password of this user")


def ensure_can_toggle_status(actor: ActorContext, target: dict) -> None:
    if not can_toggle_status(actor, target):
        raise ForbiddenError("Not allowed to change the status of this user")


def ensure_can_delete(actor: ActorContext, target: dict) -> None:
    if not can_delete(actor, target):
        raise ForbiddenError("Only a superAdmin can delete users")


def ensure_can_view_admin_stats(actor: ActorContext, admin_id: Optional[str] = None) -> None:
    if not can_view_admin_stats(actor, admin_id):
        raise ForbiddenError("Not allowed to view statistics of this administrator")


def ensure_can_manage_assignments(actor: ActorContext) -> None:
    if not can_manage_assignments(actor):
        raise ForbiddenError("Only a superAdmin can manage location assignments")
