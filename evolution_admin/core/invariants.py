"""Cardinality guards for the administrative hierarchy.

Callers query the counts immediately before the mutation, inside the store's
transaction scope, and pass them in. Deactivation guards count the active
users as they stand before the action, whatever the target's own state.
"""
from __future__ import annotations
from typing import Optional

from .exceptions import InvariantViolationError
from .models import ROLE_ADMIN

MAX_SUPER_ADMINS = 4


def can_create_super_admin(current_count: int, max_super_admins: int = MAX_SUPER_ADMINS) -> bool:
    """Active and inactive superAdmins both count toward the cap."""
    return current_count < max_super_admins


def can_promote_to_super_admin(
    current_count: int,
    was_already_super_admin: bool,
    max_super_admins: int = MAX_SUPER_ADMINS,
) -> bool:
    if was_already_super_admin:
        return True
    return can_create_super_admin(current_count, max_super_admins)


def can_deactivate_or_delete_super_admin(active_count: int) -> bool:
    return active_count > 1


def can_deactivate_or_delete_admin_for_local(active_admin_count_at_local: int) -> bool:
    return active_admin_count_at_local > 1


def requires_at_least_one_local(role: str, resulting_local_count: int) -> bool:
    """Return True when the resulting state is acceptable."""
    if role != ROLE_ADMIN:
        return True
    return resulting_local_count > 0


# ─────────────────────────────────────────────────────────────────────────────
# Raising variants
# ─────────────────────────────────────────────────────────────────────────────

def ensure_super_admin_capacity(current_count: int, max_super_admins: int = MAX_SUPER_ADMINS) -> None:
    if not can_create_super_admin(current_count, max_super_admins):
        raise InvariantViolationError(
            f"Cannot have more than {max_super_admins} superAdmins in the system"
        )


def ensure_can_promote(
    current_count: int,
    was_already_super_admin: bool,
    max_super_admins: int = MAX_SUPER_ADMINS,
) -> None:
    if not can_promote_to_super_admin(current_count, was_already_super_admin, max_super_admins):
        raise InvariantViolationError(
            f"Cannot have more than {max_super_admins} superAdmins in the system"
        )


def ensure_super_admin_remains(active_count: int) -> None:
    if not can_deactivate_or_delete_super_admin(active_count):
        raise InvariantViolationError("Cannot remove the last active superAdmin of the system")


def ensure_admin_remains(active_admin_count_at_local: int, local_name: Optional[str] = None) -> None:
    if not can_deactivate_or_delete_admin_for_local(active_admin_count_at_local):
        label = f" '{local_name}'" if local_name else ""
        raise InvariantViolationError(f"Cannot remove the only active administrator of location{label}")


def ensure_has_local(role: str, resulting_local_count: int) -> None:
    if not requires_at_least_one_local(role, resulting_local_count):
        raise InvariantViolationError("An administrator must be assigned at least one location")
