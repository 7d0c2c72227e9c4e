"""Location assignment for admin-role users (superAdmin only)."""

from __future__ import annotations
import datetime
import logging
from typing import Any, Optional

from evolution_admin import audit

from . import invariants, rbac
from .exceptions import ConflictError, InvalidInputError, NotFoundError, wrap_internal_errors
from .models import ActorContext, ROLE_ADMIN
from .store import LocalStore, UserStore

logger = logging.getLogger(__name__)


class AssignmentService:
    """Assign, remove and promote locations on an admin's ``locales`` list.

    The primary location always stays a member of ``locales``; removing it
    promotes the next remaining location.
    """

    def __init__(self, users: UserStore, locales: LocalStore):
        self.users = users
        self.locales = locales

    def _get_admin(self, admin_id: str) -> dict:
        admin = self.users.find_by_id(admin_id, include_inactive=True)
        if admin is None or admin.get("role") != ROLE_ADMIN:
            raise NotFoundError(f"Administrator with id '{admin_id}' not found")
        return admin

    def _save(self, actor: ActorContext, admin_id: str, locales: list[str], principal: Optional[str]) -> dict:
        updated = self.users.update(
            admin_id,
            {
                "locales": locales,
                "localPrincipal": principal,
                "esAdministradorLocal": bool(locales),
                "ultimaModificacion": {
                    "usuario": actor.id,
                    "fecha": datetime.datetime.now(datetime.timezone.utc),
                },
            },
        )
        return {
            "adminId": admin_id,
            "locales": updated.get("locales") or [],
            "localPrincipal": updated.get("localPrincipal"),
        }

    @wrap_internal_errors("assign_local")
    def assign_local(
        self,
        actor: ActorContext,
        admin_id: str,
        local_id: Any,
        correlation_id: Optional[str] = None,
    ) -> dict:
        """Append a location; the first location assigned becomes primary.

        Raises:
            ForbiddenError: If the actor is not a superAdmin
            NotFoundError: If the target is missing or not an admin
            InvalidInputError: If ``local_id`` is missing or unknown
            ConflictError: If the location is already assigned
        """
        rbac.ensure_can_manage_assignments(actor)
        if not isinstance(local_id, str) or not local_id.strip():
            raise InvalidInputError("localId is required")

        with self.users.transaction():
            admin = self._get_admin(admin_id)
            if not self.locales.exists(local_id):
                raise InvalidInputError(f"Location '{local_id}' does not exist")
            locales = list(admin.get("locales") or [])
            if local_id in locales:
                raise ConflictError("Location already assigned to this administrator")

            locales.append(local_id)
            principal = admin.get("localPrincipal") or locales[0]
            result = self._save(actor, admin_id, locales, principal)

        logger.info("Location assigned | admin=%s | local=%s | actor=%s", admin_id, local_id, actor.id)
        audit.safe_log_admin_event(
            "local_assign",
            admin_id,
            operator=actor.id,
            details={"local_id": local_id, "correlation_id": correlation_id},
        )
        return result

    @wrap_internal_errors("remove_local")
    def remove_local(
        self,
        actor: ActorContext,
        admin_id: str,
        local_id: str,
        correlation_id: Optional[str] = None,
    ) -> dict:
        """Remove a location; an admin never ends up with none."""
        rbac.ensure_can_manage_assignments(actor)

        with self.users.transaction():
            admin = self._get_admin(admin_id)
            locales = list(admin.get("locales") or [])
            if local_id not in locales:
                raise ConflictError("Location is not assigned to this administrator")
            invariants.ensure_has_local(ROLE_ADMIN, len(locales) - 1)

            locales.remove(local_id)
            principal = admin.get("localPrincipal")
            if principal == local_id or principal not in locales:
                principal = locales[0]
            result = self._save(actor, admin_id, locales, principal)

        logger.info("Location removed | admin=%s | local=%s | actor=%s", admin_id, local_id, actor.id)
        audit.safe_log_admin_event(
            "local_remove",
            admin_id,
            operator=actor.id,
            details={"local_id": local_id, "correlation_id": correlation_id},
        )
        return result

    @wrap_internal_errors("set_primary_local")
    def set_primary_local(
        self,
        actor: ActorContext,
        admin_id: str,
        local_id: str,
        correlation_id: Optional[str] = None,
    ) -> dict:
        rbac.ensure_can_manage_assignments(actor)

        with self.users.transaction():
            admin = self._get_admin(admin_id)
            locales = list(admin.get("locales") or [])
            if local_id not in locales:
                raise ConflictError("Location is not assigned to this administrator")
            result = self._save(actor, admin_id, locales, local_id)

        logger.info("Primary location set | admin=%s | local=%s | actor=%s", admin_id, local_id, actor.id)
        audit.safe_log_admin_event(
            "local_primary",
            admin_id,
            operator=actor.id,
            details={"local_id": local_id, "correlation_id": correlation_id},
        )
        return result
