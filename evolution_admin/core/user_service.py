"""
User Lifecycle Service

Create, list, update, deactivate and reset users on behalf of an authenticated
actor. Every operation follows the same path:

    policy (rbac) -> guards (invariants) -> mutation (store) -> audit

Guards that depend on counts run inside ``users.transaction()`` together with
the mutation they protect.
"""

from __future__ import annotations
import datetime
import logging
import math
from typing import Any, Optional

from evolution_admin import audit
from evolution_admin.config import AppConfig

from . import invariants, rbac
from .credentials import CredentialService
from .exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    wrap_internal_errors,
)
from .models import (
    ActorContext,
    CREDENTIAL_FIELDS,
    ROLE_ADMIN,
    ROLE_SUPER_ADMIN,
    ROLE_USUARIO,
)
from .store import LocalStore, UserStore
from .transformer import UserTransformer
from .validators import (
    parse_bool,
    parse_positive_int,
    validate_email,
    validate_local_ids,
    validate_name,
    validate_password,
    validate_role,
)

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("telefono", "direccion", "organizacion", "permisos", "imagenPerfil")
UPDATABLE_FIELDS = ("nombre", "email", "role", "locales", "localPrincipal") + PROFILE_FIELDS
SYSTEM_FIELDS = (
    "id",
    "creadoPor",
    "createdAt",
    "updatedAt",
    "ultimaModificacion",
    "esAdministradorLocal",
    "activo",
    "enLinea",
)


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _stamp(actor_id: Optional[str]) -> dict:
    return {"usuario": actor_id, "fecha": _now()}


class UserService:
    """Administrative operations on user accounts."""

    def __init__(
        self,
        users: UserStore,
        locales: LocalStore,
        credentials: Optional[CredentialService] = None,
        config: Optional[AppConfig] = None,
    ):
        self.users = users
        self.locales = locales
        self.credentials = credentials or CredentialService()
        self.config = config or AppConfig(demo_mode=False, jwt_secret="")
        self.transformer = UserTransformer(users, locales)

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    def _get_target(self, user_id: str) -> dict:
        target = self.users.find_by_id(user_id, include_inactive=True)
        if target is None:
            raise NotFoundError(f"User with id '{user_id}' not found")
        return target

    def _ensure_locales_exist(self, local_ids: list[str]) -> None:
        for local_id in local_ids:
            if not self.locales.exists(local_id):
                raise InvalidInputError(f"Location '{local_id}' does not exist")

    def _local_name(self, local_id: str) -> Optional[str]:
        local = self.locales.find_by_id(local_id)
        return local.get("nombre") if local else None

    def _ensure_email_available(self, email: str, exclude_id: Optional[str] = None) -> None:
        existing = self.users.find_one({"email": email}, include_inactive=True)
        if existing and existing["id"] != exclude_id:
            raise ConflictError(f"A user with email '{email}' already exists")

    def _ensure_admins_remain(self, local_ids) -> None:
        """Each location must keep an active admin once ``local_ids`` lose this one."""
        for local_id in local_ids:
            count = self.users.count(
                {"role": ROLE_ADMIN, "locales": local_id, "activo": True},
                include_inactive=True,
            )
            invariants.ensure_admin_remains(count, self._local_name(local_id))

    def _ensure_super_admin_remains(self) -> None:
        count = self.users.count({"role": ROLE_SUPER_ADMIN, "activo": True}, include_inactive=True)
        invariants.ensure_super_admin_remains(count)

    def _guard_deactivation(self, target: dict) -> None:
        """Guards for delete/disable, counted on the state before the action."""
        if target.get("role") == ROLE_SUPER_ADMIN:
            self._ensure_super_admin_remains()
        elif target.get("role") == ROLE_ADMIN:
            self._ensure_admins_remain(target.get("locales") or [])

    def _guard_role_or_local_change(self, target: dict, new_role: str, resulting_locales: list[str]) -> None:
        current_role = target.get("role")
        if current_role == ROLE_SUPER_ADMIN and new_role != ROLE_SUPER_ADMIN:
            self._ensure_super_admin_remains()
        if current_role == ROLE_ADMIN:
            current_locales = target.get("locales") or []
            if new_role != ROLE_ADMIN:
                dropped = current_locales
            else:
                dropped = [local_id for local_id in current_locales if local_id not in resulting_locales]
            self._ensure_admins_remain(dropped)

    def _super_admin_count(self) -> int:
        return self.users.count({"role": ROLE_SUPER_ADMIN}, include_inactive=True)

    def _active_usuarios_at(self, local_ids) -> int:
        return sum(
            self.users.count({"role": ROLE_USUARIO, "locales": local_id, "activo": True}, include_inactive=True)
            for local_id in local_ids
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────────

    @wrap_internal_errors("list_users")
    def list_users(self, actor: ActorContext, query: Optional[dict] = None) -> dict:
        """List users visible to the actor, newest first.

        Args:
            actor: Authenticated caller
            query: page, limit, role, local, activo, search

        Returns:
            {"users": [...], "pagination": {total, page, limit, pages}}

        Raises:
            ForbiddenError: If the actor has no administrative role
            InvalidInputError: On malformed pagination or filter values
        """
        if not (actor.is_super_admin or actor.is_admin):
            raise ForbiddenError("Not allowed to list users")

        query = query or {}
        page = parse_positive_int(query.get("page"), "page", 1)
        limit = parse_positive_int(
            query.get("limit"), "limit", self.config.default_page_limit, self.config.max_page_limit
        )

        filters: dict[str, Any] = {}
        if query.get("role"):
            filters["role"] = validate_role(query["role"])
        activo = parse_bool(query.get("activo"), "activo")
        if activo is not None:
            filters["activo"] = activo
        search = (query.get("search") or "").strip()
        if search:
            filters["$or"] = [
                {"nombre": {"$icontains": search}},
                {"email": {"$icontains": search}},
            ]

        filters = rbac.scope_filters(actor, filters, query.get("local") or None)

        total = self.users.count(filters, include_inactive=True)
        docs = self.users.find(
            filters,
            skip=(page - 1) * limit,
            limit=limit,
            sort=[("createdAt", -1)],
            include_inactive=True,
        )

        results = []
        for doc in docs:
            extra = None
            if doc.get("role") == ROLE_ADMIN:
                local_ids = doc.get("locales") or []
                extra = {"usuariosEnLocal": self._active_usuarios_at(local_ids) if local_ids else None}
            results.append(self.transformer.to_public(doc, extra))

        return {
            "users": results,
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "pages": math.ceil(total / limit) if total else 0,
            },
        }

    @wrap_internal_errors("get_user")
    def get_user(self, actor: ActorContext, user_id: str) -> dict:
        target = self._get_target(user_id)
        rbac.ensure_can_view(actor, target)
        return self.transformer.to_public(target)

    # ─────────────────────────────────────────────────────────────────────────
    # Mutations
    # ─────────────────────────────────────────────────────────────────────────

    @wrap_internal_errors("create_user")
    def create_user(self, actor: ActorContext, payload: dict, correlation_id: Optional[str] = None) -> dict:
        """Create a user on behalf of the actor.

        Check order: policy, superAdmin cap, email uniqueness.

        Raises:
            InvalidInputError: On missing fields or unknown locations
            ForbiddenError: If the actor may not create this role/locations
            InvariantViolationError: If the superAdmin cap is reached
            ConflictError: If the email is already registered
        """
        if not isinstance(payload, dict):
            raise InvalidInputError("Request body must be a JSON object")

        nombre = validate_name(payload.get("nombre"))
        email = validate_email(payload.get("email"))
        password = validate_password(payload.get("password"))
        role = validate_role(payload.get("role") or ROLE_USUARIO)
        requested = validate_local_ids(payload.get("locales"))

        rbac.ensure_can_create(actor, role, requested)
        self._ensure_locales_exist(requested)
        locales = rbac.default_locales(actor, requested)

        with self.users.transaction():
            if role == ROLE_SUPER_ADMIN:
                invariants.ensure_super_admin_capacity(self._super_admin_count(), self.config.max_super_admins)
            self._ensure_email_available(email)

            doc = {
                "nombre": nombre,
                "email": email,
                "role": role,
                "locales": locales,
                "localPrincipal": locales[0] if locales else None,
                "esAdministradorLocal": role == ROLE_ADMIN and bool(locales),
                "verificado": True,
                "activo": True,
                "enLinea": False,
                "creadoPor": actor.id,
                "ultimaModificacion": _stamp(actor.id),
            }
            for field in PROFILE_FIELDS:
                if payload.get(field) is not None:
                    doc[field] = payload[field]
            doc.update(self.credentials.reset_fields(password))
            created = self.users.create(doc)

        logger.info("User created | id=%s | role=%s | actor=%s", created["id"], role, actor.id)
        audit.safe_log_admin_event(
            "user_create",
            created["id"],
            operator=actor.id,
            details={"email": email, "role": role, "locales": locales, "correlation_id": correlation_id},
        )
        return self.transformer.to_public(created)

    @wrap_internal_errors("update_user")
    def update_user(
        self,
        actor: ActorContext,
        user_id: str,
        payload: dict,
        correlation_id: Optional[str] = None,
    ) -> dict:
        """Apply a partial update.

        Admin actors silently lose ``role``, ``locales`` and ``localPrincipal``.
        Credential and system fields are never written through this path.

        Raises:
            NotFoundError: If the target does not exist
            ForbiddenError: If the actor may not edit the target
            InvariantViolationError: On superAdmin cap, last superAdmin,
                last admin of a location, or admin left without locations
            InvalidInputError: On malformed fields or unknown locations
            ConflictError: If the new email is taken
        """
        if not isinstance(payload, dict):
            raise InvalidInputError("Request body must be a JSON object")

        with self.users.transaction():
            target = self._get_target(user_id)

            changes = {
                key: value
                for key, value in payload.items()
                if key in UPDATABLE_FIELDS and key not in CREDENTIAL_FIELDS and key not in SYSTEM_FIELDS
            }
            changes = rbac.mutable_fields(actor, changes)
            rbac.ensure_can_mutate(actor, target, changes)

            if "nombre" in changes:
                changes["nombre"] = validate_name(changes["nombre"])
            if "email" in changes:
                changes["email"] = validate_email(changes["email"])
                self._ensure_email_available(changes["email"], exclude_id=user_id)
            if "role" in changes:
                changes["role"] = validate_role(changes["role"])
            if "locales" in changes:
                changes["locales"] = validate_local_ids(changes["locales"])

            current_role = target.get("role", ROLE_USUARIO)
            new_role = changes.get("role", current_role)
            resulting_locales = changes.get("locales", target.get("locales") or [])

            if new_role == ROLE_SUPER_ADMIN and current_role != ROLE_SUPER_ADMIN:
                invariants.ensure_can_promote(self._super_admin_count(), False, self.config.max_super_admins)

            self._guard_role_or_local_change(target, new_role, resulting_locales)

            if new_role == ROLE_ADMIN and ("role" in changes or "locales" in changes):
                invariants.ensure_has_local(new_role, len(resulting_locales))

            if "locales" in changes:
                self._ensure_locales_exist(changes["locales"])
                changes["localPrincipal"] = resulting_locales[0] if resulting_locales else None
            elif "localPrincipal" in changes:
                principal = changes["localPrincipal"]
                if principal is None and resulting_locales:
                    raise InvalidInputError("localPrincipal cannot be cleared while locations are assigned")
                if principal is not None and principal not in resulting_locales:
                    raise InvalidInputError("localPrincipal must be one of the assigned locations")

            changes["esAdministradorLocal"] = new_role == ROLE_ADMIN and bool(resulting_locales)
            changes["ultimaModificacion"] = _stamp(actor.id)
            updated = self.users.update(user_id, changes)

        if updated is None:
            raise NotFoundError(f"User with id '{user_id}' not found")

        logger.info("User updated | id=%s | fields=%s | actor=%s", user_id, sorted(changes), actor.id)
        audit.safe_log_admin_event(
            "user_update",
            user_id,
            operator=actor.id,
            details={
                "fields": sorted(key for key in changes if key not in ("ultimaModificacion", "esAdministradorLocal")),
                "role": new_role,
                "correlation_id": correlation_id,
            },
        )
        return self.transformer.to_public(updated)

    @wrap_internal_errors("delete_user")
    def delete_user(self, actor: ActorContext, user_id: str, correlation_id: Optional[str] = None) -> dict:
        """Soft-delete (activo=False). superAdmin only."""
        if not actor.is_super_admin:
            raise ForbiddenError("Only a superAdmin can delete users")

        with self.users.transaction():
            target = self._get_target(user_id)
            rbac.ensure_can_delete(actor, target)
            self._guard_deactivation(target)
            updated = self.users.update(
                user_id,
                {"activo": False, "enLinea": False, "ultimaModificacion": _stamp(actor.id)},
            )

        logger.info("User deactivated | id=%s | actor=%s", user_id, actor.id)
        audit.safe_log_admin_event(
            "user_delete",
            user_id,
            operator=actor.id,
            details={"role": target.get("role"), "correlation_id": correlation_id},
        )
        return self.transformer.to_public(updated)

    @wrap_internal_errors("reset_password")
    def reset_password(
        self,
        actor: ActorContext,
        user_id: str,
        new_password: Any,
        correlation_id: Optional[str] = None,
    ) -> dict:
        password = validate_password(new_password, "newPassword")

        with self.users.transaction():
            target = self._get_target(user_id)
            rbac.ensure_can_reset_password(actor, target)
            changes = self.credentials.reset_fields(password)
            changes["ultimaModificacion"] = _stamp(actor.id)
            updated = self.users.update(user_id, changes)

        logger.info("Password reset | id=%s | actor=%s", user_id, actor.id)
        audit.safe_log_admin_event(
            "password_reset",
            user_id,
            operator=actor.id,
            details={"correlation_id": correlation_id},
        )
        return self.transformer.to_public(updated)

    @wrap_internal_errors("toggle_status")
    def toggle_status(
        self,
        actor: ActorContext,
        user_id: str,
        activo: Any,
        correlation_id: Optional[str] = None,
    ) -> dict:
        """Enable or disable a user.

        Disabling runs the same guards as delete and forces ``enLinea=False``.
        """
        if not isinstance(activo, bool):
            raise InvalidInputError("activo must be a boolean")

        with self.users.transaction():
            target = self._get_target(user_id)
            rbac.ensure_can_toggle_status(actor, target)

            changes: dict[str, Any] = {"activo": activo, "ultimaModificacion": _stamp(actor.id)}
            if not activo:
                self._guard_deactivation(target)
                changes["enLinea"] = False
            updated = self.users.update(user_id, changes)

        logger.info("User status changed | id=%s | activo=%s | actor=%s", user_id, activo, actor.id)
        audit.safe_log_admin_event(
            "status_toggle",
            user_id,
            operator=actor.id,
            details={"activo": activo, "correlation_id": correlation_id},
        )
        return self.transformer.to_public(updated)

    @wrap_internal_errors("init_super_admin")
    def init_super_admin(
        self,
        actor: Optional[ActorContext],
        payload: dict,
        correlation_id: Optional[str] = None,
    ) -> dict:
        """Create a superAdmin, bootstrapping the system when none exists.

        With zero superAdmins no actor is needed. Afterwards only an
        authenticated superAdmin may call this, through the capped creation
        path.
        """
        if not isinstance(payload, dict):
            raise InvalidInputError("Request body must be a JSON object")

        with self.users.transaction():
            count = self._super_admin_count()
            invariants.ensure_super_admin_capacity(count, self.config.max_super_admins)

            if count > 0:
                if actor is None or not actor.is_super_admin:
                    raise ForbiddenError("A superAdmin already exists; authenticate as superAdmin to add another")
                return self.create_user(actor, {**payload, "role": ROLE_SUPER_ADMIN}, correlation_id)

            return self._bootstrap_super_admin(payload, correlation_id)

    def _bootstrap_super_admin(self, payload: dict, correlation_id: Optional[str]) -> dict:
        nombre = validate_name(payload.get("nombre"))
        email = validate_email(payload.get("email"))
        password = validate_password(payload.get("password"))
        self._ensure_email_available(email)

        doc = {
            "nombre": nombre,
            "email": email,
            "role": ROLE_SUPER_ADMIN,
            "locales": [],
            "localPrincipal": None,
            "esAdministradorLocal": False,
            "verificado": True,
            "activo": True,
            "enLinea": False,
            "creadoPor": None,
            "ultimaModificacion": _stamp(None),
        }
        for field in PROFILE_FIELDS:
            if payload.get(field) is not None:
                doc[field] = payload[field]
        doc.update(self.credentials.reset_fields(password))
        created = self.users.create(doc)

        logger.info("Initial superAdmin created | id=%s", created["id"])
        audit.safe_log_admin_event(
            "superadmin_init",
            created["id"],
            operator="system",
            details={"email": email, "correlation_id": correlation_id},
        )
        return self.transformer.to_public(created)
