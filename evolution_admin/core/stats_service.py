"""Read-only statistics over admins and the usuarios in their locations."""

from __future__ import annotations
import datetime
from typing import Optional

from evolution_admin.config import AppConfig

from . import rbac
from .exceptions import NotFoundError, wrap_internal_errors
from .models import ActorContext, ROLE_ADMIN, ROLE_USUARIO
from .store import LocalStore, UserStore
from .transformer import UserTransformer, to_iso


def active_percentage(active: int, total: int) -> int:
    """Percentage rounded half-up; 0 for an empty location."""
    if total <= 0:
        return 0
    return int(active * 100 / total + 0.5)


class StatsService:
    def __init__(self, users: UserStore, locales: LocalStore, config: Optional[AppConfig] = None):
        self.users = users
        self.locales = locales
        self.config = config or AppConfig(demo_mode=False, jwt_secret="")
        self.transformer = UserTransformer(users, locales)

    def _usuarios_at(self, local_id: str) -> int:
        return self.users.count({"role": ROLE_USUARIO, "locales": local_id})

    def _primary_summary(self, admin: dict) -> Optional[dict]:
        return self.transformer.local_summary(admin.get("localPrincipal"), ("nombre",))

    @wrap_internal_errors("admin_stats")
    def admin_stats(self, actor: ActorContext) -> dict:
        """Per-admin totals for every active admin. superAdmin only."""
        rbac.ensure_can_view_admin_stats(actor)

        admins = self.users.find({"role": ROLE_ADMIN}, sort=[("createdAt", 1)])
        rows = []
        for admin in admins:
            local_ids = admin.get("locales") or []
            rows.append({
                "id": admin["id"],
                "nombre": admin.get("nombre"),
                "email": admin.get("email"),
                "totalLocales": len(local_ids),
                "totalUsuarios": sum(self._usuarios_at(local_id) for local_id in local_ids),
                "localPrincipal": self._primary_summary(admin),
                "ultimoAcceso": to_iso(admin.get("ultimoAcceso")),
            })

        return {"totalAdmins": len(rows), "admins": rows}

    @wrap_internal_errors("admin_detail_stats")
    def admin_detail_stats(self, actor: ActorContext, admin_id: str) -> dict:
        """Per-location breakdown for one admin.

        An admin actor may only request its own figures.

        Raises:
            ForbiddenError: If the actor may not see this admin
            NotFoundError: If the target is missing or not an admin
        """
        rbac.ensure_can_view_admin_stats(actor, admin_id)

        admin = self.users.find_by_id(admin_id, include_inactive=True)
        if admin is None or admin.get("role") != ROLE_ADMIN:
            raise NotFoundError(f"Administrator with id '{admin_id}' not found")

        since = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(
            days=self.config.stats_active_window_days
        )

        locales_stats = []
        for local_id in admin.get("locales") or []:
            local = self.locales.find_by_id(local_id)
            if local is None:
                continue
            base = {"role": ROLE_USUARIO, "locales": local_id}
            total = self.users.count(base)
            active = self.users.count({**base, "ultimoAcceso": {"$gte": since}})
            recent = self.users.find(
                base,
                sort=[("createdAt", -1)],
                limit=self.config.stats_recent_users,
            )
            locales_stats.append({
                "id": local_id,
                "nombre": local.get("nombre"),
                "direccion": local.get("direccion"),
                "activo": local.get("activo", True),
                "estadisticas": {
                    "totalUsuarios": total,
                    "usuariosActivos": active,
                    "porcentajeActivos": active_percentage(active, total),
                },
                "ultimosUsuarios": [
                    {
                        "id": user["id"],
                        "nombre": user.get("nombre"),
                        "email": user.get("email"),
                        "createdAt": to_iso(user.get("createdAt")),
                        "ultimoAcceso": to_iso(user.get("ultimoAcceso")),
                    }
                    for user in recent
                ],
            })

        public = self.transformer.to_public(admin)
        return {
            "id": admin["id"],
            "nombre": admin.get("nombre"),
            "email": admin.get("email"),
            "telefono": admin.get("telefono") or "",
            "activo": bool(admin.get("activo")),
            "enLinea": bool(admin.get("enLinea")),
            "ultimoAcceso": to_iso(admin.get("ultimoAcceso")),
            "createdAt": to_iso(admin.get("createdAt")),
            "creadoPor": public["creadoPor"],
            "ultimaModificacion": public["ultimaModificacion"],
            "estadisticas": {
                "totalLocales": len(admin.get("locales") or []),
                "totalUsuarios": sum(item["estadisticas"]["totalUsuarios"] for item in locales_stats),
                "localPrincipal": self._primary_summary(admin),
            },
            "locales": locales_stats,
        }
