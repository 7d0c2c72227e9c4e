"""Stored user document -> public representation.

Credential fields never leave this module; location and user references are
resolved into small summaries.

Usage:
    transformer = UserTransformer(user_store, local_store)
    public = transformer.to_public(user_doc)
"""
from __future__ import annotations
import datetime
from typing import Any, Dict, Optional

from .store import LocalStore, UserStore

LOCAL_SUMMARY_FIELDS = ("nombre", "direccion", "telefono", "email")
PRIMARY_LOCAL_FIELDS = ("nombre", "direccion")


def to_iso(value):
    if isinstance(value, datetime.datetime):
        return value.isoformat()
    return value


class UserTransformer:
    """Builds sanitized projections, resolving references through the stores."""

    def __init__(self, users: UserStore, locales: LocalStore):
        self.users = users
        self.locales = locales

    def local_summary(self, local_id: Optional[str], fields=LOCAL_SUMMARY_FIELDS) -> Optional[dict]:
        if not local_id:
            return None
        local = self.locales.find_by_id(local_id)
        if local is None:
            return None
        summary = {"id": local_id}
        summary.update({field: local.get(field) for field in fields})
        return summary

    def user_summary(self, user_id: Optional[str]) -> Optional[dict]:
        if not user_id:
            return None
        user = self.users.find_by_id(user_id, include_inactive=True)
        if user is None:
            return None
        return {"id": user["id"], "nombre": user.get("nombre"), "email": user.get("email")}

    def to_public(self, user: Dict[str, Any], extra: Optional[dict] = None) -> Dict[str, Any]:
        """Convert a stored user into the response shape.

        Locations that no longer resolve are dropped from ``locales``.
        """
        locales = [
            summary
            for summary in (self.local_summary(local_id) for local_id in user.get("locales") or [])
            if summary is not None
        ]

        modification = user.get("ultimaModificacion")
        ultima_modificacion = None
        if modification:
            ultima_modificacion = {
                "usuario": self.user_summary(modification.get("usuario")),
                "fecha": to_iso(modification.get("fecha")),
            }

        public = {
            "id": user.get("id"),
            "nombre": user.get("nombre"),
            "email": user.get("email"),
            "role": user.get("role"),
            "telefono": user.get("telefono") or "",
            "direccion": user.get("direccion") or "",
            "organizacion": user.get("organizacion") or "",
            "permisos": user.get("permisos") or {},
            "esAdministradorLocal": bool(user.get("esAdministradorLocal")),
            "locales": locales,
            "localPrincipal": self.local_summary(user.get("localPrincipal"), PRIMARY_LOCAL_FIELDS),
            "imagenPerfil": user.get("imagenPerfil"),
            "verificado": bool(user.get("verificado")),
            "activo": bool(user.get("activo")),
            "enLinea": bool(user.get("enLinea")),
            "fechaCreacion": to_iso(user.get("createdAt")),
            "fechaActualizacion": to_iso(user.get("updatedAt")),
            "ultimaConexion": to_iso(user.get("ultimaConexion")),
            "ultimoAcceso": to_iso(user.get("ultimoAcceso")),
            "creadoPor": self.user_summary(user.get("creadoPor")),
            "ultimaModificacion": ultima_modificacion,
        }
        if extra:
            public.update(extra)
        return public
