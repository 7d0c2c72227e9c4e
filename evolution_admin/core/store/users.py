"""User persistence: store interface and its SQLAlchemy implementation.

Services speak in plain documents (dicts with camelCase keys) and a small
document-query filter syntax, compiled here into SQL:

    {"role": "admin"}                       equality (``locales`` matches by membership)
    {"role": {"$ne": "superAdmin"}}         $ne / $in / $nin / $gte / $lte
    {"nombre": {"$icontains": "ana"}}       literal, case-insensitive substring
    {"$or": [{...}, {...}]}
"""
from __future__ import annotations
import logging
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy import and_, false, func, not_, or_, select, true
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..exceptions import ConflictError
from .database import Database
from .tables import UserLocalRecord, UserRecord, utc_now

logger = logging.getLogger(__name__)


class UserStore:
    """Persistence contract used by the services.

    ``include_inactive=False`` hides documents with ``activo=False`` unless the
    filter itself constrains ``activo``.
    """

    def find(
        self,
        filters: dict,
        *,
        skip: int = 0,
        limit: Optional[int] = None,
        sort: Optional[list[tuple[str, int]]] = None,
        include_inactive: bool = False,
    ) -> list[dict]:
        raise NotImplementedError

    def count(self, filters: dict, *, include_inactive: bool = False) -> int:
        raise NotImplementedError

    def find_by_id(self, user_id: str, *, include_inactive: bool = True) -> Optional[dict]:
        raise NotImplementedError

    def find_one(self, filters: dict, *, include_inactive: bool = True) -> Optional[dict]:
        raise NotImplementedError

    def create(self, doc: dict) -> dict:
        raise NotImplementedError

    def update(self, user_id: str, changes: dict) -> Optional[dict]:
        raise NotImplementedError

    def save(self, doc: dict) -> dict:
        raise NotImplementedError

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Scope in which a guard check and its mutation run without interleaving."""
        yield


# ─────────────────────────────────────────────────────────────────────────────
# Document <-> record mapping
# ─────────────────────────────────────────────────────────────────────────────

# Document key -> UserRecord attribute
FIELD_COLUMNS = {
    "id": "id",
    "nombre": "nombre",
    "email": "email",
    "role": "role",
    "password": "password",
    "intentosFallidos": "intentos_fallidos",
    "bloqueadoHasta": "bloqueado_hasta",
    "passwordResetToken": "password_reset_token",
    "passwordResetExpires": "password_reset_expires",
    "localPrincipal": "local_principal",
    "esAdministradorLocal": "es_administrador_local",
    "telefono": "telefono",
    "direccion": "direccion",
    "organizacion": "organizacion",
    "permisos": "permisos",
    "imagenPerfil": "imagen_perfil",
    "verificado": "verificado",
    "activo": "activo",
    "enLinea": "en_linea",
    "ultimaConexion": "ultima_conexion",
    "ultimoAcceso": "ultimo_acceso",
    "creadoPor": "creado_por",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}

SEARCH_COLUMNS = {"nombre": "nombre_busqueda", "email": "email_busqueda"}


def _apply(record: UserRecord, doc: dict) -> None:
    for key, value in doc.items():
        if key == "locales":
            existing = {link.local_id: link for link in record.local_links}
            links = []
            for position, local_id in enumerate(value or []):
                link = existing.get(local_id) or UserLocalRecord(local_id=local_id)
                link.position = position
                links.append(link)
            record.local_links = links
        elif key == "ultimaModificacion":
            value = value or {}
            record.ultima_modificacion_por = value.get("usuario")
            record.ultima_modificacion_fecha = value.get("fecha")
        elif key in FIELD_COLUMNS:
            setattr(record, FIELD_COLUMNS[key], value)
        else:
            raise ValueError(f"Unknown user field: {key}")


def to_document(record: UserRecord) -> dict:
    doc = {key: getattr(record, attr) for key, attr in FIELD_COLUMNS.items()}
    doc["locales"] = [link.local_id for link in record.local_links]
    doc["ultimaModificacion"] = None
    if record.ultima_modificacion_por or record.ultima_modificacion_fecha:
        doc["ultimaModificacion"] = {
            "usuario": record.ultima_modificacion_por,
            "fecha": record.ultima_modificacion_fecha,
        }
    return doc


# ─────────────────────────────────────────────────────────────────────────────
# Filter compilation
# ─────────────────────────────────────────────────────────────────────────────

def _column(field: str):
    if field not in FIELD_COLUMNS:
        raise ValueError(f"Unsupported filter field: {field}")
    return getattr(UserRecord, FIELD_COLUMNS[field])


def _all(clauses: list):
    if not clauses:
        return true()
    return clauses[0] if len(clauses) == 1 else and_(*clauses)


def _has_local(condition):
    return UserRecord.local_links.any(condition)


def _locales_clause(condition: Any):
    if not isinstance(condition, dict):
        return _has_local(UserLocalRecord.local_id == condition)

    clauses = []
    for op, operand in condition.items():
        if op == "$in":
            clauses.append(_has_local(UserLocalRecord.local_id.in_(operand)) if operand else false())
        elif op == "$nin":
            if operand:
                clauses.append(not_(_has_local(UserLocalRecord.local_id.in_(operand))))
        elif op == "$ne":
            clauses.append(not_(_has_local(UserLocalRecord.local_id == operand)))
        else:
            raise ValueError(f"Unsupported filter operator for locales: {op}")
    return _all(clauses)


def _field_clause(field: str, condition: Any):
    if field == "locales":
        return _locales_clause(condition)

    column = _column(field)
    if not isinstance(condition, dict):
        return column.is_(None) if condition is None else column == condition

    clauses = []
    for op, operand in condition.items():
        if op == "$ne":
            # A missing value differs from any concrete one
            clauses.append(column.is_not(None) if operand is None else or_(column != operand, column.is_(None)))
        elif op == "$in":
            clauses.append(column.in_(operand))
        elif op == "$nin":
            clauses.append(or_(column.not_in(operand), column.is_(None)))
        elif op == "$gte":
            clauses.append(column >= operand)
        elif op == "$lte":
            clauses.append(column <= operand)
        elif op == "$icontains":
            if field not in SEARCH_COLUMNS:
                raise ValueError(f"Field {field} does not support $icontains")
            search_column = getattr(UserRecord, SEARCH_COLUMNS[field])
            clauses.append(search_column.contains(str(operand).casefold(), autoescape=True))
        else:
            raise ValueError(f"Unsupported filter operator: {op}")
    return _all(clauses)


def compile_filters(filters: dict) -> list:
    """Translate a filter document into SQLAlchemy WHERE clauses."""
    clauses = []
    for key, condition in filters.items():
        if key == "$or":
            clauses.append(or_(*[_all(compile_filters(clause)) for clause in condition]) if condition else false())
        else:
            clauses.append(_field_clause(key, condition))
    return clauses


def _scope(filters: dict, include_inactive: bool) -> dict:
    if include_inactive or "activo" in filters:
        return filters
    return {**filters, "activo": True}


# ─────────────────────────────────────────────────────────────────────────────
# SQLAlchemy store
# ─────────────────────────────────────────────────────────────────────────────

class SqlUserStore(UserStore):
    """User store on any SQLAlchemy-supported database.

    Session scope and locking come from the shared ``Database``; see
    ``Database.transaction``.

    Usage:
        store = SqlUserStore(Database.from_url("sqlite:///admin.db"))
        with store.transaction():
            if store.count({"role": "superAdmin", "activo": True}) > 1:
                store.update(user_id, {"activo": False})
    """

    def __init__(self, database: Database):
        self.database = database

    def _session(self):
        return self.database.session()

    def transaction(self):
        return self.database.transaction()

    def _get(self, session: Session, user_id: str) -> Optional[UserRecord]:
        return session.get(UserRecord, user_id)

    def _flush(self, session: Session, record: UserRecord) -> None:
        try:
            session.flush()
        except IntegrityError as e:
            logger.warning("User write rejected by database constraint | id=%s | email=%s", record.id, record.email)
            raise ConflictError(f"A user with email '{record.email}' or id '{record.id}' already exists") from e

    def find(self, filters, *, skip=0, limit=None, sort=None, include_inactive=False):
        stmt = select(UserRecord).where(*compile_filters(_scope(filters, include_inactive)))
        for field, direction in sort or []:
            column = _column(field)
            stmt = stmt.order_by(column.desc() if direction < 0 else column.asc())
        if skip:
            stmt = stmt.offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._session() as session:
            return [to_document(record) for record in session.scalars(stmt)]

    def count(self, filters, *, include_inactive=False):
        stmt = (
            select(func.count())
            .select_from(UserRecord)
            .where(*compile_filters(_scope(filters, include_inactive)))
        )
        with self._session() as session:
            return session.scalar(stmt) or 0

    def find_by_id(self, user_id, *, include_inactive=True):
        with self._session() as session:
            record = self._get(session, user_id)
            if record is None or (not include_inactive and not record.activo):
                return None
            return to_document(record)

    def find_one(self, filters, *, include_inactive=True):
        found = self.find(filters, limit=1, include_inactive=include_inactive)
        return found[0] if found else None

    def create(self, doc):
        now = utc_now()
        values = {
            "role": "usuario",
            "intentosFallidos": 0,
            "esAdministradorLocal": False,
            "verificado": False,
            "activo": True,
            "enLinea": False,
            "createdAt": now,
            "updatedAt": now,
            **doc,
        }
        values["id"] = values.get("id") or uuid.uuid4().hex

        with self._session() as session:
            if self._get(session, values["id"]) is not None:
                raise ConflictError(f"Duplicate user id '{values['id']}'")
            record = UserRecord()
            _apply(record, values)
            session.add(record)
            self._flush(session, record)
            logger.debug("Created user %s", record.id)
            return to_document(record)

    def update(self, user_id, changes):
        with self._session() as session:
            record = self._get(session, user_id)
            if record is None:
                return None
            _apply(record, {**changes, "updatedAt": utc_now()})
            self._flush(session, record)
            return to_document(record)

    def save(self, doc):
        with self._session() as session:
            record = self._get(session, doc.get("id"))
            if record is None:
                raise KeyError(f"User '{doc.get('id')}' does not exist")
            _apply(record, {**doc, "updatedAt": utc_now()})
            self._flush(session, record)
            return to_document(record)
