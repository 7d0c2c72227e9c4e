"""SQLAlchemy tables for users, their location links and the location directory.

Table: usuarios          one row per account
Table: usuario_locales   ordered location membership (position 0 first)
Table: locales           location records when no external directory is used
"""
from __future__ import annotations
import datetime
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, JSON, String, TypeDecorator
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, validates


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, returns aware UTC on every backend."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=datetime.timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""


class UserLocalRecord(Base):
    __tablename__ = "usuario_locales"

    usuario_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("usuarios.id", ondelete="CASCADE"), primary_key=True
    )
    local_id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class UserRecord(Base):
    """
    One account. Column names are snake_case; the store maps them to the
    camelCase document keys the services use.

    ``nombre_busqueda`` and ``email_busqueda`` hold case-folded copies for
    case-insensitive search independent of database collation.
    """

    __tablename__ = "usuarios"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    nombre: Mapped[Optional[str]] = mapped_column(String(100))
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, index=True)
    nombre_busqueda: Mapped[Optional[str]] = mapped_column(String(100))
    email_busqueda: Mapped[Optional[str]] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(20), default="usuario", nullable=False, index=True)

    # Credentials
    password: Mapped[Optional[str]] = mapped_column(String(255))
    intentos_fallidos: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    bloqueado_hasta: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)
    password_reset_token: Mapped[Optional[str]] = mapped_column(String(255))
    password_reset_expires: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)

    # Locations
    local_principal: Mapped[Optional[str]] = mapped_column(String(64))
    es_administrador_local: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    local_links: Mapped[list[UserLocalRecord]] = relationship(
        order_by=UserLocalRecord.position,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    # Profile
    telefono: Mapped[Optional[str]] = mapped_column(String(30))
    direccion: Mapped[Optional[str]] = mapped_column(String(255))
    organizacion: Mapped[Optional[str]] = mapped_column(String(255))
    permisos: Mapped[Optional[Any]] = mapped_column(JSON)
    imagen_perfil: Mapped[Optional[str]] = mapped_column(String(500))

    # Status
    verificado: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    activo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    en_linea: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ultima_conexion: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)
    ultimo_acceso: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)

    # Provenance
    creado_por: Mapped[Optional[str]] = mapped_column(String(32))
    ultima_modificacion_por: Mapped[Optional[str]] = mapped_column(String(32))
    ultima_modificacion_fecha: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)

    @validates("nombre", "email")
    def _fold_search_copy(self, key, value):
        folded = value.casefold() if isinstance(value, str) else None
        setattr(self, f"{key}_busqueda", folded)
        return value

    def __repr__(self) -> str:
        return f"<UserRecord(id={self.id}, email={self.email}, role={self.role})>"


class LocalRecord(Base):
    __tablename__ = "locales"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    nombre: Mapped[str] = mapped_column(String(100), nullable=False)
    direccion: Mapped[Optional[str]] = mapped_column(String(255))
    telefono: Mapped[Optional[str]] = mapped_column(String(30))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    activo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<LocalRecord(id={self.id}, nombre={self.nombre})>"
