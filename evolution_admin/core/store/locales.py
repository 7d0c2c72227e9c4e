"""Location ("local") lookup.

Locations live either in the local database (``locales`` table) or in an
external directory service; the core only resolves them by id.
"""
from __future__ import annotations
import logging
from typing import Optional

import requests

from ..exceptions import LocalDirectoryError
from .database import Database
from .tables import LocalRecord

REQUEST_TIMEOUT = 5
LOCAL_FIELDS = ("id", "nombre", "direccion", "telefono", "email", "activo")

logger = logging.getLogger(__name__)


class LocalStore:
    """Lookup contract for location records."""

    def find_by_id(self, local_id: str) -> Optional[dict]:
        raise NotImplementedError

    def exists(self, local_id: str) -> bool:
        return self.find_by_id(local_id) is not None


class SqlLocalStore(LocalStore):
    """Location table in the application database.

    Usage:
        store = SqlLocalStore(database)
        store.upsert({"id": "L1", "nombre": "Centro", "direccion": "Calle 1"})
        store.find_by_id("L1")
    """

    def __init__(self, database: Database):
        self.database = database

    @staticmethod
    def _to_dict(record: LocalRecord) -> dict:
        return {field: getattr(record, field) for field in LOCAL_FIELDS}

    def find_by_id(self, local_id):
        if not local_id:
            return None
        with self.database.session() as session:
            record = session.get(LocalRecord, local_id)
            return self._to_dict(record) if record else None

    def upsert(self, local: dict) -> dict:
        """Insert or replace a location record; ``id`` and ``nombre`` are required."""
        if not local.get("id") or not local.get("nombre"):
            raise ValueError("A location needs an id and a nombre")
        with self.database.session() as session:
            record = session.get(LocalRecord, local["id"]) or LocalRecord(id=local["id"])
            for field in LOCAL_FIELDS[1:]:
                if field in local:
                    setattr(record, field, local[field])
            if record.activo is None:
                record.activo = True
            session.add(record)
            session.flush()
            logger.info("Location stored | id=%s | nombre=%s", record.id, record.nombre)
            return self._to_dict(record)

    def remove(self, local_id: str) -> bool:
        with self.database.session() as session:
            record = session.get(LocalRecord, local_id)
            if record is None:
                return False
            session.delete(record)
            return True


class HttpLocalStore(LocalStore):
    """HTTP client for the location directory service.

    Usage:
        store = HttpLocalStore("http://locales:8000", token="...")
        store.find_by_id("64f0c2...")   # -> {"id": ..., "nombre": ...} or None
    """

    def __init__(self, base_url: str, token: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        self._token = token

    def find_by_id(self, local_id):
        if not local_id or "/" in local_id:
            return None

        url = f"{self.base_url}/locales/{local_id}"
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        resp = requests.get(url, headers=headers, timeout=REQUEST_TIMEOUT)
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise LocalDirectoryError(resp.status_code, resp.text, url)

        payload = resp.json()
        # Directory answers either the bare record or {"data": record}
        local = payload.get("data", payload) if isinstance(payload, dict) else None
        if not isinstance(local, dict):
            logger.warning("Unexpected payload from location directory for %s", local_id)
            return None
        local.setdefault("id", local.get("_id", local_id))
        return local
