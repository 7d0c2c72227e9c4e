import datetime

import pytest

from evolution_admin.core.exceptions import ConflictError
from evolution_admin.core.store import Database, SqlLocalStore, SqlUserStore

BASE = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)


@pytest.fixture()
def store(user_store):
    user_store.create({"id": "u1", "nombre": "Ana", "email": "ana@example.com", "role": "usuario",
                       "locales": ["L1"], "createdAt": BASE})
    user_store.create({"id": "u2", "nombre": "María", "email": "maria@example.com", "role": "usuario",
                       "locales": ["L1", "L2"], "createdAt": BASE + datetime.timedelta(days=1)})
    user_store.create({"id": "u3", "nombre": "Carla", "email": "carla@example.com", "role": "admin",
                       "locales": ["L2"], "activo": False, "createdAt": BASE + datetime.timedelta(days=2)})
    return user_store


def _ids(store, filters, **kwargs):
    return sorted(doc["id"] for doc in store.find(filters, include_inactive=True, **kwargs))


def test_locales_match_by_membership(store):
    assert _ids(store, {"locales": "L2"}) == ["u2", "u3"]
    assert _ids(store, {"locales": "L3"}) == []
    assert _ids(store, {"locales": {"$in": ["L3", "L1"]}}) == ["u1", "u2"]
    assert _ids(store, {"locales": {"$nin": ["L2"]}}) == ["u1"]
    assert _ids(store, {"locales": {"$in": []}}) == []


def test_operators(store):
    assert _ids(store, {"role": {"$ne": "usuario"}}) == ["u3"]
    assert _ids(store, {"role": {"$in": ["admin", "superAdmin"]}}) == ["u3"]
    assert _ids(store, {"createdAt": {"$gte": BASE + datetime.timedelta(days=1), "$lte": BASE + datetime.timedelta(days=1)}}) == ["u2"]
    assert _ids(store, {"ultimoAcceso": {"$gte": BASE}}) == []
    assert _ids(store, {"$or": [{"role": "admin"}, {"nombre": "Ana"}]}) == ["u1", "u3"]
    assert _ids(store, {"id": {"$in": []}}) == []


def test_icontains_is_case_insensitive_and_literal(store):
    assert _ids(store, {"nombre": {"$icontains": "MARÍ"}}) == ["u2"]
    assert _ids(store, {"email": {"$icontains": "EXAMPLE"}}) == ["u1", "u2", "u3"]
    assert _ids(store, {"nombre": {"$icontains": "%"}}) == []
    assert _ids(store, {"nombre": {"$icontains": "a_a"}}) == []


def test_unknown_field_or_operator_raises(store):
    with pytest.raises(ValueError):
        store.find({"missing": 1})
    with pytest.raises(ValueError):
        store.find({"nombre": {"$exists": True}})
    with pytest.raises(ValueError):
        store.find({"role": {"$icontains": "adm"}})


def test_inactive_hidden_unless_requested(store):
    assert store.count({}) == 2
    assert store.count({}, include_inactive=True) == 3
    assert store.count({"activo": False}) == 1


def test_find_sort_skip_limit(store):
    found = store.find({}, sort=[("createdAt", -1)], include_inactive=True, skip=1, limit=1)
    assert [doc["id"] for doc in found] == ["u2"]


def test_find_by_id_respects_include_inactive(store):
    assert store.find_by_id("u3")["nombre"] == "Carla"
    assert store.find_by_id("u3", include_inactive=False) is None
    assert store.find_by_id("nope") is None


def test_datetimes_come_back_as_utc(store):
    assert store.find_by_id("u1")["createdAt"] == BASE
    assert store.find_by_id("u1")["createdAt"].tzinfo is not None


def test_create_assigns_defaults(user_store):
    created = user_store.create({"nombre": "Nuevo", "email": "nuevo@example.com"})
    assert created["id"]
    assert created["activo"] is True
    assert created["role"] == "usuario"
    assert created["locales"] == []
    assert created["createdAt"] == created["updatedAt"]


def test_create_rejects_duplicate_id_and_email(store):
    with pytest.raises(ConflictError):
        store.create({"id": "u1", "email": "other@example.com"})
    with pytest.raises(ConflictError):
        store.create({"email": "ana@example.com"})
    assert store.count({}, include_inactive=True) == 3


def test_unknown_document_field_rejected(user_store):
    with pytest.raises(ValueError):
        user_store.create({"nombre": "X", "apodo": "x"})


def test_update_and_save(store):
    updated = store.update("u2", {"locales": ["L2", "L3"], "ultimaModificacion": {"usuario": "u1", "fecha": BASE}})
    assert updated["locales"] == ["L2", "L3"]
    assert updated["ultimaModificacion"] == {"usuario": "u1", "fecha": BASE}
    assert _ids(store, {"locales": "L1"}) == ["u1"]
    assert store.update("missing", {"nombre": "x"}) is None

    updated["telefono"] = "555"
    store.save(updated)
    assert store.find_by_id("u2")["telefono"] == "555"
    with pytest.raises(KeyError):
        store.save({"id": "missing"})


def test_transaction_is_reentrant_and_commits_together(store):
    with store.transaction():
        with store.transaction():
            store.update("u1", {"nombre": "Dentro"})
        assert store.find_by_id("u1")["nombre"] == "Dentro"
    assert store.find_by_id("u1")["nombre"] == "Dentro"


def test_transaction_rolls_back_on_error(store):
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.update("u1", {"nombre": "Perdido"})
            raise RuntimeError("guard failed")
    assert store.find_by_id("u1")["nombre"] == "Ana"


def test_location_lookup_inside_user_transaction_keeps_pending_writes(store, local_store):
    with store.transaction():
        store.update("u1", {"nombre": "Pendiente"})
        assert local_store.exists("L1")
    assert store.find_by_id("u1")["nombre"] == "Pendiente"


def test_data_survives_a_new_database_handle(tmp_path):
    url = f"sqlite:///{tmp_path / 'admin.db'}"
    first = Database.from_url(url)
    first.create_tables()
    SqlUserStore(first).create({"id": "u1", "nombre": "Ana", "email": "ana@example.com", "locales": ["L1"]})
    SqlLocalStore(first).upsert({"id": "L1", "nombre": "Centro"})
    first.engine.dispose()

    second = Database.from_url(url)
    second.create_tables()
    assert SqlUserStore(second).find_by_id("u1")["locales"] == ["L1"]
    assert SqlLocalStore(second).find_by_id("L1")["nombre"] == "Centro"
    second.engine.dispose()


def test_sql_local_store(local_store):
    assert local_store.exists("L1")
    assert not local_store.exists("L9")
    assert not local_store.exists("")

    local_store.upsert({"id": "L1", "nombre": "Centro Renovado"})
    assert local_store.find_by_id("L1") == {
        "id": "L1", "nombre": "Centro Renovado", "direccion": "Calle 1",
        "telefono": None, "email": None, "activo": True,
    }

    assert local_store.remove("L3") is True
    assert local_store.remove("L3") is False
    assert local_store.find_by_id("L3") is None

    with pytest.raises(ValueError):
        local_store.upsert({"id": "L9"})
