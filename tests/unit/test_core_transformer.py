import datetime

from evolution_admin.core.credentials import CredentialService
from evolution_admin.core.models import CREDENTIAL_FIELDS
from evolution_admin.core.transformer import UserTransformer


def test_to_public_never_returns_credential_fields(user_store, local_store, make_user, credentials):
    stored_credentials = {**credentials.reset_fields("secret1"), "intentosFallidos": 3, "passwordResetToken": "tok"}
    user = make_user("usuario", ["L1"], **stored_credentials)

    public = UserTransformer(user_store, local_store).to_public(user)

    assert not set(CREDENTIAL_FIELDS) & set(public)


def test_to_public_resolves_references(user_store, local_store, make_user):
    creator = make_user("superAdmin", nombre="Root", email="root@example.com")
    when = datetime.datetime(2024, 5, 1, 12, 0, tzinfo=datetime.timezone.utc)
    user = make_user(
        "usuario",
        ["L1", "L404"],
        password="hash",
        creadoPor=creator["id"],
        ultimaModificacion={"usuario": creator["id"], "fecha": when},
    )

    public = UserTransformer(user_store, local_store).to_public(user)

    assert "password" not in public
    assert [local["id"] for local in public["locales"]] == ["L1"]
    assert public["locales"][0]["nombre"] == "Centro"
    assert public["localPrincipal"] == {"id": "L1", "nombre": "Centro", "direccion": "Calle 1"}
    assert public["creadoPor"] == {"id": creator["id"], "nombre": "Root", "email": "root@example.com"}
    assert public["ultimaModificacion"]["usuario"]["id"] == creator["id"]
    assert public["ultimaModificacion"]["fecha"] == "2024-05-01T12:00:00+00:00"
    assert public["fechaCreacion"].startswith("2024-01-01")


def test_to_public_handles_missing_references(user_store, local_store):
    public = UserTransformer(user_store, local_store).to_public(
        {"id": "u1", "nombre": "Sola", "creadoPor": "gone", "localPrincipal": "L404"}
    )
    assert public["creadoPor"] is None
    assert public["localPrincipal"] is None
    assert public["locales"] == []
    assert public["ultimaModificacion"] is None


def test_to_public_merges_extra(user_store, local_store):
    public = UserTransformer(user_store, local_store).to_public({"id": "a1"}, {"usuariosEnLocal": 4})
    assert public["usuariosEnLocal"] == 4


def test_credential_service_roundtrip():
    service = CredentialService(method="pbkdf2:sha256:1000")
    fields = service.reset_fields("secret1")
    assert fields["password"].startswith("pbkdf2:sha256")
    assert service.verify_password(fields["password"], "secret1")
    assert not service.verify_password(fields["password"], "wrong")
    assert not service.verify_password("", "secret1")
    assert fields["intentosFallidos"] == 0
    assert fields["bloqueadoHasta"] is None
