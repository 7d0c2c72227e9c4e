import pytest

from evolution_admin.core import rbac
from evolution_admin.core.exceptions import ForbiddenError
from evolution_admin.core.models import ActorContext

SUPER = ActorContext(id="s1", role="superAdmin")
ADMIN = ActorContext(id="a1", role="admin", locales=("L1",))
USUARIO = ActorContext(id="u0", role="usuario", locales=("L1",))


def _user(role="usuario", locales=("L1",)):
    return {"id": "t1", "role": role, "locales": list(locales)}


@pytest.mark.parametrize(
    "target,expected",
    [
        (_user("usuario", ["L1"]), True),
        (_user("usuario", ["L2", "L1"]), True),
        (_user("usuario", ["L2"]), False),
        (_user("admin", ["L1"]), False),
        (_user("superAdmin", ["L1"]), False),
    ],
)
def test_admin_can_view_only_usuarios_in_own_locations(target, expected):
    assert rbac.can_view(ADMIN, target) is expected


def test_super_admin_can_view_everything():
    assert rbac.can_view(SUPER, _user("superAdmin", []))
    assert rbac.can_view(SUPER, _user("admin", ["L9"]))


def test_usuario_can_do_nothing():
    target = _user()
    assert not rbac.can_view(USUARIO, target)
    assert not rbac.can_create(USUARIO, "usuario", ["L1"])
    assert not rbac.can_mutate(USUARIO, target, {})
    assert not rbac.can_reset_password(USUARIO, target)
    assert not rbac.can_toggle_status(USUARIO, target)
    assert not rbac.can_delete(USUARIO, target)
    assert not rbac.can_view_admin_stats(USUARIO, "u0")


@pytest.mark.parametrize(
    "role,locales,expected",
    [
        ("usuario", ["L1"], True),
        ("usuario", [], True),
        ("usuario", ["L1", "L2"], False),
        ("admin", ["L1"], False),
        ("superAdmin", [], False),
    ],
)
def test_admin_create_scope(role, locales, expected):
    assert rbac.can_create(ADMIN, role, locales) is expected


def test_ensure_can_create_messages_distinguish_role_and_scope():
    with pytest.raises(ForbiddenError, match="superAdmin"):
        rbac.ensure_can_create(ADMIN, "superAdmin", [])
    with pytest.raises(ForbiddenError, match="own locations"):
        rbac.ensure_can_create(ADMIN, "usuario", ["L2"])
    with pytest.raises(ForbiddenError):
        rbac.ensure_can_create(USUARIO, "usuario", [])


def test_admin_cannot_mutate_admin_or_super_admin():
    assert not rbac.can_mutate(ADMIN, _user("admin", ["L1"]), {"nombre": "x"})
    with pytest.raises(ForbiddenError):
        rbac.ensure_can_mutate(ADMIN, _user("superAdmin", ["L1"]), {})


def test_only_super_admin_assigns_super_admin_role():
    assert not rbac.can_mutate(ADMIN, _user(), {"role": "superAdmin"})
    assert rbac.can_mutate(SUPER, _user(), {"role": "superAdmin"})


def test_mutable_fields_strips_scope_fields_for_admin():
    changes = {"nombre": "Ana", "role": "admin", "locales": ["L2"], "localPrincipal": "L2"}
    assert rbac.mutable_fields(ADMIN, changes) == {"nombre": "Ana"}
    assert rbac.mutable_fields(SUPER, changes) == changes


def test_delete_is_super_admin_only():
    assert rbac.can_delete(SUPER, _user())
    assert not rbac.can_delete(ADMIN, _user())
    with pytest.raises(ForbiddenError, match="superAdmin"):
        rbac.ensure_can_delete(ADMIN, _user())


def test_admin_stats_visibility():
    assert rbac.can_view_admin_stats(SUPER)
    assert rbac.can_view_admin_stats(SUPER, "a2")
    assert rbac.can_view_admin_stats(ADMIN, "a1")
    assert not rbac.can_view_admin_stats(ADMIN, "a2")
    assert not rbac.can_view_admin_stats(ADMIN)


def test_manage_assignments_super_admin_only():
    assert rbac.can_manage_assignments(SUPER)
    with pytest.raises(ForbiddenError):
        rbac.ensure_can_manage_assignments(ADMIN)


def test_default_locales_for_admin_falls_back_to_own():
    assert rbac.default_locales(ADMIN, []) == ["L1"]
    assert rbac.default_locales(ADMIN, ["L1"]) == ["L1"]
    assert rbac.default_locales(SUPER, []) == []


def test_scope_filters_super_admin_passthrough():
    assert rbac.scope_filters(SUPER, {"role": "admin"}, "L2") == {"role": "admin", "locales": "L2"}


def test_scope_filters_admin_forces_usuario_and_own_locations():
    scoped = rbac.scope_filters(ADMIN, {})
    assert scoped == {"role": "usuario", "locales": {"$in": ["L1"]}}


def test_scope_filters_admin_requesting_other_role_matches_nothing():
    scoped = rbac.scope_filters(ADMIN, {"role": "admin"})
    assert scoped["role"] == {"$in": []}


def test_scope_filters_admin_requesting_foreign_location_matches_nothing():
    scoped = rbac.scope_filters(ADMIN, {}, "L2")
    assert scoped["locales"] == {"$in": []}
    assert rbac.scope_filters(ADMIN, {}, "L1")["locales"] == "L1"
