from unittest.mock import Mock

import pytest

from evolution_admin.core.exceptions import LocalDirectoryError
from evolution_admin.core.store import HttpLocalStore


def _response(status_code=200, payload=None, text=""):
    return Mock(status_code=status_code, json=lambda: payload, text=text)


def test_find_by_id_unwraps_data_envelope(mocker):
    get = mocker.patch(
        "evolution_admin.core.store.locales.requests.get",
        return_value=_response(payload={"data": {"_id": "L1", "nombre": "Centro"}}),
    )
    store = HttpLocalStore("http://locales:8000/", token="svc-token")

    local = store.find_by_id("L1")

    assert local == {"_id": "L1", "nombre": "Centro", "id": "L1"}
    url = get.call_args.args[0]
    assert url == "http://locales:8000/locales/L1"
    assert get.call_args.kwargs["headers"]["Authorization"] == "Bearer svc-token"
    assert get.call_args.kwargs["timeout"] == 5


def test_find_by_id_accepts_bare_record(mocker):
    mocker.patch(
        "evolution_admin.core.store.locales.requests.get",
        return_value=_response(payload={"id": "L2", "nombre": "Norte"}),
    )
    assert HttpLocalStore("http://locales").find_by_id("L2")["nombre"] == "Norte"


def test_missing_location_is_none(mocker):
    mocker.patch(
        "evolution_admin.core.store.locales.requests.get",
        return_value=_response(status_code=404),
    )
    store = HttpLocalStore("http://locales")
    assert store.find_by_id("L9") is None
    assert store.exists("L9") is False


def test_server_error_raises(mocker):
    mocker.patch(
        "evolution_admin.core.store.locales.requests.get",
        return_value=_response(status_code=503, text="unavailable"),
    )
    with pytest.raises(LocalDirectoryError) as excinfo:
        HttpLocalStore("http://locales").find_by_id("L1")
    assert excinfo.value.status_code == 503


def test_path_like_ids_never_hit_the_network(mocker):
    get = mocker.patch("evolution_admin.core.store.locales.requests.get")
    assert HttpLocalStore("http://locales").find_by_id("../admin") is None
    get.assert_not_called()


def test_unexpected_payload_is_none(mocker):
    mocker.patch(
        "evolution_admin.core.store.locales.requests.get",
        return_value=_response(payload=["not", "a", "record"]),
    )
    assert HttpLocalStore("http://locales").find_by_id("L1") is None
