def test_health_endpoint(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.data == b"ok"


def test_ready_endpoint(client):
    resp = client.get("/ready")
    assert resp.status_code == 200
    assert resp.data == b"ready"


def test_ready_reports_store_failure(client, user_store, mocker):
    mocker.patch.object(user_store, "count", side_effect=ConnectionError("db down"))
    resp = client.get("/ready")
    assert resp.status_code == 503
