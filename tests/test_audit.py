"""Unit tests for administrative audit logging."""

import json

import pytest

from evolution_admin import audit


def test_log_admin_event_creates_file(audit_file):
    """Test that logging creates the audit file."""
    assert not audit_file.exists()

    audit.log_admin_event("user_create", "u1", operator="s1", details={"role": "usuario"})

    assert audit_file.exists()
    assert audit_file.stat().st_mode & 0o777 == 0o600  # Check file permissions


def test_log_admin_event_creates_valid_json(audit_file):
    audit.log_admin_event(
        "status_toggle",
        "u1",
        operator="a1",
        details={"activo": False},
        success=True,
    )

    event = json.loads(audit_file.read_text().splitlines()[0])

    assert event["event_type"] == "status_toggle"
    assert event["target"] == "u1"
    assert event["operator"] == "a1"
    assert event["success"] is True
    assert event["details"] == {"activo": False}
    assert "timestamp" in event
    assert "signature" in event


def test_verify_audit_log_with_valid_signatures(audit_file):
    for i in range(5):
        audit.log_admin_event("local_assign", f"a{i}", operator="s1", details={"local_id": "L1"})

    total, valid = audit.verify_audit_log()
    assert total == 5
    assert valid == 5


def test_verify_audit_log_detects_tampering(audit_file):
    """Test that signature verification detects tampered events."""
    audit.log_admin_event("user_update", "u1", operator="s1", details={"fields": ["nombre"]})

    event = json.loads(audit_file.read_text().splitlines()[0])
    event["operator"] = "mallory"
    audit_file.write_text(json.dumps(event) + "\n")

    total, valid = audit.verify_audit_log()
    assert total == 1
    assert valid == 0  # Signature invalid


def test_log_event_without_signing_key(audit_file, monkeypatch):
    monkeypatch.setenv("AUDIT_LOG_SIGNING_KEY", "")

    audit.log_admin_event("user_delete", "u1", operator="s1")

    event = json.loads(audit_file.read_text().splitlines()[0])
    assert "signature" not in event


def test_signing_key_file_takes_priority(audit_file, monkeypatch, tmp_path):
    key_file = tmp_path / "signing.key"
    key_file.write_text("file-key\n")
    monkeypatch.setenv("AUDIT_LOG_SIGNING_KEY_FILE", str(key_file))
    monkeypatch.setenv("AUDIT_LOG_SIGNING_KEY", "env-key")

    assert audit._get_signing_key() == b"file-key"


def test_details_with_datetimes_are_serialized(audit_file):
    import datetime

    audit.log_admin_event(
        "password_reset",
        "u1",
        details={"at": datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)},
    )

    total, valid = audit.verify_audit_log()
    assert (total, valid) == (1, 1)


def test_safe_log_never_raises(monkeypatch, caplog):
    def boom(*args, **kwargs):
        raise OSError("read-only filesystem")

    monkeypatch.setattr(audit, "log_admin_event", boom)

    assert audit.safe_log_admin_event("user_create", "u1", operator="s1") is False
    assert "Failed to log user_create event for u1" in caplog.text


def test_safe_log_returns_true_on_success(audit_file):
    assert audit.safe_log_admin_event("superadmin_init", "u1") is True
    assert json.loads(audit_file.read_text())["operator"] == "system"


def test_verify_without_file_returns_zero(audit_file):
    assert audit.verify_audit_log() == (0, 0)


def test_audit_directory_permissions(audit_file):
    """Test that audit directory has restricted permissions."""
    audit.log_admin_event("user_create", "u1")
    assert audit_file.parent.stat().st_mode & 0o777 == 0o700
