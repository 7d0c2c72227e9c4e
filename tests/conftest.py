"""Pytest shared fixtures for the administration backend."""
import datetime
import itertools
import os
import pathlib
import sys
import time

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure test environment BEFORE any app imports
os.environ.setdefault("DEMO_MODE", "true")

import jwt
import pytest
import requests

from evolution_admin import audit
from evolution_admin.config import AppConfig
from evolution_admin.core.assignment_service import AssignmentService
from evolution_admin.core.credentials import CredentialService
from evolution_admin.core.models import ActorContext
from evolution_admin.core.stats_service import StatsService
from evolution_admin.core.store import Database, SqlLocalStore, SqlUserStore
from evolution_admin.core.user_service import UserService
from evolution_admin.flask_app import create_app

TEST_JWT_SECRET = "test-jwt-secret-with-enough-entropy-for-hs256"
BASE_TIME = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)


# ─────────────────────────────────────────────────────────────────────────────
# Guard Rails
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def _block_network(monkeypatch):
    """Unit tests never reach a real location directory."""
    def _stub_get(url, *args, **kwargs):
        raise RuntimeError(f"Unexpected network access in tests: {url}")

    monkeypatch.setattr(requests, "get", _stub_get)


@pytest.fixture(autouse=True)
def audit_file(monkeypatch, tmp_path):
    """Isolated audit directory for each test."""
    audit_dir = tmp_path / "audit"
    log_file = audit_dir / "admin-events.jsonl"
    monkeypatch.setattr(audit, "AUDIT_LOG_DIR", audit_dir)
    monkeypatch.setattr(audit, "AUDIT_LOG_FILE", log_file)
    monkeypatch.setenv("AUDIT_LOG_SIGNING_KEY", "test-signing-key-for-audit-trail")
    return log_file


# ─────────────────────────────────────────────────────────────────────────────
# Stores and Services
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def config():
    return AppConfig(demo_mode=True, jwt_secret=TEST_JWT_SECRET)


@pytest.fixture()
def database():
    """Fresh in-memory SQLite database per test."""
    db = Database.from_url("sqlite://")
    db.create_tables()
    yield db
    db.engine.dispose()


@pytest.fixture()
def local_store(database):
    store = SqlLocalStore(database)
    for local in [
        {"id": "L1", "nombre": "Centro", "direccion": "Calle 1", "activo": True},
        {"id": "L2", "nombre": "Norte", "direccion": "Calle 2", "activo": True},
        {"id": "L3", "nombre": "Sur", "direccion": "Calle 3", "activo": True},
    ]:
        store.upsert(local)
    return store


@pytest.fixture()
def user_store(database):
    return SqlUserStore(database)


@pytest.fixture()
def credentials():
    # Low iteration count keeps hashing fast in tests
    return CredentialService(method="pbkdf2:sha256:1000")


@pytest.fixture()
def user_service(user_store, local_store, credentials, config):
    return UserService(user_store, local_store, credentials, config)


@pytest.fixture()
def assignment_service(user_store, local_store):
    return AssignmentService(user_store, local_store)


@pytest.fixture()
def stats_service(user_store, local_store, config):
    return StatsService(user_store, local_store, config)


@pytest.fixture()
def make_user(user_store):
    """Insert a user document directly; creation times increase per call."""
    counter = itertools.count()

    def _make(role="usuario", locales=None, activo=True, **fields):
        index = next(counter)
        locales = list(locales or [])
        doc = {
            "nombre": fields.pop("nombre", f"{role} {index}"),
            "email": fields.pop("email", f"{role}{index}@example.com"),
            "role": role,
            "locales": locales,
            "localPrincipal": locales[0] if locales else None,
            "esAdministradorLocal": role == "admin" and bool(locales),
            "activo": activo,
            "enLinea": False,
            "createdAt": BASE_TIME + datetime.timedelta(minutes=index),
        }
        doc.update(fields)
        return user_store.create(doc)

    return _make


def actor_of(user: dict) -> ActorContext:
    return ActorContext.from_user(user)


# ─────────────────────────────────────────────────────────────────────────────
# Flask Test Client
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def app(config, user_store, local_store, credentials):
    flask_app = create_app(config, user_store=user_store, local_store=local_store, credentials=credentials)
    flask_app.config.update(TESTING=True)
    return flask_app


@pytest.fixture()
def client(app):
    with app.test_client() as client:
        yield client


def make_token(sub: str, exp_offset: int = 3600, secret: str = TEST_JWT_SECRET, **claims) -> str:
    """Create an HS256 actor token for testing."""
    now = int(time.time())
    payload = {"sub": sub, "iat": now, "exp": now + exp_offset}
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_header(user: dict) -> dict:
    return {"Authorization": f"Bearer {make_token(user['id'])}"}


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "critical: marks tests guarding cardinality invariants (P0 priority)"
    )
