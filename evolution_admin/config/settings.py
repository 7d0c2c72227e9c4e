"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import os
import secrets
from dataclasses import dataclass
from pathlib import Path


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = Path(os.environ.get("SECRETS_DIR", "/run/secrets")) / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                print(f"[settings] ✓ Loaded {secret_name} from secrets directory")
                return secret_value
        except OSError as e:
            print(f"[settings] ✗ Failed to read {secret_file}: {e}")

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            return secret_value

    return None


def _int_env(var_name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(var_name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {var_name} must be an integer, got '{raw}'")
    if value < minimum:
        raise RuntimeError(f"Environment variable {var_name} must be >= {minimum}")
    return value


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # Actor tokens
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = ""

    # Invariants
    max_super_admins: int = 4

    # Listing
    default_page_limit: int = 10
    max_page_limit: int = 100

    # Statistics
    stats_active_window_days: int = 30
    stats_recent_users: int = 5

    # Persistence (SQLAlchemy URL)
    database_url: str = ""

    # Collaborators
    locales_service_url: str = ""
    locales_service_token: str = ""
    password_hash_method: str = "scrypt"

    @property
    def uses_remote_locales(self) -> bool:
        return bool(self.locales_service_url)


def load_settings() -> AppConfig:
    """Load application settings from environment and /run/secrets."""
    demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"

    jwt_secret = _load_secret_from_file("jwt_secret", "JWT_SECRET")
    if not jwt_secret:
        if demo_mode:
            jwt_secret = secrets.token_urlsafe(48)
            os.environ["JWT_SECRET"] = jwt_secret
            print("[demo-mode] Generated temporary JWT_SECRET")
        else:
            raise RuntimeError("JWT_SECRET not found in /run/secrets or environment")

    audit_log_signing_key = _load_secret_from_file("audit_log_signing_key", "AUDIT_LOG_SIGNING_KEY")
    if audit_log_signing_key:
        os.environ["AUDIT_LOG_SIGNING_KEY"] = audit_log_signing_key
    elif demo_mode:
        os.environ["AUDIT_LOG_SIGNING_KEY"] = "demo-audit-signing-key-change-in-production"
        print("[demo-mode] Using demo AUDIT_LOG_SIGNING_KEY")

    database_url = _load_secret_from_file("database_url", "DATABASE_URL") or ""
    locales_service_token = _load_secret_from_file("locales_service_token", "LOCALES_SERVICE_TOKEN") or ""

    default_page_limit = _int_env("DEFAULT_PAGE_LIMIT", 10)
    max_page_limit = _int_env("MAX_PAGE_LIMIT", 100)
    if default_page_limit > max_page_limit:
        raise RuntimeError("DEFAULT_PAGE_LIMIT cannot exceed MAX_PAGE_LIMIT")

    config = AppConfig(
        demo_mode=demo_mode,
        jwt_secret=jwt_secret,
        jwt_algorithm=os.environ.get("JWT_ALGORITHM", "HS256"),
        jwt_issuer=os.environ.get("JWT_ISSUER", ""),
        max_super_admins=_int_env("MAX_SUPER_ADMINS", 4),
        default_page_limit=default_page_limit,
        max_page_limit=max_page_limit,
        stats_active_window_days=_int_env("STATS_ACTIVE_WINDOW_DAYS", 30),
        stats_recent_users=_int_env("STATS_RECENT_USERS", 5),
        database_url=database_url.strip(),
        locales_service_url=os.environ.get("LOCALES_SERVICE_URL", "").strip(),
        locales_service_token=locales_service_token,
        password_hash_method=os.environ.get("PASSWORD_HASH_METHOD", "scrypt"),
    )

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    locales_label = config.locales_service_url or "database"
    print(f"[settings] Mode={mode_label}; max_super_admins={config.max_super_admins}; locales={locales_label}")

    if demo_mode:
        print("[settings] WARNING: Demo secrets in use. Do not deploy with these defaults.")

    return config
