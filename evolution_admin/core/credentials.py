"""Credential collaborator: password hashing and lockout fields."""
from __future__ import annotations

from werkzeug.security import check_password_hash, generate_password_hash

PASSWORD_MIN_LENGTH = 6


class CredentialService:
    """Hash and verify passwords; the core never sees the algorithm."""

    def __init__(self, method: str = "scrypt"):
        self.method = method

    def hash_password(self, plain: str) -> str:
        return generate_password_hash(plain, method=self.method)

    def verify_password(self, password_hash: str, plain: str) -> bool:
        if not password_hash:
            return False
        return check_password_hash(password_hash, plain)

    def reset_fields(self, plain: str) -> dict:
        """Fields to store when a password is (re)set: new hash, lockout cleared."""
        return {
            "password": self.hash_password(plain),
            "intentosFallidos": 0,
            "bloqueadoHasta": None,
            "passwordResetToken": None,
            "passwordResetExpires": None,
        }
