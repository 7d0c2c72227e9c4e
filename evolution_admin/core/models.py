"""Role constants and the resolved actor identity."""
from __future__ import annotations
from dataclasses import dataclass, field

ROLE_USUARIO = "usuario"
ROLE_ADMIN = "admin"
ROLE_SUPER_ADMIN = "superAdmin"

ROLES = (ROLE_USUARIO, ROLE_ADMIN, ROLE_SUPER_ADMIN)

# Owned by the credential collaborator; never returned and never written
# through a generic update.
CREDENTIAL_FIELDS = (
    "password",
    "intentosFallidos",
    "bloqueadoHasta",
    "passwordResetToken",
    "passwordResetExpires",
)


@dataclass(frozen=True)
class ActorContext:
    """Authenticated caller: id, role and assigned location ids."""
    id: str
    role: str
    locales: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_user(cls, user: dict) -> "ActorContext":
        return cls(
            id=user["id"],
            role=user.get("role", ROLE_USUARIO),
            locales=tuple(user.get("locales") or ()),
        )

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def shares_local(actor: ActorContext, target: dict) -> bool:
    """Return True when the target belongs to at least one of the actor's locations."""
    own = set(actor.locales)
    return any(local_id in own for local_id in target.get("locales") or ())
