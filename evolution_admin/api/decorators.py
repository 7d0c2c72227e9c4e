"""
Flask decorators for actor authentication and role checks.

Callers present an HS256-signed Bearer token whose ``sub`` claim is the id of
an active user. The user's current role and locations are loaded from the
store on every request, so a demotion takes effect before the token expires.
"""

import logging
from functools import wraps
from typing import Dict, Optional

import jwt
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
    MissingRequiredClaimError,
)
from flask import current_app, g, jsonify, request

from evolution_admin.core.models import ActorContext

logger = logging.getLogger(__name__)


class TokenValidationError(Exception):
    """Exception raised when an actor token is rejected."""
    pass


def validate_actor_token(token: str) -> Dict[str, any]:
    """
    Validate an actor token.

    Validations performed:
    1. Signature (shared secret, configured algorithm)
    2. Expiration (exp claim, mandatory)
    3. Issuer (iss claim, only when JWT_ISSUER is configured)

    Returns:
        dict: Validated token claims

    Raises:
        TokenValidationError: If any validation fails
    """
    cfg = current_app.config["APP_CONFIG"]

    options = {"require": ["exp", "sub"], "verify_iss": bool(cfg.jwt_issuer)}
    try:
        return jwt.decode(
            token,
            cfg.jwt_secret,
            algorithms=[cfg.jwt_algorithm],
            issuer=cfg.jwt_issuer or None,
            options=options,
            leeway=5,
        )
    except ExpiredSignatureError:
        raise TokenValidationError("Token expired (exp claim)")
    except InvalidIssuerError as e:
        raise TokenValidationError(f"Invalid issuer: {e}")
    except MissingRequiredClaimError as e:
        raise TokenValidationError(f"Missing claim: {e}")
    except InvalidSignatureError:
        raise TokenValidationError("Invalid signature (token tampered or wrong key)")
    except DecodeError as e:
        raise TokenValidationError(f"Token decode error (malformed JWT): {e}")
    except InvalidTokenError as e:
        raise TokenValidationError(f"Token validation failed: {e}")


def _unauthorized(message: str):
    return jsonify({"success": False, "error": "Unauthorized", "message": message}), 401


def _resolve_actor() -> ActorContext:
    """Read the Bearer token and load the actor it names.

    Raises:
        TokenValidationError: Missing/invalid token, unknown or inactive user
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header:
        raise TokenValidationError("Authorization header required. Use 'Authorization: Bearer <token>'")
    scheme, _, token = auth_header.partition(" ")
    if scheme != "Bearer":
        raise TokenValidationError("Invalid Authorization header format. Expected 'Bearer <token>'")

    token = token.strip()
    if not token:
        raise TokenValidationError("Bearer token is empty")

    claims = validate_actor_token(token)

    user_store = current_app.config["USER_STORE"]
    user = user_store.find_by_id(str(claims["sub"]), include_inactive=True)
    if user is None:
        raise TokenValidationError("Token subject does not exist")
    if not user.get("activo", True):
        raise TokenValidationError("Account is disabled")

    return ActorContext.from_user(user)


def require_actor(*roles: str):
    """
    Decorator resolving ``g.actor`` from the Bearer token.

    Args:
        roles: Allowed actor roles; empty means any authenticated user

    Returns:
        401 when the token is missing or invalid, 403 when the role is not allowed

    Example:
        @bp.route("/admin/stats/admins")
        @require_actor("superAdmin")
        def admin_stats():
            ...
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                actor = _resolve_actor()
            except TokenValidationError as e:
                logger.warning(f"Actor token rejected on {request.path}: {e}")
                return _unauthorized(str(e))

            if roles and actor.role not in roles:
                logger.warning(
                    f"Actor {actor.id} with role {actor.role} denied on {request.path}. "
                    f"Required: {', '.join(roles)}"
                )
                return jsonify({
                    "success": False,
                    "error": "Forbidden",
                    "message": f"Required role: {', '.join(roles)}",
                }), 403

            g.actor = actor
            return fn(*args, **kwargs)

        return wrapper
    return decorator


def optional_actor(fn):
    """Resolve ``g.actor`` when a token is sent; ``None`` when no header is present.

    A token that is present but invalid is still rejected with 401.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        g.actor = None
        if request.headers.get("Authorization"):
            try:
                g.actor = _resolve_actor()
            except TokenValidationError as e:
                logger.warning(f"Actor token rejected on {request.path}: {e}")
                return _unauthorized(str(e))
        return fn(*args, **kwargs)

    return wrapper


def get_actor() -> Optional[ActorContext]:
    """
    Get the actor resolved for the current request.

    Must be called after @require_actor or @optional_actor.
    """
    return getattr(g, "actor", None)
