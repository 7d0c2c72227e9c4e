"""Administration API endpoints.

Thin HTTP mapping over the core services. Handlers resolve the actor, read
the request, call exactly one service operation and wrap the result as
``{"success": true, "data": ...}``. Typed failures are rendered by the
application error handlers.

Architecture:
    /admin/* -> evolution_admin.core.{user,assignment,stats}_service -> stores
"""

from __future__ import annotations
import logging
from typing import Optional

from flask import Blueprint, current_app, jsonify, request

from evolution_admin.api.decorators import get_actor, optional_actor, require_actor
from evolution_admin.core.exceptions import InvalidInputError
from evolution_admin.core.models import ROLE_ADMIN, ROLE_SUPER_ADMIN

bp = Blueprint("admin", __name__, url_prefix="/admin")

logger = logging.getLogger(__name__)

ADMIN_ROLES = (ROLE_SUPER_ADMIN, ROLE_ADMIN)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _users():
    return current_app.config["USER_SERVICE"]


def _assignments():
    return current_app.config["ASSIGNMENT_SERVICE"]


def _stats():
    return current_app.config["STATS_SERVICE"]


def _correlation_id() -> Optional[str]:
    return request.headers.get("X-Correlation-Id")


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        raise InvalidInputError("Request body must be valid JSON")
    if not isinstance(payload, dict):
        raise InvalidInputError("Request body must be a JSON object")
    return payload


def _ok(data, status: int = 200, message: Optional[str] = None):
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return jsonify(body), status


@bp.after_request
def add_correlation_id(response):
    """Echo the correlation ID for tracing."""
    correlation_id = request.headers.get("X-Correlation-Id")
    if correlation_id:
        response.headers["X-Correlation-Id"] = correlation_id
    return response


# ─────────────────────────────────────────────────────────────────────────────
# Users
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/users", methods=["GET"])
@require_actor(*ADMIN_ROLES)
def list_users():
    """List users visible to the actor.

    Query params: page, limit, role, local, activo, search
    """
    result = _users().list_users(get_actor(), request.args.to_dict())
    return _ok(result)


@bp.route("/users/<user_id>", methods=["GET"])
@require_actor(*ADMIN_ROLES)
def get_user(user_id: str):
    return _ok(_users().get_user(get_actor(), user_id))


@bp.route("/users", methods=["POST"])
@require_actor(*ADMIN_ROLES)
def create_user():
    user = _users().create_user(get_actor(), _json_body(), _correlation_id())
    return _ok(user, 201, "User created")


@bp.route("/users/<user_id>", methods=["PUT"])
@require_actor(*ADMIN_ROLES)
def update_user(user_id: str):
    user = _users().update_user(get_actor(), user_id, _json_body(), _correlation_id())
    return _ok(user, message="User updated")


@bp.route("/users/<user_id>", methods=["DELETE"])
@require_actor(ROLE_SUPER_ADMIN)
def delete_user(user_id: str):
    user = _users().delete_user(get_actor(), user_id, _correlation_id())
    return _ok(user, message="User deactivated")


@bp.route("/users/<user_id>/reset-password", methods=["POST"])
@require_actor(*ADMIN_ROLES)
def reset_password(user_id: str):
    payload = _json_body()
    user = _users().reset_password(get_actor(), user_id, payload.get("newPassword"), _correlation_id())
    return _ok(user, message="Password reset")


@bp.route("/users/<user_id>/status", methods=["PATCH"])
@require_actor(*ADMIN_ROLES)
def toggle_status(user_id: str):
    payload = _json_body()
    user = _users().toggle_status(get_actor(), user_id, payload.get("activo"), _correlation_id())
    state = "enabled" if user["activo"] else "disabled"
    return _ok(user, message=f"User {state}")


@bp.route("/init-superadmin", methods=["POST"])
@optional_actor
def init_super_admin():
    """Bootstrap the first superAdmin; later calls need a superAdmin token."""
    user = _users().init_super_admin(get_actor(), _json_body(), _correlation_id())
    return _ok(user, 201, "superAdmin created")


# ─────────────────────────────────────────────────────────────────────────────
# Statistics
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/stats/admins", methods=["GET"])
@require_actor(ROLE_SUPER_ADMIN)
def admin_stats():
    return _ok(_stats().admin_stats(get_actor()))


@bp.route("/stats/admins/<admin_id>", methods=["GET"])
@require_actor(*ADMIN_ROLES)
def admin_detail_stats(admin_id: str):
    return _ok(_stats().admin_detail_stats(get_actor(), admin_id))


# ─────────────────────────────────────────────────────────────────────────────
# Location assignments
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/admins/<admin_id>/locales", methods=["POST"])
@require_actor(ROLE_SUPER_ADMIN)
def assign_local(admin_id: str):
    payload = _json_body()
    result = _assignments().assign_local(get_actor(), admin_id, payload.get("localId"), _correlation_id())
    return _ok(result, message="Location assigned")


@bp.route("/admins/<admin_id>/locales/<local_id>", methods=["DELETE"])
@require_actor(ROLE_SUPER_ADMIN)
def remove_local(admin_id: str, local_id: str):
    result = _assignments().remove_local(get_actor(), admin_id, local_id, _correlation_id())
    return _ok(result, message="Location removed")


@bp.route("/admins/<admin_id>/locales/<local_id>/principal", methods=["PUT"])
@require_actor(ROLE_SUPER_ADMIN)
def set_primary_local(admin_id: str, local_id: str):
    result = _assignments().set_primary_local(get_actor(), admin_id, local_id, _correlation_id())
    return _ok(result, message="Primary location updated")
