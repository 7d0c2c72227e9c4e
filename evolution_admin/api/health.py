"""Health check endpoints."""
from flask import Blueprint, current_app

bp = Blueprint("health", __name__)


@bp.route("/health")
def health_check():
    """Basic health check endpoint."""
    return ("ok", 200, {"Content-Type": "text/plain"})


@bp.route("/ready")
def readiness_check():
    """Ready once the user store answers a count query."""
    try:
        current_app.config["USER_STORE"].count({}, include_inactive=True)
    except Exception as exc:
        current_app.logger.warning(f"Readiness check failed: {exc}")
        return ("not ready", 503, {"Content-Type": "text/plain"})
    return ("ready", 200, {"Content-Type": "text/plain"})
