"""Error handlers for the application."""
from flask import jsonify
from werkzeug.exceptions import HTTPException

from evolution_admin.core.exceptions import AdminError


def register_error_handlers(app):
    """Register JSON error handlers with the Flask app."""

    @app.errorhandler(AdminError)
    def handle_admin_error(error):
        """Typed service failures map straight to their status."""
        if error.status >= 500:
            app.logger.error(f"Service failure: {error.detail}")
        return jsonify(error.to_dict()), error.status

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({"success": False, "error": "Bad Request", "message": str(error.description)}), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"success": False, "error": "Not Found", "message": "Resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"success": False, "error": "Method Not Allowed", "message": str(error.description)}), 405

    @app.errorhandler(500)
    def internal_error(error):
        # ALWAYS log the full error (even in production) - logs are secure
        app.logger.error(f"Internal error: {error}", exc_info=True)
        return jsonify({
            "success": False,
            "error": "InternalError",
            "message": "An unexpected error occurred",
        }), 500

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        # Pass through HTTP errors
        if isinstance(error, HTTPException):
            return error

        app.logger.error(f"Unhandled exception: {error}", exc_info=True)
        return jsonify({
            "success": False,
            "error": "InternalError",
            "message": "An unexpected error occurred",
        }), 500
