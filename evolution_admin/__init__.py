"""Evolution administration backend.

To build the Flask app:
    from evolution_admin.flask_app import create_app

To use the core services directly:
    from evolution_admin.core.user_service import UserService
"""
