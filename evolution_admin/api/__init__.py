"""HTTP layer: blueprints, actor decorators and error handlers."""
