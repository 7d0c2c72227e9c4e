"""Typed failures raised by the administration core.

The HTTP layer maps these to responses by type; it never inspects messages.
"""
from __future__ import annotations
import logging
from functools import wraps
from typing import Optional

logger = logging.getLogger(__name__)


class AdminError(Exception):
    """Base exception for all administration operations.

    Attributes:
        status: HTTP status the transport layer should answer with
        detail: Human-readable message
        error_type: Stable failure kind (``NotFound``, ``Forbidden``...)
    """

    status = 500
    error_type = "InternalError"

    def __init__(self, detail: str, status: Optional[int] = None):
        self.detail = detail
        if status is not None:
            self.status = status
        super().__init__(detail)

    def to_dict(self) -> dict:
        """Convert to the JSON error body."""
        return {
            "success": False,
            "error": self.error_type,
            "message": self.detail,
        }


class NotFoundError(AdminError):
    """Entity lookup failed - user or admin does not exist."""
    status = 404
    error_type = "NotFound"


class ForbiddenError(AdminError):
    """Actor role or location scope does not allow the action."""
    status = 403
    error_type = "Forbidden"


class InvalidInputError(AdminError):
    """Missing/malformed field or reference to a location that does not exist."""
    status = 400
    error_type = "InvalidInput"


class InvariantViolationError(AdminError):
    """Cardinality guard tripped (superAdmin cap, last superAdmin, last admin of a location)."""
    status = 409
    error_type = "InvariantViolation"


class ConflictError(AdminError):
    """Duplicate email or location assignment, or location not assigned."""
    status = 409
    error_type = "Conflict"


class InternalError(AdminError):
    """Unexpected persistence or collaborator failure."""
    status = 500
    error_type = "InternalError"


class LocalDirectoryError(Exception):
    """HTTP error from the external location directory.

    Attributes:
        status_code: HTTP status code
        message: Error message from response
        endpoint: API endpoint that failed
    """

    def __init__(self, status_code: int, message: str, endpoint: str):
        self.status_code = status_code
        self.message = message
        self.endpoint = endpoint
        super().__init__(f"[{status_code}] {endpoint}: {message}")


def wrap_internal_errors(operation: str):
    """Decorator for service methods ``(self, actor, target_id, ...)``.

    Typed failures pass through; anything else is logged with the operation,
    actor id and target id, then re-raised as InternalError.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(self, actor, *args, **kwargs):
            try:
                return fn(self, actor, *args, **kwargs)
            except AdminError:
                raise
            except Exception as exc:
                target_id = args[0] if args and isinstance(args[0], str) else None
                logger.error(
                    "%s failed | actor=%s | target=%s | error=%s",
                    operation,
                    getattr(actor, "id", None),
                    target_id,
                    exc,
                    exc_info=True,
                )
                raise InternalError(f"Failed to {operation.replace('_', ' ')}") from exc
        return wrapper
    return decorator
