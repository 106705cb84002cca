"""
Error taxonomy for Command Center.

Every error carries a stable ``code`` for programmatic handling and an HTTP
status used by the API exception handler.
"""

from typing import Any, Dict, Optional


class CommandCenterError(Exception):
    """Base class for all Command Center errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(CommandCenterError):
    """Raised when an issue, project, user or execution does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, object_type: str, object_id: str):
        self.object_type = object_type
        self.object_id = object_id
        super().__init__(
            f"{object_type} not found",
            details={"object_type": object_type, "object_id": object_id},
        )


class ValidationError(CommandCenterError):
    """Raised when input is rejected before any state mutation."""

    code = "VALIDATION_ERROR"
    status_code = 422


class ConflictError(CommandCenterError):
    """Raised when a create would collide with an existing object."""

    code = "CONFLICT"
    status_code = 409


class ExecutionStateError(CommandCenterError):
    """Raised when an execution operation is invalid for its current status."""

    code = "INVALID_EXECUTION_STATE"
    status_code = 409

    def __init__(self, execution_id: str, status: str, operation: str):
        self.execution_id = execution_id
        self.status = status
        super().__init__(
            f"Cannot {operation} execution in status '{status}'",
            details={"execution_id": execution_id, "status": status},
        )


class DeliveryError(CommandCenterError):
    """Raised when a notification cannot be delivered to its webhook."""

    code = "DELIVERY_FAILED"
    status_code = 502


class AuthenticationError(CommandCenterError):
    """Raised for missing, invalid or expired credentials."""

    code = "UNAUTHORIZED"
    status_code = 401
