"""
Lifecycle error taxonomy.

Every error raised by the tenant/branch lifecycle services derives from
LifecycleError and carries the HTTP status it maps to at the API boundary
plus a machine-readable ``reason`` that clients can branch on.
"""

from typing import Any, Dict, Optional


class LifecycleError(Exception):
    """Base error for lifecycle operations."""

    status_code: int = 400
    error_type: str = "lifecycle_error"

    def __init__(self, message: str, reason: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.reason = reason or self.error_type
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "type": self.error_type,
            "reason": self.reason,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LifecycleError):
    """Malformed input; recoverable by resubmitting corrected values."""

    status_code = 400
    error_type = "validation_error"


class NotFoundError(LifecycleError):
    """Unknown tenant, branch, application or request id."""

    status_code = 404
    error_type = "not_found"

    def __init__(self, entity: str, entity_id: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found", reason=f"{entity.lower().replace(' ', '_')}_not_found")


class ConflictError(LifecycleError):
    """Value already taken or lost a concurrent race; caller should retry with another value."""

    status_code = 409
    error_type = "conflict"


class InvariantViolation(LifecycleError):
    """Operation would break a lifecycle rule. Rejected before any write."""

    status_code = 422
    error_type = "invariant_violation"


class TransactionFailure(LifecycleError):
    """Storage failed mid-operation; everything was rolled back."""

    status_code = 500
    error_type = "transaction_failure"

    def __init__(self, message: str = "The operation could not be completed. No changes were saved."):
        super().__init__(message, reason="transaction_failure")


class AuthenticationError(LifecycleError):
    """Credentials or session token rejected."""

    status_code = 401
    error_type = "authentication_error"


class PermissionDenied(LifecycleError):
    """Authenticated, but the session may not perform this action."""

    status_code = 403
    error_type = "permission_denied"
