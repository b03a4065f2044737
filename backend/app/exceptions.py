"""
Joinery BOM - Custom Exception Hierarchy

Provides structured, typed exceptions with error codes for consistent
error handling across the application.

Usage:
    from app.exceptions import NotFoundError, ValidationError

    # In a service
    raise NotFoundError("BOM", bom_id)

    # With custom message
    raise ValidationError("Quantity must be greater than zero", field="components[0].quantity")
"""
from typing import Any, Dict, List, Optional


class JoineryException(Exception):
    """
    Base exception for all Joinery BOM errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., "NOT_FOUND", "VALIDATION_ERROR")
        status_code: HTTP status code to return
        details: Additional context for debugging
    """

    error_code: str = "JOINERY_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# ===================
# 400 Bad Request Errors
# ===================


class ValidationError(JoineryException):
    """Raised when input validation fails."""

    error_code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        *,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details=details)


class InvalidStateError(JoineryException):
    """Raised when an operation is invalid for the current state."""

    error_code = "INVALID_STATE"
    status_code = 400

    def __init__(
        self,
        message: str = "Operation not allowed in current state",
        *,
        current_state: Optional[str] = None,
        allowed_states: Optional[list] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if current_state:
            details["current_state"] = current_state
        if allowed_states is not None:
            details["allowed_states"] = allowed_states
        super().__init__(message, details=details)


# ===================
# 401 Unauthorized Errors
# ===================


class AuthenticationError(JoineryException):
    """Raised when the caller identity is missing or unknown."""

    error_code = "AUTHENTICATION_ERROR"
    status_code = 401

    def __init__(
        self,
        message: str = "Authentication required",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)


# ===================
# 403 Forbidden Errors
# ===================


class PermissionDeniedError(JoineryException):
    """Raised when user lacks permission for an action."""

    error_code = "PERMISSION_DENIED"
    status_code = 403

    def __init__(
        self,
        message: str = "Permission denied",
        *,
        action: Optional[str] = None,
        resource: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if action:
            details["action"] = action
        if resource:
            details["resource"] = resource
        super().__init__(message, details=details)


# ===================
# 404 Not Found Errors
# ===================


class NotFoundError(JoineryException):
    """Raised when a resource is not found."""

    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Any = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["resource"] = resource
        if resource_id is not None:
            details["resource_id"] = str(resource_id)
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(message, details=details)


# ===================
# 409 Conflict Errors
# ===================


class ConflictError(JoineryException):
    """Raised when there's a resource conflict."""

    error_code = "CONFLICT"
    status_code = 409

    def __init__(
        self,
        message: str = "Resource conflict",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)


class ConcurrencyError(ConflictError):
    """Raised when concurrent modification is detected."""

    error_code = "CONCURRENCY_ERROR"

    def __init__(
        self,
        message: str = "Resource was modified by another user",
        *,
        expected_version: Optional[int] = None,
        current_version: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if expected_version is not None:
            details["expected_version"] = expected_version
        if current_version is not None:
            details["current_version"] = current_version
        super().__init__(message, details=details)


class DuplicateError(ConflictError):
    """Raised when attempting to create a duplicate resource."""

    error_code = "DUPLICATE_ERROR"

    def __init__(
        self,
        resource: str = "Resource",
        *,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["resource"] = resource
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        message = f"{resource} already exists"
        if field and value:
            message = f"{resource} with {field}='{value}' already exists"
        super().__init__(message, details=details)


class ReferentialIntegrityError(ConflictError):
    """Raised when a BOM cannot change because other BOMs depend on it."""

    error_code = "REFERENTIAL_INTEGRITY_ERROR"

    def __init__(
        self,
        bom_id: int,
        referenced_by: List[int],
        *,
        action: str = "delete",
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["bom_id"] = bom_id
        details["referenced_by"] = list(referenced_by)
        details["action"] = action
        self.bom_id = bom_id
        self.referenced_by = list(referenced_by)
        message = (
            f"Cannot {action} BOM {bom_id}: used as a sub-assembly by "
            f"BOM(s) {', '.join(str(i) for i in referenced_by)}"
        )
        super().__init__(message, details=details)


# ===================
# 422 Unprocessable Entity Errors
# ===================


class BusinessRuleError(JoineryException):
    """Raised when a business rule is violated."""

    error_code = "BUSINESS_RULE_ERROR"
    status_code = 422

    def __init__(
        self,
        message: str = "Business rule violation",
        *,
        rule: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if rule:
            details["rule"] = rule
        super().__init__(message, details=details)


class CircularReferenceError(BusinessRuleError):
    """Raised when a sub-assembly reference would close (or has closed) a cycle."""

    error_code = "CIRCULAR_REFERENCE"

    def __init__(
        self,
        path: List[Optional[int]],
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["path"] = list(path)
        self.path = list(path)
        chain = " -> ".join("new BOM" if p is None else str(p) for p in path)
        super().__init__(
            f"Circular sub-assembly reference: {chain}",
            rule="acyclic_bom_graph",
            details=details,
        )


class MaxDepthExceededError(BusinessRuleError):
    """Raised when sub-assembly nesting is deeper than the configured limit."""

    error_code = "MAX_DEPTH_EXCEEDED"

    def __init__(
        self,
        max_depth: int,
        *,
        bom_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["max_depth"] = max_depth
        if bom_id is not None:
            details["bom_id"] = bom_id
        super().__init__(
            f"Maximum sub-assembly depth of {max_depth} exceeded",
            rule="max_bom_depth",
            details=details,
        )
