"""
Common API Response Schemas

Provides standardized error responses and pagination models for consistent API behavior.
"""
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar
from pydantic import BaseModel, Field


# ============================================================================
# Error Response Models
# ============================================================================

class ErrorResponse(BaseModel):
    """
    Standardized error response for all API errors.

    Error Codes:
        - VALIDATION_ERROR: Request validation failed (400/422)
        - INVALID_STATE: Operation not allowed in the BOM's status (400)
        - AUTHENTICATION_ERROR: Caller identity missing or unknown (401)
        - PERMISSION_DENIED: User lacks permission (403)
        - NOT_FOUND: Resource not found (404)
        - CONFLICT / CONCURRENCY_ERROR: Stale row_version (409)
        - DUPLICATE_ERROR: BOM name already used (409)
        - REFERENTIAL_INTEGRITY_ERROR: BOM is used as a sub-assembly (409)
        - CIRCULAR_REFERENCE: Sub-assembly graph would contain a cycle (422)
        - MAX_DEPTH_EXCEEDED: Sub-assembly nesting too deep (422)
        - BUSINESS_RULE_ERROR: Other business rule violation (422)
        - DATABASE_ERROR: Database operation failed (500)
        - INTERNAL_ERROR: Unexpected internal error (500)

    Example:
        {
            "error": "REFERENTIAL_INTEGRITY_ERROR",
            "message": "Cannot delete BOM 4: used as a sub-assembly by BOM(s) 7",
            "details": {"bom_id": 4, "referenced_by": [7], "action": "delete"},
            "timestamp": "2026-03-02T10:30:00Z"
        }
    """
    error: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        None,
        description="Additional error context for debugging"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the error occurred (UTC)"
    )


# ============================================================================
# Pagination Models
# ============================================================================

class PaginationParams(BaseModel):
    """Offset-based pagination parameters for list endpoints."""
    offset: int = Field(default=0, ge=0, description="Number of records to skip")
    limit: int = Field(default=50, ge=1, le=500, description="Maximum number of records to return")


class PaginationMeta(BaseModel):
    """Pagination metadata included in list responses."""
    total: int = Field(..., description="Total number of records matching the query")
    offset: int = Field(..., description="Current offset (number of records skipped)")
    limit: int = Field(..., description="Maximum records per page")
    returned: int = Field(..., description="Number of records in this response")


T = TypeVar('T')


class ListResponse(BaseModel, Generic[T]):
    """
    Standardized list response wrapper with pagination.

    Example:
        {
            "items": [...],
            "pagination": {"total": 150, "offset": 0, "limit": 50, "returned": 50}
        }
    """
    items: List[T] = Field(..., description="List of items")
    pagination: PaginationMeta = Field(..., description="Pagination metadata")
