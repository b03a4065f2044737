"""
API Dependencies

Caller identity and common query parameter dependencies.

Authentication happens upstream (gateway / auth service); requests
arrive with the authenticated user's id in the X-User-Id header.
"""
from typing import Annotated, Optional

from fastapi import Depends, Header, Query
from sqlalchemy.orm import Session

from app.core.settings import settings
from app.db.session import get_db
from app.exceptions import AuthenticationError, PermissionDeniedError
from app.models.user import User
from app.schemas.common import PaginationParams


async def get_current_user(
    x_user_id: Annotated[Optional[int], Header(description="Authenticated user id")] = None,
    db: Session = Depends(get_db),
) -> User:
    """
    Dependency to get the calling user.

    Raises:
        AuthenticationError (401) if the header is missing or the user is unknown
        PermissionDeniedError (403) if the user is inactive
    """
    if x_user_id is None:
        raise AuthenticationError("X-User-Id header is required")

    user = db.query(User).filter(User.id == x_user_id).first()
    if user is None:
        raise AuthenticationError(f"Unknown user {x_user_id}")

    if not user.is_active:
        raise PermissionDeniedError("User account is inactive")

    return user


def get_pagination_params(
    offset: int = Query(
        default=0,
        ge=0,
        description="Number of records to skip (for pagination)"
    ),
    limit: int = Query(
        default=settings.DEFAULT_PAGE_SIZE,
        ge=1,
        le=settings.MAX_PAGE_SIZE,
        description="Maximum number of records to return"
    )
) -> PaginationParams:
    """
    Dependency for standardized pagination parameters.

    Example:
        @router.get("/")
        async def list_boms(
            pagination: Annotated[PaginationParams, Depends(get_pagination_params)],
            db: Session = Depends(get_db)
        ):
            ...
    """
    return PaginationParams(offset=offset, limit=limit)
