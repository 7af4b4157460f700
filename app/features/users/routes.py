"""
User feature routes, mounted under /api/auth.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import ValidationError
from app.features.permissions.dependencies import get_resolver
from app.features.users.models import ApprovalStatus, User
from app.features.users.schemas import CompleteProfileRequest, UserResponse
from app.features.users.dependencies import get_current_user
from app.utils import get_logger


log = get_logger(__name__)

router = APIRouter(tags=["auth"])


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    user: Annotated[User, Depends(get_current_user)]
):
    """Get current authenticated user's profile."""
    return user


@router.post("/complete-profile", response_model=UserResponse)
async def complete_profile(
    request: Request,
    data: CompleteProfileRequest,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Submit profile details and move a CREATED user to PENDING approval."""
    if user.approval_status not in (ApprovalStatus.CREATED, ApprovalStatus.PENDING):
        raise ValidationError(
            f'Profile cannot be completed with status "{user.approval_status.value}"',
        )

    user.name = data.name
    user.department_id = data.department_id
    user.approval_status = ApprovalStatus.PENDING
    await db.commit()
    await db.refresh(user)

    # Approval status is memoized by the permission resolver
    get_resolver(request).invalidate_subject(user.id)
    log.info("User %s completed profile, now pending approval", user.id)
    return user
