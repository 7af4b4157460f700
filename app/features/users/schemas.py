"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.features.users.models import ApprovalStatus


class UserResponse(BaseModel):
    """Schema for the current user."""
    id: int
    email: EmailStr
    name: str
    is_active: bool
    is_admin: bool
    is_commander: bool
    approval_status: ApprovalStatus
    department_id: int | None = None
    role_id: int | None = None
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CompleteProfileRequest(BaseModel):
    """Details a newly created user submits before requesting approval."""
    name: str = Field(..., min_length=1, max_length=255)
    department_id: int | None = None
