"""
Pydantic schemas for permission management.

Request and response models for page grants, explicit grants, presets,
roles and access checks.
"""
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.features.permissions.models import GrantSource
from app.features.permissions.registry import HTTP_METHOD_ACTIONS


# ============================================================================
# Role Schemas
# ============================================================================

class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., min_length=1, max_length=50, description="Unique role name")
    description: Optional[str] = Field(None, max_length=1000, description="Role description")


class RoleCreate(RoleBase):
    """Schema for creating a new role."""

    @field_validator('name')
    @classmethod
    def name_alphanumeric_underscore(cls, v: str) -> str:
        """Validate role name format."""
        if not v.replace('_', '').replace('-', '').isalnum():
            raise ValueError('Role name must contain only alphanumeric characters, underscores, and hyphens')
        return v


class RoleResponse(RoleBase):
    """Schema for role response."""
    id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Grant Request Schemas
# ============================================================================

class PageGrantRequest(BaseModel):
    """Grant or revoke view/edit on one page."""
    page_id: str = Field(..., min_length=1, validation_alias=AliasChoices("page_id", "pageId", "page"))
    action: Literal["view", "edit"]


class BulkPageGrantRequest(BaseModel):
    permissions: List[PageGrantRequest] = Field(..., min_length=1)


class CustomModeRequest(BaseModel):
    page_id: str = Field(..., min_length=1, validation_alias=AliasChoices("page_id", "pageId", "page"))
    mode_id: str = Field(..., min_length=1, validation_alias=AliasChoices("mode_id", "modeId", "mode"))


class ApplyPresetRequest(BaseModel):
    preset_id: str = Field(..., min_length=1, validation_alias=AliasChoices("preset_id", "presetId", "preset"))


class PermissionGrantRequest(BaseModel):
    """Explicit resource:action[:scopeType[:scopeValue]] permission."""
    permission: str = Field(..., min_length=3, max_length=255)


class CopyFromUserRequest(BaseModel):
    source_user_id: int = Field(..., validation_alias=AliasChoices("source_user_id", "sourceUserId"))


class CopyFromRoleRequest(BaseModel):
    source_role_id: int = Field(..., validation_alias=AliasChoices("source_role_id", "sourceRoleId"))


class AccessCheckRequest(BaseModel):
    """Ask whether the caller may perform method on path."""
    method: str
    path: str = Field(..., min_length=1)

    @field_validator('method')
    @classmethod
    def method_supported(cls, v: str) -> str:
        v = v.upper()
        if v not in HTTP_METHOD_ACTIONS:
            raise ValueError(f"Method must be one of {', '.join(HTTP_METHOD_ACTIONS)}")
        return v


# ============================================================================
# Response Schemas
# ============================================================================

class GrantResponse(BaseModel):
    id: str
    subject_id: int
    leaf_permission_id: str
    is_active: bool
    granted_by: Optional[int] = None
    granted_via: Optional[str] = None
    granted_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PageGrantResponse(BaseModel):
    grant: GrantResponse
    operations_granted: int

    model_config = ConfigDict(from_attributes=True)


class RevokeResponse(BaseModel):
    leaf: str
    revoked: bool
    deactivated_operations: List[str] = []

    model_config = ConfigDict(from_attributes=True)


class BulkGrantEntryResponse(BaseModel):
    page_id: str
    action: str
    success: bool
    error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class BulkGrantResponse(BaseModel):
    results: List[BulkGrantEntryResponse]
    granted: int
    failed: int


class PageAccessResponse(BaseModel):
    """Effective access to one page."""
    view: bool
    edit: bool
    view_from_role: bool = Field(False, serialization_alias="viewFromRole")
    edit_from_role: bool = Field(False, serialization_alias="editFromRole")
    custom_modes: List[str] = Field([], serialization_alias="customModes")

    model_config = ConfigDict(from_attributes=True)


class EffectiveGrantResponse(BaseModel):
    leaf_permission_id: str
    source: GrantSource
    role_id: Optional[int] = None
    granted_via: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class DecisionResponse(BaseModel):
    allowed: bool
    subject_id: Optional[int] = None
    method: str
    path: str
    required_permission: Optional[str] = Field(None, serialization_alias="requiredPermission")
    matched_policy: Optional[str] = Field(None, serialization_alias="matchedPolicy")

    model_config = ConfigDict(from_attributes=True)
