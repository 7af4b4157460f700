"""
Permission management API routes.

Provides the catalog listings, the caller's own permissions, grant/revoke
endpoints for users and roles, and an access check endpoint. Every route is
authorized by the router-level dependency installed in app.main.
"""
from typing import Annotated, Dict, List
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.permissions.dependencies import get_lifecycle_manager, get_registry, get_resolver
from app.features.permissions.models import Role
from app.features.permissions.presets import PermissionPreset, get_all_presets
from app.features.permissions.registry import PagePermission
from app.features.permissions.schemas import (
    AccessCheckRequest,
    ApplyPresetRequest,
    BulkGrantEntryResponse,
    BulkGrantResponse,
    BulkPageGrantRequest,
    CopyFromRoleRequest,
    CopyFromUserRequest,
    CustomModeRequest,
    DecisionResponse,
    EffectiveGrantResponse,
    GrantResponse,
    PageAccessResponse,
    PageGrantRequest,
    PageGrantResponse,
    PermissionGrantRequest,
    RevokeResponse,
    RoleCreate,
    RoleResponse,
)
from app.features.permissions.service import (
    BulkGrantEntryResult,
    PageAccess,
    PageGrantResult,
    PermissionLifecycleManager,
)
from app.features.permissions.store import Subject
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()
roles_router = APIRouter()

Manager = Annotated[PermissionLifecycleManager, Depends(get_lifecycle_manager)]
CurrentUser = Annotated[User, Depends(get_current_user)]


def _page_grant_response(result: PageGrantResult) -> PageGrantResponse:
    return PageGrantResponse(
        grant=GrantResponse.model_validate(result.grant),
        operations_granted=result.operations_granted,
    )


def _bulk_response(results: List[BulkGrantEntryResult]) -> BulkGrantResponse:
    granted = sum(1 for r in results if r.success)
    return BulkGrantResponse(
        results=[BulkGrantEntryResponse.model_validate(r) for r in results],
        granted=granted,
        failed=len(results) - granted,
    )


def _access_response(access: Dict[str, PageAccess]) -> Dict[str, PageAccessResponse]:
    return {page_id: PageAccessResponse.model_validate(a) for page_id, a in access.items()}


# ============================================================================
# Catalog Routes
# ============================================================================

@router.get("/pages", response_model=List[PagePermission])
async def list_pages(request: Request):
    """All page permissions with their API operations."""
    return get_registry(request).pages


@router.get("/presets", response_model=List[PermissionPreset])
async def list_presets():
    return get_all_presets()


# ============================================================================
# Self Routes
# ============================================================================

@router.get("/my-page-permissions", response_model=Dict[str, PageAccessResponse])
async def get_my_page_permissions(current_user: CurrentUser, manager: Manager):
    """Page access of the current user, including what their role grants."""
    return _access_response(await manager.effective_page_permissions(Subject.user(current_user.id)))


@router.get("/my-permissions", response_model=List[EffectiveGrantResponse])
async def get_my_permissions(current_user: CurrentUser, manager: Manager):
    grants = await manager.effective_grants(Subject.user(current_user.id))
    return [EffectiveGrantResponse.model_validate(g._asdict()) for g in grants]


@router.post("/check", response_model=DecisionResponse)
async def check_access(data: AccessCheckRequest, request: Request, current_user: CurrentUser):
    """Resolve an arbitrary method/path for the caller without performing it."""
    decision = await get_resolver(request).resolve(current_user.id, data.method, data.path)
    return DecisionResponse.model_validate(decision)


# ============================================================================
# Page Permission Routes (users)
# ============================================================================

@router.get("/users/{user_id}/page-permissions", response_model=Dict[str, PageAccessResponse])
async def get_user_page_permissions(user_id: int, manager: Manager):
    return _access_response(await manager.effective_page_permissions(Subject.user(user_id)))


@router.post("/users/{user_id}/grant-page", response_model=PageGrantResponse)
async def grant_page_to_user(user_id: int, data: PageGrantRequest, current_user: CurrentUser, manager: Manager):
    result = await manager.grant_page_permission(
        Subject.user(user_id), data.page_id, data.action, granted_by=current_user.id
    )
    return _page_grant_response(result)


@router.post("/users/{user_id}/revoke-page", response_model=RevokeResponse)
async def revoke_page_from_user(user_id: int, data: PageGrantRequest, manager: Manager):
    return RevokeResponse.model_validate(
        await manager.revoke_page_permission(Subject.user(user_id), data.page_id, data.action)
    )


@router.post("/users/{user_id}/bulk-grant-page", response_model=BulkGrantResponse)
async def bulk_grant_pages_to_user(
    user_id: int, data: BulkPageGrantRequest, current_user: CurrentUser, manager: Manager
):
    results = await manager.bulk_grant(
        Subject.user(user_id),
        [(entry.page_id, entry.action) for entry in data.permissions],
        granted_by=current_user.id,
    )
    return _bulk_response(results)


@router.post("/users/{user_id}/grant-custom-mode", response_model=PageGrantResponse)
async def grant_custom_mode_to_user(
    user_id: int, data: CustomModeRequest, current_user: CurrentUser, manager: Manager
):
    result = await manager.grant_custom_mode_permission(
        Subject.user(user_id), data.page_id, data.mode_id, granted_by=current_user.id
    )
    return _page_grant_response(result)


@router.post("/users/{user_id}/revoke-custom-mode", response_model=RevokeResponse)
async def revoke_custom_mode_from_user(user_id: int, data: CustomModeRequest, manager: Manager):
    return RevokeResponse.model_validate(
        await manager.revoke_custom_mode_permission(Subject.user(user_id), data.page_id, data.mode_id)
    )


@router.post("/users/{user_id}/apply-preset", response_model=BulkGrantResponse)
async def apply_preset_to_user(
    user_id: int, data: ApplyPresetRequest, current_user: CurrentUser, manager: Manager
):
    results = await manager.apply_preset(Subject.user(user_id), data.preset_id, granted_by=current_user.id)
    return _bulk_response(results)


@router.post("/users/{user_id}/grant", response_model=GrantResponse)
async def grant_permission_to_user(
    user_id: int, data: PermissionGrantRequest, current_user: CurrentUser, manager: Manager
):
    """Grant an explicit resource:action[:scope] permission."""
    grant = await manager.grant_permission(Subject.user(user_id), data.permission, granted_by=current_user.id)
    return GrantResponse.model_validate(grant)


@router.post("/users/{user_id}/revoke", response_model=RevokeResponse)
async def revoke_permission_from_user(user_id: int, data: PermissionGrantRequest, manager: Manager):
    return RevokeResponse.model_validate(
        await manager.revoke_permission(Subject.user(user_id), data.permission)
    )


@router.post("/users/{user_id}/copy-from-user", response_model=BulkGrantResponse)
async def copy_permissions_from_user(
    user_id: int, data: CopyFromUserRequest, current_user: CurrentUser, manager: Manager
):
    results = await manager.copy_permissions(
        Subject.user(data.source_user_id), Subject.user(user_id), granted_by=current_user.id
    )
    return _bulk_response(results)


@router.post("/users/{user_id}/copy-from-role", response_model=BulkGrantResponse)
async def copy_permissions_from_role_to_user(
    user_id: int, data: CopyFromRoleRequest, current_user: CurrentUser, manager: Manager
):
    results = await manager.copy_permissions(
        Subject.role(data.source_role_id), Subject.user(user_id), granted_by=current_user.id
    )
    return _bulk_response(results)


# ============================================================================
# Page Permission Routes (roles)
# ============================================================================

@router.get("/roles/{role_id}/page-permissions", response_model=Dict[str, PageAccessResponse])
async def get_role_page_permissions(role_id: int, manager: Manager):
    return _access_response(await manager.effective_page_permissions(Subject.role(role_id)))


@router.post("/roles/{role_id}/grant-page", response_model=PageGrantResponse)
async def grant_page_to_role(role_id: int, data: PageGrantRequest, current_user: CurrentUser, manager: Manager):
    result = await manager.grant_page_permission(
        Subject.role(role_id), data.page_id, data.action, granted_by=current_user.id
    )
    return _page_grant_response(result)


@router.post("/roles/{role_id}/revoke-page", response_model=RevokeResponse)
async def revoke_page_from_role(role_id: int, data: PageGrantRequest, manager: Manager):
    return RevokeResponse.model_validate(
        await manager.revoke_page_permission(Subject.role(role_id), data.page_id, data.action)
    )


@router.post("/roles/{role_id}/bulk-grant-page", response_model=BulkGrantResponse)
async def bulk_grant_pages_to_role(
    role_id: int, data: BulkPageGrantRequest, current_user: CurrentUser, manager: Manager
):
    results = await manager.bulk_grant(
        Subject.role(role_id),
        [(entry.page_id, entry.action) for entry in data.permissions],
        granted_by=current_user.id,
    )
    return _bulk_response(results)


@router.post("/roles/{role_id}/grant-custom-mode", response_model=PageGrantResponse)
async def grant_custom_mode_to_role(
    role_id: int, data: CustomModeRequest, current_user: CurrentUser, manager: Manager
):
    result = await manager.grant_custom_mode_permission(
        Subject.role(role_id), data.page_id, data.mode_id, granted_by=current_user.id
    )
    return _page_grant_response(result)


@router.post("/roles/{role_id}/revoke-custom-mode", response_model=RevokeResponse)
async def revoke_custom_mode_from_role(role_id: int, data: CustomModeRequest, manager: Manager):
    return RevokeResponse.model_validate(
        await manager.revoke_custom_mode_permission(Subject.role(role_id), data.page_id, data.mode_id)
    )


@router.post("/roles/{role_id}/apply-preset", response_model=BulkGrantResponse)
async def apply_preset_to_role(
    role_id: int, data: ApplyPresetRequest, current_user: CurrentUser, manager: Manager
):
    results = await manager.apply_preset(Subject.role(role_id), data.preset_id, granted_by=current_user.id)
    return _bulk_response(results)


@router.post("/roles/{role_id}/copy-from-role", response_model=BulkGrantResponse)
async def copy_permissions_between_roles(
    role_id: int, data: CopyFromRoleRequest, current_user: CurrentUser, manager: Manager
):
    results = await manager.copy_permissions(
        Subject.role(data.source_role_id), Subject.role(role_id), granted_by=current_user.id
    )
    return _bulk_response(results)


# ============================================================================
# Role Routes (mounted at /api/roles)
# ============================================================================

@roles_router.get("", response_model=List[RoleResponse])
async def list_roles(
    db: Annotated[AsyncSession, Depends(get_db)],
    skip: int = 0,
    limit: int = 100,
):
    result = await db.execute(select(Role).order_by(Role.id).offset(skip).limit(limit))
    return result.scalars().all()


@roles_router.get("/{role_id}", response_model=RoleResponse)
async def get_role(role_id: int, db: Annotated[AsyncSession, Depends(get_db)]):
    role = await db.get(Role, role_id)
    if role is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    return role


@roles_router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(role: RoleCreate, db: Annotated[AsyncSession, Depends(get_db)]):
    """Create a new role."""
    try:
        db_role = Role(**role.model_dump())
        db.add(db_role)
        await db.commit()
        await db.refresh(db_role)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Role with this name already exists"
        )
    log.info("Created role %s (%s)", db_role.id, db_role.name)
    return db_role
