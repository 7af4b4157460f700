"""
Grant/revoke lifecycle for users and roles.

Granting a page (or custom mode) stores the page leaf and a direct
resource:action grant for every API operation it needs, remembering which
leaf added them. Revoking undoes only what that kind of grant added and
leaves alone operations another active page or mode grant still needs.

Only APPROVED users may receive grants; roles have no approval state.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AppError, AuthorizationConflictError, NotFoundError, ValidationError
from app.features.permissions.models import Grant, Role
from app.features.permissions.presets import get_preset
from app.features.permissions.registry import (
    PAGE_ACTIONS,
    PermissionRegistry,
    custom_mode_permission_key,
    page_permission_key,
    parse_page_key,
)
from app.features.permissions.scope import parse_permission
from app.features.permissions.store import EffectiveGrant, GrantStore, Subject
from app.features.users.models import ApprovalStatus, User
from app.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Result Types
# ============================================================================

@dataclass
class PageGrantResult:
    grant: Grant
    operations_granted: int


@dataclass
class RevokeResult:
    leaf: str
    revoked: bool
    deactivated_operations: List[str] = field(default_factory=list)


@dataclass
class BulkGrantEntryResult:
    page_id: str
    action: str
    success: bool
    error: Optional[str] = None


@dataclass
class PageAccess:
    view: bool = False
    edit: bool = False
    view_from_role: bool = False
    edit_from_role: bool = False
    custom_modes: List[str] = field(default_factory=list)


# ============================================================================
# Lifecycle Manager
# ============================================================================

class PermissionLifecycleManager:
    """
    Usage:
        manager = PermissionLifecycleManager(db, registry)
        await manager.grant_page_permission(Subject.user(7), "students", "view", granted_by=1)
    """

    def __init__(self, session: AsyncSession, registry: PermissionRegistry):
        self.session = session
        self.registry = registry
        self.store = GrantStore(session)

    # ------------------------------------------------------------- subjects

    async def get_subject(self, subject: Subject) -> Union[User, Role]:
        """Load the user or role behind a subject, raising NotFoundError."""
        if subject.is_role:
            role = await self.session.get(Role, subject.id)
            if role is None:
                raise NotFoundError(f"Role {subject.id} not found")
            return role
        user = await self.session.get(User, subject.id)
        if user is None:
            raise NotFoundError(f"User {subject.id} not found")
        return user

    async def _require_grantable(self, subject: Subject) -> None:
        record = await self.get_subject(subject)
        if isinstance(record, User) and record.approval_status != ApprovalStatus.APPROVED:
            raise ValidationError(
                f'Cannot grant permissions to user with status "{record.approval_status.value}"',
                hint="Only APPROVED users can receive permissions",
            )

    # ------------------------------------------------------------ page grants

    async def grant_page_permission(
        self,
        subject: Subject,
        page_id: str,
        action: str,
        granted_by: Optional[int] = None,
    ) -> PageGrantResult:
        """
        Grant view or edit on a page together with its API operations.

        Raises:
            ValidationError: bad action, edit on a view-only page, or the user
                is not APPROVED
            NotFoundError: unknown page or subject
        """
        if action not in PAGE_ACTIONS:
            raise ValidationError(f'Invalid page action "{action}"', hint='Use "view" or "edit"')
        page = self.registry.get_page(page_id)
        await self._require_grantable(subject)
        if action == "edit" and not page.supports_edit_mode:
            raise ValidationError(
                f'Page "{page_id}" does not support edit mode',
                hint='Grant "view" instead',
            )

        key = page_permission_key(page_id, action)
        grant = await self.store.upsert(subject, key, granted_by=granted_by)
        operations = self.registry.required_operations(page_id, action)
        for op in operations:
            await self.store.upsert(subject, op.key, granted_by=granted_by, granted_via=key)

        log.info("Granted %s to %s (%d operations)", key, subject, len(operations))
        return PageGrantResult(grant=grant, operations_granted=len(operations))

    async def revoke_page_permission(self, subject: Subject, page_id: str, action: str) -> RevokeResult:
        """
        Revoke a directly held page permission.

        Unknown pages and permissions not held directly are successful no-ops.
        Role grants are never touched.

        Raises:
            AuthorizationConflictError: revoking view while edit is held directly
        """
        if action not in PAGE_ACTIONS:
            raise ValidationError(f'Invalid page action "{action}"', hint='Use "view" or "edit"')
        await self.get_subject(subject)
        key = page_permission_key(page_id, action)
        if not self.registry.has_page(page_id):
            return RevokeResult(leaf=key, revoked=False)

        if action == "view":
            edit_grant = await self.store.get(subject, page_permission_key(page_id, "edit"))
            if edit_grant is not None and edit_grant.is_active:
                raise AuthorizationConflictError(
                    f'Cannot revoke view on "{page_id}" while edit is granted',
                    hint="Revoke edit instead; view is implied by edit",
                )

        return await self._revoke_bundle(subject, key)

    # ------------------------------------------------------------ custom modes

    async def grant_custom_mode_permission(
        self,
        subject: Subject,
        page_id: str,
        mode_id: str,
        granted_by: Optional[int] = None,
    ) -> PageGrantResult:
        operations = self.registry.custom_mode_operations(page_id, mode_id)
        await self._require_grantable(subject)

        key = custom_mode_permission_key(page_id, mode_id)
        grant = await self.store.upsert(subject, key, granted_by=granted_by)
        for op in operations:
            await self.store.upsert(subject, op.key, granted_by=granted_by, granted_via=key)

        log.info("Granted %s to %s (%d operations)", key, subject, len(operations))
        return PageGrantResult(grant=grant, operations_granted=len(operations))

    async def revoke_custom_mode_permission(self, subject: Subject, page_id: str, mode_id: str) -> RevokeResult:
        self.registry.get_custom_mode(page_id, mode_id)
        await self.get_subject(subject)
        return await self._revoke_bundle(subject, custom_mode_permission_key(page_id, mode_id))

    # ------------------------------------------------------------ explicit leaves

    async def grant_permission(self, subject: Subject, permission: str, granted_by: Optional[int] = None) -> Grant:
        """Grant a resource:action[:scope] leaf directly."""
        self._validate_api_leaf(permission)
        await self._require_grantable(subject)
        grant = await self.store.upsert(subject, permission, granted_by=granted_by)
        if grant.granted_via is not None:
            # Now held in its own right; page revokes must not remove it
            grant.granted_via = None
            await self.session.commit()
        return grant

    async def revoke_permission(self, subject: Subject, permission: str) -> RevokeResult:
        self._validate_api_leaf(permission)
        await self.get_subject(subject)
        revoked = await self.store.deactivate(subject, permission)
        return RevokeResult(leaf=permission, revoked=revoked)

    # ------------------------------------------------------------ bulk

    async def bulk_grant(
        self,
        subject: Subject,
        entries: Iterable[Tuple[str, str]],
        granted_by: Optional[int] = None,
    ) -> List[BulkGrantEntryResult]:
        """
        Grant each (page_id, action) in turn.

        Not atomic: a failing entry is reported and the rest still run.
        """
        results = []
        for page_id, action in entries:
            try:
                await self.grant_page_permission(subject, page_id, action, granted_by=granted_by)
            except AppError as e:
                log.warning("Bulk grant of page:%s:%s to %s failed: %s", page_id, action, subject, e.message)
                results.append(BulkGrantEntryResult(page_id, action, success=False, error=e.message))
            except Exception:
                log.exception("Bulk grant of page:%s:%s to %s failed", page_id, action, subject)
                await self.session.rollback()
                results.append(BulkGrantEntryResult(page_id, action, success=False, error="Internal error"))
            else:
                results.append(BulkGrantEntryResult(page_id, action, success=True))
        return results

    async def apply_preset(
        self,
        subject: Subject,
        preset_id: str,
        granted_by: Optional[int] = None,
    ) -> List[BulkGrantEntryResult]:
        preset = get_preset(preset_id)
        await self.get_subject(subject)
        log.info("Applying preset %s to %s", preset_id, subject)
        return await self.bulk_grant(
            subject,
            [(entry.page_id, entry.action) for entry in preset.permissions],
            granted_by=granted_by,
        )

    async def copy_permissions(
        self,
        source: Subject,
        target: Subject,
        granted_by: Optional[int] = None,
    ) -> List[BulkGrantEntryResult]:
        """Grant target every page permission source currently has."""
        access = await self.effective_page_permissions(source)
        await self.get_subject(target)
        entries = []
        for page_id, page_access in access.items():
            if page_access.view:
                entries.append((page_id, "view"))
            if page_access.edit and self.registry.get_page(page_id).supports_edit_mode:
                entries.append((page_id, "edit"))
        log.info("Copying %d page permissions from %s to %s", len(entries), source, target)
        return await self.bulk_grant(target, entries, granted_by=granted_by)

    # ------------------------------------------------------------ reads

    async def effective_grants(self, subject: Subject) -> List[EffectiveGrant]:
        """Active leaves for a subject; users also see their role's leaves."""
        record = await self.get_subject(subject)
        if isinstance(record, User):
            return await self.store.effective_grants(record.id, record.role_id)
        return [
            EffectiveGrant(g.leaf_permission_id, g.source, None, g.granted_via)
            for g in await self.store.list_active_for_role(subject.id)
        ]

    async def effective_page_permissions(self, subject: Subject) -> Dict[str, PageAccess]:
        """
        Page -> access map. Admins get view and edit on every page.

        A flag is tagged *_from_role when the role is its only active source.
        Edit implies view.
        """
        record = await self.get_subject(subject)
        if isinstance(record, User) and record.is_admin:
            return {page_id: PageAccess(view=True, edit=True) for page_id in self.registry.page_ids}

        access = {page_id: PageAccess() for page_id in self.registry.page_ids}
        direct: Set[Tuple[str, str]] = set()
        from_role: Set[Tuple[str, str]] = set()
        for grant in await self.effective_grants(subject):
            parsed = parse_page_key(grant.leaf_permission_id)
            if parsed is None or parsed[0] not in access:
                continue
            if grant.is_direct:
                direct.add(parsed)
            else:
                from_role.add(parsed)

        for page_id, page_access in access.items():
            for action in PAGE_ACTIONS:
                held_directly = (page_id, action) in direct
                held_by_role = (page_id, action) in from_role
                if held_directly or held_by_role:
                    setattr(page_access, action, True)
                    setattr(page_access, f"{action}_from_role", not held_directly)
            if page_access.edit and not page_access.view:
                page_access.view = True
                page_access.view_from_role = page_access.edit_from_role
            page_access.custom_modes = sorted(
                mode[len("mode:"):]
                for (p, mode) in direct | from_role
                if p == page_id and mode.startswith("mode:")
            )
        return access

    # ------------------------------------------------------------ internals

    async def _revoke_bundle(self, subject: Subject, key: str) -> RevokeResult:
        grant = await self.store.get(subject, key)
        if grant is None or not grant.is_active:
            return RevokeResult(leaf=key, revoked=False)

        await self.store.deactivate(subject, key)

        still_required: Set[str] = set()
        for leaf in await self.store.active_leaves(subject):
            still_required.update(op.key for op in self.registry.operations_for_key(leaf))

        deactivated = []
        for op in self.registry.operations_for_key(key):
            if op.key in still_required or op.key in deactivated:
                continue
            op_grant = await self.store.get(subject, op.key)
            # Explicitly granted operations have no granted_via and stay
            if op_grant is None or not op_grant.is_active or op_grant.granted_via is None:
                continue
            await self.store.deactivate(subject, op.key)
            deactivated.append(op.key)

        log.info("Revoked %s from %s (%d operations)", key, subject, len(deactivated))
        return RevokeResult(leaf=key, revoked=True, deactivated_operations=deactivated)

    @staticmethod
    def _validate_api_leaf(permission: str) -> None:
        if permission.startswith("page:"):
            raise ValidationError(
                f"Page permissions cannot be granted as plain permissions: {permission}",
                hint="Use grant-page or grant-custom-mode",
            )
        parse_permission(permission)

