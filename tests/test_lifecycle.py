"""Tests for grant/revoke lifecycle semantics."""

from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from app.core.errors import AuthorizationConflictError, NotFoundError, ValidationError
from app.features.permissions.models import Grant, GrantSource
from app.features.permissions.store import GrantStore, Subject
from app.features.users.models import ApprovalStatus


async def _active_leaves(db, subject):
    return set(await GrantStore(db).active_leaves(subject))


class TestGrantPagePermission:
    async def test_grants_page_and_operations(self, make_user, manager, registry, db):
        user = await make_user()
        subject = Subject.user(user.id)

        result = await manager.grant_page_permission(subject, "students", "view", granted_by=1)

        assert result.grant.leaf_permission_id == "page:students:view"
        assert result.grant.granted_by == 1
        expected_ops = {op.key for op in registry.required_operations("students", "view")}
        assert result.operations_granted == len(expected_ops)
        assert await _active_leaves(db, subject) == {"page:students:view"} | expected_ops

    async def test_idempotent(self, make_user, manager, db):
        user = await make_user()
        subject = Subject.user(user.id)

        first = await manager.grant_page_permission(subject, "students", "view")
        second = await manager.grant_page_permission(subject, "students", "view")

        assert first.grant.id == second.grant.id
        count = await db.scalar(
            select(func.count()).select_from(Grant).where(Grant.leaf_permission_id == "page:students:view")
        )
        assert count == 1

    async def test_regrant_reactivates_same_row(self, make_user, manager):
        user = await make_user()
        subject = Subject.user(user.id)
        first = await manager.grant_page_permission(subject, "soc", "view")
        await manager.revoke_page_permission(subject, "soc", "view")
        again = await manager.grant_page_permission(subject, "soc", "view", granted_by=5)

        assert again.grant.id == first.grant.id
        assert again.grant.is_active
        assert again.grant.granted_by == 5

    async def test_unknown_page(self, make_user, manager):
        user = await make_user()
        with pytest.raises(NotFoundError):
            await manager.grant_page_permission(Subject.user(user.id), "nope", "view")

    async def test_unknown_subject(self, manager):
        with pytest.raises(NotFoundError):
            await manager.grant_page_permission(Subject.user(404), "students", "view")
        with pytest.raises(NotFoundError):
            await manager.grant_page_permission(Subject.role(404), "students", "view")

    async def test_edit_on_view_only_page(self, make_user, manager):
        user = await make_user()
        with pytest.raises(ValidationError):
            await manager.grant_page_permission(Subject.user(user.id), "dashboard", "edit")

    async def test_invalid_action(self, make_user, manager):
        user = await make_user()
        with pytest.raises(ValidationError):
            await manager.grant_page_permission(Subject.user(user.id), "students", "delete")

    @pytest.mark.parametrize("status", [ApprovalStatus.CREATED, ApprovalStatus.PENDING, ApprovalStatus.REJECTED])
    async def test_only_approved_users(self, make_user, manager, db, status):
        user = await make_user(approval_status=status)
        with pytest.raises(ValidationError) as exc:
            await manager.grant_page_permission(Subject.user(user.id), "students", "view")
        assert exc.value.hint == "Only APPROVED users can receive permissions"
        assert await _active_leaves(db, Subject.user(user.id)) == set()

    async def test_roles_have_no_approval_check(self, make_role, manager, db):
        role = await make_role("viewer")
        await manager.grant_page_permission(Subject.role(role.id), "soc", "view")
        assert "page:soc:view" in await _active_leaves(db, Subject.role(role.id))


class TestRevokePagePermission:
    async def test_revoke_absent_is_success(self, make_user, manager):
        user = await make_user()
        result = await manager.revoke_page_permission(Subject.user(user.id), "students", "view")
        assert result.revoked is False

    async def test_revoke_unknown_page_is_success(self, make_user, manager):
        user = await make_user()
        result = await manager.revoke_page_permission(Subject.user(user.id), "nope", "view")
        assert result.revoked is False

    async def test_revoke_twice(self, make_user, manager):
        user = await make_user()
        subject = Subject.user(user.id)
        await manager.grant_page_permission(subject, "soc", "view")
        assert (await manager.revoke_page_permission(subject, "soc", "view")).revoked is True
        assert (await manager.revoke_page_permission(subject, "soc", "view")).revoked is False

    async def test_revoke_removes_added_operations(self, make_user, manager, db):
        user = await make_user()
        subject = Subject.user(user.id)
        await manager.grant_page_permission(subject, "soc", "view")

        result = await manager.revoke_page_permission(subject, "soc", "view")

        assert result.revoked
        assert set(result.deactivated_operations) == {"soc:read"}
        assert await _active_leaves(db, subject) == set()

    async def test_edit_blocks_view_revoke(self, make_user, manager, db):
        user = await make_user()
        subject = Subject.user(user.id)
        await manager.grant_page_permission(subject, "students", "view")
        await manager.grant_page_permission(subject, "students", "edit")

        with pytest.raises(AuthorizationConflictError) as exc:
            await manager.revoke_page_permission(subject, "students", "view")
        assert "view is implied by edit" in exc.value.hint
        assert "page:students:view" in await _active_leaves(db, subject)

    async def test_edit_only_also_blocks_view_revoke(self, make_user, manager):
        user = await make_user()
        subject = Subject.user(user.id)
        await manager.grant_page_permission(subject, "students", "edit")
        with pytest.raises(AuthorizationConflictError):
            await manager.revoke_page_permission(subject, "students", "view")

    async def test_shared_operations_survive(self, make_user, manager, db):
        user = await make_user()
        subject = Subject.user(user.id)
        # Both pages need tracks:read
        await manager.grant_page_permission(subject, "students", "view")
        await manager.grant_page_permission(subject, "tracks", "view")

        result = await manager.revoke_page_permission(subject, "students", "view")

        assert "tracks:read" not in result.deactivated_operations
        leaves = await _active_leaves(db, subject)
        assert "tracks:read" in leaves
        assert "students:read" not in leaves

        await manager.revoke_page_permission(subject, "tracks", "view")
        assert "tracks:read" not in await _active_leaves(db, subject)

    async def test_explicit_grant_survives_page_revoke(self, make_user, manager, db):
        user = await make_user()
        subject = Subject.user(user.id)
        await manager.grant_permission(subject, "soc:read")
        await manager.grant_page_permission(subject, "soc", "view")

        await manager.revoke_page_permission(subject, "soc", "view")

        assert await _active_leaves(db, subject) == {"soc:read"}

    async def test_explicit_grant_after_page_grant_is_kept(self, make_user, manager, db):
        user = await make_user()
        subject = Subject.user(user.id)
        await manager.grant_page_permission(subject, "soc", "view")
        grant = await manager.grant_permission(subject, "soc:read")
        assert grant.granted_via is None

        await manager.revoke_page_permission(subject, "soc", "view")
        assert await _active_leaves(db, subject) == {"soc:read"}

    async def test_role_grant_is_not_revoked_through_user(self, make_user, make_role, manager, db, resolver):
        role = await make_role("teacher")
        user = await make_user(role_id=role.id)
        await manager.grant_page_permission(Subject.role(role.id), "students", "view")

        result = await manager.revoke_page_permission(Subject.user(user.id), "students", "view")

        assert result.revoked is False
        assert "page:students:view" in await _active_leaves(db, Subject.role(role.id))
        assert (await resolver.resolve(user.id, "GET", "/api/students")).allowed

    async def test_role_edit_does_not_block_direct_view_revoke(self, make_user, make_role, manager):
        role = await make_role("editor")
        user = await make_user(role_id=role.id)
        await manager.grant_page_permission(Subject.role(role.id), "students", "edit")
        await manager.grant_page_permission(Subject.user(user.id), "students", "view")

        result = await manager.revoke_page_permission(Subject.user(user.id), "students", "view")
        assert result.revoked is True


class TestCustomModes:
    async def test_grant_and_revoke(self, make_user, manager, db, resolver):
        user = await make_user()
        subject = Subject.user(user.id)

        result = await manager.grant_custom_mode_permission(subject, "students", "teacher")

        assert result.grant.leaf_permission_id == "page:students:mode:teacher"
        assert await _active_leaves(db, subject) == {
            "page:students:mode:teacher", "students:read", "classes:read",
        }
        assert (await resolver.resolve(user.id, "GET", "/api/classes")).allowed

        revoked = await manager.revoke_custom_mode_permission(subject, "students", "teacher")
        assert revoked.revoked
        assert await _active_leaves(db, subject) == set()

    async def test_mode_and_page_share_operations(self, make_user, manager, db):
        user = await make_user()
        subject = Subject.user(user.id)
        await manager.grant_page_permission(subject, "students", "view")
        await manager.grant_custom_mode_permission(subject, "students", "counselor")

        await manager.revoke_custom_mode_permission(subject, "students", "counselor")

        leaves = await _active_leaves(db, subject)
        assert "students:read" in leaves
        assert "student-exits:read" not in leaves

    async def test_unknown_mode(self, make_user, manager):
        user = await make_user()
        with pytest.raises(NotFoundError):
            await manager.grant_custom_mode_permission(Subject.user(user.id), "students", "principal")
        with pytest.raises(NotFoundError):
            await manager.revoke_custom_mode_permission(Subject.user(user.id), "students", "principal")


class TestExplicitPermissions:
    async def test_grant_validates(self, make_user, manager):
        user = await make_user()
        with pytest.raises(ValidationError):
            await manager.grant_permission(Subject.user(user.id), "students")
        with pytest.raises(ValidationError):
            await manager.grant_permission(Subject.user(user.id), "students:read:department:x")
        with pytest.raises(ValidationError):
            await manager.grant_permission(Subject.user(user.id), "page:students:view")

    async def test_state_machine(self, make_user, manager):
        user = await make_user()
        subject = Subject.user(user.id)

        assert (await manager.revoke_permission(subject, "reports:read")).revoked is False
        first = await manager.grant_permission(subject, "reports:read")
        second = await manager.grant_permission(subject, "reports:read")
        assert first.id == second.id and second.is_active
        assert (await manager.revoke_permission(subject, "reports:read")).revoked is True
        assert (await manager.revoke_permission(subject, "reports:read")).revoked is False
        third = await manager.grant_permission(subject, "reports:read")
        assert third.id == first.id and third.is_active


class TestBulkAndPresets:
    async def test_bulk_partial_failure(self, make_user, manager, db):
        user = await make_user()
        subject = Subject.user(user.id)

        results = await manager.bulk_grant(subject, [
            ("students", "view"),
            ("nope", "view"),
            ("dashboard", "edit"),
            ("soc", "view"),
        ])

        assert [r.success for r in results] == [True, False, False, True]
        assert results[1].error == 'Page "nope" not found'
        assert "edit mode" in results[2].error
        leaves = await _active_leaves(db, subject)
        assert {"page:students:view", "page:soc:view"} <= leaves

    async def test_bulk_continues_after_store_failure(self, make_user, manager, db):
        user = await make_user()
        subject = Subject.user(user.id)
        upsert = GrantStore.upsert

        async def failing_upsert(self, grant_subject, leaf, *args, **kwargs):
            if leaf == "page:students:view":
                raise RuntimeError("disk full")
            return await upsert(self, grant_subject, leaf, *args, **kwargs)

        with patch.object(GrantStore, "upsert", new=failing_upsert):
            results = await manager.bulk_grant(subject, [("students", "view"), ("soc", "view")])

        assert [r.success for r in results] == [False, True]
        assert results[0].error == "Internal error"
        leaves = await _active_leaves(db, subject)
        assert "page:soc:view" in leaves
        assert "page:students:view" not in leaves

    async def test_apply_preset(self, make_user, manager, db):
        user = await make_user()
        subject = Subject.user(user.id)

        results = await manager.apply_preset(subject, "teacher")

        assert all(r.success for r in results)
        leaves = await _active_leaves(db, subject)
        assert {"page:dashboard:view", "page:students:edit"} <= leaves
        assert "students:create" in leaves

    async def test_apply_unknown_preset(self, make_user, manager):
        user = await make_user()
        with pytest.raises(NotFoundError) as exc:
            await manager.apply_preset(Subject.user(user.id), "principal")
        assert "teacher" in exc.value.hint

    async def test_apply_preset_to_unapproved_user_reports_failures(self, make_user, manager):
        user = await make_user(approval_status=ApprovalStatus.PENDING)
        results = await manager.apply_preset(Subject.user(user.id), "viewer")
        assert results and not any(r.success for r in results)

    async def test_copy_from_user(self, make_user, manager):
        source = await make_user()
        target = await make_user()
        await manager.grant_page_permission(Subject.user(source.id), "students", "edit")
        await manager.grant_page_permission(Subject.user(source.id), "soc", "view")

        results = await manager.copy_permissions(Subject.user(source.id), Subject.user(target.id))

        assert all(r.success for r in results)
        access = await manager.effective_page_permissions(Subject.user(target.id))
        assert access["students"].edit and access["students"].view
        assert access["soc"].view and not access["soc"].edit
        assert not access["resources"].view

    async def test_copy_from_admin_skips_view_only_edit(self, make_user, manager):
        admin = await make_user(is_admin=True)
        target = await make_user()

        results = await manager.copy_permissions(Subject.user(admin.id), Subject.user(target.id))

        assert all(r.success for r in results)
        assert ("dashboard", "edit") not in {(r.page_id, r.action) for r in results}

    async def test_copy_from_role(self, make_user, make_role, manager):
        role = await make_role("counselor")
        target = await make_user()
        await manager.apply_preset(Subject.role(role.id), "counselor")

        await manager.copy_permissions(Subject.role(role.id), Subject.user(target.id))

        access = await manager.effective_page_permissions(Subject.user(target.id))
        assert access["soc"].view and not access["soc"].view_from_role


class TestEffectivePagePermissions:
    async def test_admin_gets_everything(self, make_user, manager, registry):
        admin = await make_user(is_admin=True)
        access = await manager.effective_page_permissions(Subject.user(admin.id))
        assert set(access) == set(registry.page_ids)
        assert all(a.view and a.edit for a in access.values())

    async def test_role_tagging(self, make_user, make_role, manager):
        role = await make_role("teacher")
        user = await make_user(role_id=role.id)
        await manager.grant_page_permission(Subject.role(role.id), "students", "view")
        await manager.grant_page_permission(Subject.role(role.id), "soc", "view")
        await manager.grant_page_permission(Subject.user(user.id), "soc", "view")
        await manager.grant_custom_mode_permission(Subject.user(user.id), "students", "counselor")

        access = await manager.effective_page_permissions(Subject.user(user.id))

        assert access["students"].view and access["students"].view_from_role
        assert access["soc"].view and not access["soc"].view_from_role
        assert access["students"].custom_modes == ["counselor"]
        assert not access["classes"].view

    async def test_edit_implies_view(self, make_user, manager):
        user = await make_user()
        await manager.grant_page_permission(Subject.user(user.id), "cohorts", "edit")
        access = await manager.effective_page_permissions(Subject.user(user.id))
        assert access["cohorts"].edit and access["cohorts"].view

    async def test_effective_grants_sources(self, make_user, make_role, manager, db):
        role = await make_role("auditor")
        user = await make_user(role_id=role.id)
        await GrantStore(db).upsert(Subject.role(role.id), "reports:read")
        await manager.grant_permission(Subject.user(user.id), "soc:read")

        grants = {g.leaf_permission_id: g for g in await manager.effective_grants(Subject.user(user.id))}

        assert grants["reports:read"].source == GrantSource.ROLE_DERIVED
        assert grants["reports:read"].role_id == role.id
        assert grants["soc:read"].source == GrantSource.DIRECT
