"""
Grant persistence.

Every mutating call commits on its own, so a bulk operation that fails half
way keeps the grants written before the failure.
"""
from datetime import datetime, timezone
from typing import List, NamedTuple, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.models import Grant, GrantSource, SubjectKind
from app.utils import get_logger


log = get_logger(__name__)


class Subject(NamedTuple):
    """Who a grant belongs to: a user or a role."""
    kind: SubjectKind
    id: int

    @classmethod
    def user(cls, user_id: int) -> "Subject":
        return cls(SubjectKind.USER, user_id)

    @classmethod
    def role(cls, role_id: int) -> "Subject":
        return cls(SubjectKind.ROLE, role_id)

    @property
    def is_role(self) -> bool:
        return self.kind == SubjectKind.ROLE

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


class EffectiveGrant(NamedTuple):
    """An active leaf as seen by one user, with where it came from."""
    leaf_permission_id: str
    source: GrantSource
    role_id: Optional[int]
    granted_via: Optional[str]

    @property
    def is_direct(self) -> bool:
        return self.source == GrantSource.DIRECT


class GrantStore:
    """
    Upsert/deactivate/list access to the grants table.

    Usage:
        store = GrantStore(session)
        await store.upsert(Subject.user(7), "page:students:view", granted_by=1)
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, subject: Subject, leaf: str) -> Optional[Grant]:
        result = await self.session.execute(
            select(Grant).where(
                Grant.subject_id == subject.id,
                Grant.subject_kind == subject.kind,
                Grant.leaf_permission_id == leaf,
            )
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        subject: Subject,
        leaf: str,
        granted_by: Optional[int] = None,
        granted_via: Optional[str] = None,
    ) -> Grant:
        """
        Make the grant active and return the stored row.

        An already active grant is returned untouched. An inactive one is
        reactivated with the new granted_by/granted_via.
        """
        grant = await self.get(subject, leaf)
        if grant is not None:
            if grant.is_active:
                return grant
            self._activate(grant, granted_by, granted_via)
            await self.session.commit()
            log.info("Reactivated grant %s for %s", leaf, subject)
            return grant

        grant = Grant(
            subject_id=subject.id,
            subject_kind=subject.kind,
            leaf_permission_id=leaf,
            is_active=True,
            source=GrantSource.DIRECT,
            granted_by=granted_by,
            granted_via=granted_via,
            granted_at=datetime.now(timezone.utc),
        )
        self.session.add(grant)
        try:
            await self.session.commit()
        except IntegrityError:
            # A concurrent writer inserted the same row first
            await self.session.rollback()
            grant = await self.get(subject, leaf)
            if grant is None:
                raise
            if not grant.is_active:
                self._activate(grant, granted_by, granted_via)
                await self.session.commit()
            return grant

        log.info("Created grant %s for %s", leaf, subject)
        return grant

    async def deactivate(self, subject: Subject, leaf: str) -> bool:
        """Return True when an active grant was switched off."""
        grant = await self.get(subject, leaf)
        if grant is None or not grant.is_active:
            return False
        grant.is_active = False
        await self.session.commit()
        log.info("Deactivated grant %s for %s", leaf, subject)
        return True

    async def list_active(self, subject: Subject) -> List[Grant]:
        result = await self.session.execute(
            select(Grant)
            .where(
                Grant.subject_id == subject.id,
                Grant.subject_kind == subject.kind,
                Grant.is_active.is_(True),
            )
            .order_by(Grant.granted_at, Grant.id)
        )
        return list(result.scalars().all())

    async def list_active_for_role(self, role_id: int) -> List[Grant]:
        return await self.list_active(Subject.role(role_id))

    async def effective_grants(self, user_id: int, role_id: Optional[int] = None) -> List[EffectiveGrant]:
        """
        Active leaves a user holds directly plus those held by their role.

        Role rows are reported as ROLE_DERIVED with the role id attached.
        """
        condition = and_(Grant.subject_kind == SubjectKind.USER, Grant.subject_id == user_id)
        if role_id is not None:
            condition = or_(
                condition,
                and_(Grant.subject_kind == SubjectKind.ROLE, Grant.subject_id == role_id),
            )
        result = await self.session.execute(
            select(Grant).where(condition, Grant.is_active.is_(True)).order_by(Grant.granted_at, Grant.id)
        )
        effective = []
        for grant in result.scalars().all():
            if grant.subject_kind == SubjectKind.ROLE:
                effective.append(
                    EffectiveGrant(grant.leaf_permission_id, GrantSource.ROLE_DERIVED, grant.subject_id, grant.granted_via)
                )
            else:
                effective.append(
                    EffectiveGrant(grant.leaf_permission_id, grant.source, None, grant.granted_via)
                )
        return effective

    async def active_leaves(self, subject: Subject) -> List[str]:
        return [g.leaf_permission_id for g in await self.list_active(subject)]

    @staticmethod
    def _activate(grant: Grant, granted_by: Optional[int], granted_via: Optional[str]) -> None:
        grant.is_active = True
        grant.granted_by = granted_by
        grant.granted_via = granted_via
        grant.granted_at = datetime.now(timezone.utc)
