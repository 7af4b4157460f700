"""
Permission resolver: turns (subject, method, path) into an allow/deny Decision.

Resolution order:
1. Bypass policies (first match wins)
2. Page permissions covering the matched API operations
3. Direct or role-held resource:action permissions, honoring scopes
4. Deny, reporting the first page permission that would have allowed it

Resolution never writes. Any failure while loading the subject or its grants
denies the request.
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.cache import DecisionCache
from app.core.errors import ValidationError
from app.features.permissions.context import AccessRequest, Decision, PermissionContext
from app.features.permissions.policies import PolicyChain
from app.features.permissions.registry import PermissionRegistry, infer_resource_action, normalize_path
from app.features.permissions.scope import parse_permission, scope_matches
from app.features.permissions.store import EffectiveGrant, GrantStore
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


def admin_cache_key(subject_id: int) -> tuple:
    return ("admin", subject_id)


def approval_cache_key(subject_id: int) -> tuple:
    return ("approval", subject_id)


class PermissionResolver:
    """
    Usage:
        resolver = PermissionResolver(registry, AsyncSessionLocal)
        decision = await resolver.resolve(user_id, "GET", "/api/students/4")
    """

    def __init__(
        self,
        registry: PermissionRegistry,
        session_factory: async_sessionmaker,
        cache: Optional[DecisionCache] = None,
        policies: Optional[PolicyChain] = None,
    ):
        self.registry = registry
        self.session_factory = session_factory
        self.cache = cache if cache is not None else DecisionCache()
        self.policies = policies if policies is not None else PolicyChain()

    async def resolve(self, subject_id: int, method: str, raw_path: str) -> Decision:
        method = method.upper()
        path = normalize_path(raw_path)
        try:
            async with self.session_factory() as session:
                return await self._resolve(session, subject_id, method, path)
        except Exception:
            log.exception("Permission check failed for user %s on %s %s; denying", subject_id, method, path)
            return Decision(allowed=False, subject_id=subject_id, method=method, path=path)

    async def _resolve(self, session: AsyncSession, subject_id: int, method: str, path: str) -> Decision:
        context = await self.build_context(session, subject_id)
        if context is None:
            log.warning("Unknown subject %s requested %s %s", subject_id, method, path)
            return Decision(allowed=False, subject_id=subject_id, method=method, path=path)

        request = AccessRequest(method, path)
        matched_policy = await self.policies.evaluate(context, request)
        if matched_policy is not None:
            return Decision(
                allowed=True, subject_id=subject_id, method=method, path=path, matched_policy=matched_policy
            )

        grants = await GrantStore(session).effective_grants(subject_id, context.role_id)
        held = {g.leaf_permission_id for g in grants}

        # Page permissions
        required_permission = None
        for match in self.registry.match_operations(method, path):
            key = match.permission_key
            if required_permission is None:
                required_permission = key
            if key in held:
                return Decision(allowed=True, subject_id=subject_id, method=method, path=path)

        # resource:action permissions
        inferred = infer_resource_action(path, method)
        if inferred is not None and self._has_api_permission(grants, inferred[0], inferred[1], context):
            return Decision(allowed=True, subject_id=subject_id, method=method, path=path)

        return Decision(
            allowed=False,
            subject_id=subject_id,
            method=method,
            path=path,
            required_permission=required_permission,
        )

    async def build_context(self, session: AsyncSession, subject_id: int) -> Optional[PermissionContext]:
        """
        Admin flag and approval status come from the cache; department, role
        and commander flag are read live.
        """
        result = await session.execute(
            select(User.department_id, User.role_id, User.is_commander).where(User.id == subject_id)
        )
        live = result.first()
        if live is None:
            return None

        async def fetch_admin() -> bool:
            return bool(await session.scalar(select(User.is_admin).where(User.id == subject_id)))

        async def fetch_approval() -> Optional[str]:
            status = await session.scalar(select(User.approval_status).where(User.id == subject_id))
            return status.value if status is not None else None

        is_admin = await self.cache.get_or_fetch(admin_cache_key(subject_id), fetch_admin)
        approval_status = await self.cache.get_or_fetch(approval_cache_key(subject_id), fetch_approval)
        return PermissionContext(
            subject_id=subject_id,
            is_admin=is_admin,
            approval_status=approval_status,
            department_id=live.department_id,
            role_id=live.role_id,
            is_commander=bool(live.is_commander),
        )

    def _has_api_permission(
        self,
        grants: List[EffectiveGrant],
        resource: str,
        action: str,
        context: PermissionContext,
    ) -> bool:
        for grant in grants:
            leaf = grant.leaf_permission_id
            if leaf.startswith("page:"):
                continue
            try:
                parsed = parse_permission(leaf)
            except ValidationError:
                log.warning("Ignoring malformed permission %r held by user %s", leaf, context.subject_id)
                continue
            if parsed.resource == resource and parsed.action == action and scope_matches(parsed.scope, context):
                return True
        return False

    # ------------------------------------------------------------ invalidation

    def invalidate_subject(self, subject_id: int) -> None:
        self.cache.invalidate(admin_cache_key(subject_id))
        self.cache.invalidate(approval_cache_key(subject_id))

    def invalidate_all(self) -> None:
        self.cache.invalidate()
