"""
Bypass policies evaluated before the standard permission lookup.

Policies run in the order they were registered; the first one that returns
True allows the request and no further policy is consulted. A policy that
raises is logged and counts as "no match".
"""
import inspect
from typing import Awaitable, Iterable, List, Optional, Sequence, Tuple, Union

from app.features.permissions.context import AccessRequest, PermissionContext
from app.utils import get_logger


log = get_logger(__name__)

PolicyResult = Union[bool, Awaitable[bool]]

APPROVAL_CREATED = "CREATED"
APPROVAL_PENDING = "PENDING"
APPROVAL_APPROVED = "APPROVED"


class Policy:
    """A named predicate over (context, request). May be sync or async."""
    name: str = "policy"
    description: str = ""

    def evaluate(self, context: PermissionContext, request: AccessRequest) -> PolicyResult:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(name={self.name!r})>"


class AdminBypassPolicy(Policy):
    name = "admin"
    description = "Admin users have full access to all endpoints"

    def evaluate(self, context: PermissionContext, request: AccessRequest) -> bool:
        return context.is_admin is True


class EndpointAllowlistPolicy(Policy):
    """
    Allow a fixed set of endpoints to subjects in the given approval states.

    With allow_subpaths, "/api/roles" also covers "/api/roles/3".
    """

    def __init__(
        self,
        name: str,
        description: str,
        approval_statuses: Iterable[str],
        endpoints: Sequence[Tuple[str, str]],
        allow_subpaths: bool = False,
    ):
        self.name = name
        self.description = description
        self.approval_statuses = frozenset(approval_statuses)
        self.endpoints = tuple((method.upper(), path) for method, path in endpoints)
        self.allow_subpaths = allow_subpaths

    def evaluate(self, context: PermissionContext, request: AccessRequest) -> bool:
        if context.approval_status not in self.approval_statuses:
            return False
        for method, path in self.endpoints:
            if method != request.method:
                continue
            if request.path == path:
                return True
            if self.allow_subpaths and request.path.startswith(path + "/"):
                return True
        return False


class ProfileCompletionAccessPolicy(EndpointAllowlistPolicy):
    def __init__(self):
        super().__init__(
            name="profile-completion",
            description="CREATED/PENDING users can reach the endpoints needed to complete their profile",
            approval_statuses=(APPROVAL_CREATED, APPROVAL_PENDING),
            endpoints=(
                ("GET", "/api/roles"),
                ("GET", "/api/departments"),
                ("POST", "/api/auth/complete-profile"),
            ),
            allow_subpaths=True,
        )


class PublicReferenceDataPolicy(EndpointAllowlistPolicy):
    def __init__(self):
        super().__init__(
            name="public-reference",
            description="APPROVED users can read reference data",
            approval_statuses=(APPROVAL_APPROVED,),
            endpoints=(
                ("GET", "/api/roles"),
                ("GET", "/api/departments"),
            ),
            allow_subpaths=True,
        )


class SelfAccessPolicy(EndpointAllowlistPolicy):
    def __init__(self):
        super().__init__(
            name="self-access",
            description="APPROVED users can read their own identity and permissions",
            approval_statuses=(APPROVAL_APPROVED,),
            endpoints=(
                ("GET", "/api/permissions/my-permissions"),
                ("GET", "/api/permissions/my-page-permissions"),
                ("GET", "/api/permissions/pages"),
                ("GET", "/api/auth/me"),
            ),
        )


def default_policies() -> List[Policy]:
    """Built-in policies in evaluation order."""
    return [
        AdminBypassPolicy(),
        ProfileCompletionAccessPolicy(),
        PublicReferenceDataPolicy(),
        SelfAccessPolicy(),
    ]


class PolicyChain:
    """
    Ordered, first-match-wins list of policies.

    Usage:
        chain = PolicyChain(default_policies())
        matched = await chain.evaluate(context, AccessRequest("GET", "/api/roles"))
    """

    def __init__(self, policies: Optional[Sequence[Policy]] = None):
        self.policies: Tuple[Policy, ...] = tuple(default_policies() if policies is None else policies)

    @property
    def names(self) -> List[str]:
        return [p.name for p in self.policies]

    async def evaluate(self, context: PermissionContext, request: AccessRequest) -> Optional[str]:
        """Return the name of the first policy that allows the request, or None."""
        for policy in self.policies:
            try:
                result = policy.evaluate(context, request)
                if inspect.isawaitable(result):
                    result = await result
            except Exception:
                log.exception(
                    "Policy %s failed for user %s on %s %s; treating as no match",
                    policy.name, context.subject_id, request.method, request.path,
                )
                continue
            # Only a real True allows
            if result is True:
                log.debug("Policy %s allowed user %s on %s %s",
                          policy.name, context.subject_id, request.method, request.path)
                return policy.name
        return None
