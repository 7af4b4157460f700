"""
Wiring between FastAPI and the permission engine.

Implements:
- Registry and resolver construction from config
- The router-level dependency that authorizes every /api request
- The default decision sink (logs each decision)
"""
from typing import Annotated, Callable, Optional
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core import config
from app.core.cache import DecisionCache
from app.core.database.engine import get_db
from app.core.errors import ForbiddenError
from app.features.permissions.catalog import DEFAULT_PAGES
from app.features.permissions.context import Decision
from app.features.permissions.policies import PolicyChain, default_policies
from app.features.permissions.registry import PermissionRegistry
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.service import PermissionLifecycleManager
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)

DecisionSink = Callable[[Decision], None]


# ============================================================================
# Construction
# ============================================================================

def build_registry(path: Optional[str] = None) -> PermissionRegistry:
    """Load the catalog from a JSON file when configured, else the built-in one."""
    path = path if path is not None else config.PERMISSION_REGISTRY_PATH
    if path:
        return PermissionRegistry.from_json_file(path)
    return PermissionRegistry(DEFAULT_PAGES)


def build_resolver(
    session_factory: async_sessionmaker,
    registry: Optional[PermissionRegistry] = None,
    ttl_seconds: Optional[float] = None,
) -> PermissionResolver:
    return PermissionResolver(
        registry if registry is not None else build_registry(),
        session_factory,
        cache=DecisionCache(
            ttl_seconds=config.PERMISSION_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        ),
        policies=PolicyChain(default_policies()),
    )


def log_decision(decision: Decision) -> None:
    """Default sink: one log line per decision."""
    if decision.allowed:
        log.debug("Access allowed %s", decision.as_audit_record())
    else:
        log.info("Access denied %s", decision.as_audit_record())


# ============================================================================
# FastAPI Dependencies
# ============================================================================

def get_resolver(request: Request) -> PermissionResolver:
    """The resolver owned by the running application."""
    return request.app.state.permission_resolver


def get_registry(request: Request) -> PermissionRegistry:
    return get_resolver(request).registry


def get_decision_sink(request: Request) -> DecisionSink:
    return getattr(request.app.state, "decision_sink", None) or log_decision


async def require_api_permission(
    request: Request,
    user: Annotated[User, Depends(get_current_user)]
) -> User:
    """
    Router-level dependency authorizing the current request.

    Usage:
        router = APIRouter(dependencies=[Depends(require_api_permission)])

    Raises:
        ForbiddenError: 403 carrying the page permission that would allow it
    """
    resolver = get_resolver(request)
    decision = await resolver.resolve(user.id, request.method, request.url.path)
    try:
        get_decision_sink(request)(decision)
    except Exception:
        log.exception("Decision sink failed for %s %s", decision.method, decision.path)

    if not decision.allowed:
        raise ForbiddenError(
            "Permission denied",
            hint="Ask an administrator for the required permission" if decision.required_permission else None,
            required_permission=decision.required_permission,
        )
    return user


async def get_lifecycle_manager(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)]
) -> PermissionLifecycleManager:
    return PermissionLifecycleManager(db, get_registry(request))
