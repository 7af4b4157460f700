"""Pytest configuration and fixtures for the permission engine tests."""

import itertools
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from app.core.cache import DecisionCache
from app.core.database.engine import init_db, make_session_factory
from app.features.permissions.catalog import DEFAULT_PAGES
from app.features.permissions.models import Role
from app.features.permissions.policies import PolicyChain, default_policies
from app.features.permissions.registry import APIOperation, PagePermission, PermissionRegistry
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.service import PermissionLifecycleManager
from app.features.users.models import ApprovalStatus, User


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh SQLite file per test; NullPool gives each session its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry():
    """The built-in school catalog."""
    return PermissionRegistry(DEFAULT_PAGES)


@pytest.fixture
def students_registry():
    """Single page: view reads the student list, edit creates students."""
    return PermissionRegistry([
        PagePermission(
            page_id="students",
            display_name="Students",
            view_operations=(
                APIOperation(resource="students", action="read", http_method="GET", path_pattern="/api/students"),
            ),
            edit_operations=(
                APIOperation(resource="students", action="create", http_method="POST", path_pattern="/api/students"),
            ),
        ),
    ])


@pytest.fixture
def resolver(registry, session_factory, clock):
    return PermissionResolver(
        registry,
        session_factory,
        cache=DecisionCache(ttl_seconds=300, clock=clock),
        policies=PolicyChain(default_policies()),
    )


@pytest.fixture
def manager(db, registry):
    return PermissionLifecycleManager(db, registry)


_emails = itertools.count(1)


@pytest.fixture
def make_user(db):
    """Factory creating committed users; APPROVED non-admin by default."""
    async def _make_user(**overrides) -> User:
        n = next(_emails)
        fields = {
            "email": f"user{n}@school.org",
            "name": f"User {n}",
            "approval_status": ApprovalStatus.APPROVED,
        }
        fields.update(overrides)
        user = User(**fields)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def make_role(db):
    async def _make_role(name: str, description: str = "") -> Role:
        role = Role(name=name, description=description)
        db.add(role)
        await db.commit()
        await db.refresh(role)
        return role
    return _make_role
