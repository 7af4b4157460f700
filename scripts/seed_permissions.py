"""
Seed script to populate default roles and their page permissions.

Run this script after database initialization to create:
- One role per permission preset (teacher, counselor, ...)
- The preset's page grants on that role
- Optionally an approved admin user (SEED_ADMIN_EMAIL); with
  SEED_PRINT_TOKEN=1 a bearer token for it is written to stderr

Usage:
    uv run python -m scripts.seed_permissions
"""
import asyncio
import os
import sys
from typing import Optional, TextIO
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import AsyncSessionLocal, init_db
from app.features.permissions.dependencies import build_registry
from app.features.permissions.models import Role
from app.features.permissions.presets import get_all_presets
from app.features.permissions.registry import PermissionRegistry
from app.features.permissions.service import PermissionLifecycleManager
from app.features.permissions.store import Subject
from app.features.users.auth import create_access_token
from app.features.users.models import ApprovalStatus, User
from app.utils import get_logger


log = get_logger(__name__)


async def seed_roles(db: AsyncSession, registry: PermissionRegistry) -> dict[str, Role]:
    """
    Create a role for every preset and apply the preset to it.

    Existing roles are kept; applying a preset again is a no-op for grants
    the role already holds.

    Returns:
        Dictionary mapping role names to Role objects
    """
    log.info("Creating preset roles...")
    manager = PermissionLifecycleManager(db, registry)
    roles = {}

    for preset in get_all_presets():
        result = await db.execute(select(Role).where(Role.name == preset.preset_id))
        role = result.scalars().first()
        if role is None:
            role = Role(name=preset.preset_id, description=preset.description)
            db.add(role)
            await db.commit()
            await db.refresh(role)
            log.info("Created role: %s", role.name)
        else:
            log.debug("Role '%s' already exists", role.name)

        results = await manager.apply_preset(Subject.role(role.id), preset.preset_id)
        failed = [r for r in results if not r.success]
        for entry in failed:
            log.warning("Preset %s: page:%s:%s failed: %s", preset.preset_id, entry.page_id, entry.action, entry.error)
        log.info("Role '%s': %d page permissions applied", role.name, len(results) - len(failed))
        roles[role.name] = role

    return roles


async def seed_admin(db: AsyncSession, email: str, name: str = "Administrator") -> User:
    """Create (or promote) an approved admin user."""
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalars().first()
    if user is None:
        user = User(email=email, name=name)
        db.add(user)
    user.is_admin = True
    user.approval_status = ApprovalStatus.APPROVED
    await db.commit()
    await db.refresh(user)
    log.info("Admin user %s has id %s", email, user.id)
    return user


def emit_admin_token(user: User, stream: Optional[TextIO] = None) -> str:
    """Write a bearer token for user to stream (stderr by default), never to the log."""
    token = create_access_token(user.id)
    stream = stream if stream is not None else sys.stderr
    stream.write(f"{token}\n")
    return token


async def main(admin_email: Optional[str] = None, print_token: bool = False):
    """Main function to seed roles and the admin user."""
    log.info("Starting permission seeding...")

    log.info("Initializing database tables...")
    await init_db()

    registry = build_registry()
    async with AsyncSessionLocal() as db:
        try:
            roles = await seed_roles(db, registry)
            log.info("Permission seeding completed successfully!")
            for role_name, role in roles.items():
                log.info("  - %s (id=%s): %s", role_name, role.id, role.description)

            if admin_email:
                admin = await seed_admin(db, admin_email)
                if print_token:
                    emit_admin_token(admin)
        except Exception as e:
            log.error(f"Error seeding permissions: {e}", exc_info=True)
            await db.rollback()
            raise


if __name__ == "__main__":
    asyncio.run(main(os.environ.get("SEED_ADMIN_EMAIL"), print_token=os.environ.get("SEED_PRINT_TOKEN") == "1"))
