"""
Role and Grant models for page-level and API-level permissions.

A grant records that a subject (a user or a role) holds a leaf permission:
- "page:<id>:view" / "page:<id>:edit" page leaves
- "page:<id>:mode:<modeId>" custom mode leaves
- "resource:action" and "resource:action:<scope>[:<value>]" API leaves

Grants are never deleted; revoking flips is_active to False and a later grant
reactivates the same row.
"""
import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Enum as SQLEnum, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from app.core.database.base import Base, TimestampMixin


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ulid.new())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubjectKind(str, enum.Enum):
    USER = "user"
    ROLE = "role"


class GrantSource(str, enum.Enum):
    DIRECT = "direct"
    ROLE_DERIVED = "role_derived"


# ============================================================================
# Core Models
# ============================================================================

class Role(Base, TimestampMixin):
    """
    Role shared by many users.

    Grants held by a role apply to every user whose role_id points at it.
    Examples: teacher, counselor, commander
    """
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r})>"


class Grant(Base, TimestampMixin):
    """
    One (subject, leaf permission) record.

    Rows stored for a role carry subject_kind=ROLE; they are surfaced as
    ROLE_DERIVED when resolved for a user of that role. granted_via names the
    page or custom mode leaf that added an API leaf, or is NULL when the API
    leaf was granted explicitly.
    """
    __tablename__ = "grants"
    __table_args__ = (
        UniqueConstraint("subject_id", "subject_kind", "leaf_permission_id", name="uq_grant_subject_leaf"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    subject_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    subject_kind: Mapped[SubjectKind] = mapped_column(
        SQLEnum(SubjectKind),
        nullable=False,
        default=SubjectKind.USER,
        index=True,
    )
    leaf_permission_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    source: Mapped[GrantSource] = mapped_column(
        SQLEnum(GrantSource),
        nullable=False,
        default=GrantSource.DIRECT,
    )

    granted_via: Mapped[str | None] = mapped_column(String(255), nullable=True)
    granted_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<Grant(id={self.id}, subject={self.subject_kind.value}:{self.subject_id}, "
            f"leaf={self.leaf_permission_id!r}, active={self.is_active})>"
        )
