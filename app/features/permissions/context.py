"""
Value types passed through a single authorization decision.
"""
from dataclasses import asdict, dataclass
from typing import Any, Dict, NamedTuple, Optional


class AccessRequest(NamedTuple):
    """Normalized (method, path) pair being authorized."""
    method: str
    path: str


@dataclass(frozen=True)
class PermissionContext:
    """
    Snapshot of the subject attributes a decision depends on.

    Built per decision and discarded afterwards.
    """
    subject_id: int
    is_admin: bool = False
    approval_status: Optional[str] = None
    department_id: Optional[int] = None
    role_id: Optional[int] = None
    is_commander: bool = False


@dataclass(frozen=True)
class Decision:
    """Outcome of resolving one request, with enough context for an audit sink."""
    allowed: bool
    subject_id: Optional[int]
    method: str
    path: str
    required_permission: Optional[str] = None
    matched_policy: Optional[str] = None

    def as_audit_record(self) -> Dict[str, Any]:
        return asdict(self)
