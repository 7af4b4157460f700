"""
Scoped resource:action permissions.

A direct leaf may carry a scope qualifier: "students:read:department:3" only
applies to subjects in department 3. Scopes never apply to page leaves.
"""
from dataclasses import dataclass
from typing import Optional

from app.core.errors import ValidationError
from app.features.permissions.context import PermissionContext


SCOPE_ALL = "all"
SCOPE_DEPARTMENT = "department"
SCOPE_ROLE = "role"
SCOPE_USER = "user"
_VALUED_SCOPES = (SCOPE_DEPARTMENT, SCOPE_ROLE, SCOPE_USER)


@dataclass(frozen=True)
class Scope:
    type: str
    value: Optional[int] = None


@dataclass(frozen=True)
class ParsedPermission:
    resource: str
    action: str
    scope: Optional[Scope] = None

    @property
    def base_key(self) -> str:
        return f"{self.resource}:{self.action}"


def parse_permission(permission: str) -> ParsedPermission:
    """
    Parse "resource:action[:scopeType[:scopeValue]]".

    Examples:
        "students:read"                -> scope None
        "students:read:all"            -> Scope("all")
        "students:read:department:12"  -> Scope("department", 12)

    Raises:
        ValidationError: fewer than two or more than four parts, a value on
            the all scope, or a non-integer id for a department/role/user
            scope.
    """
    parts = permission.split(":")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise ValidationError(
            f"Invalid permission format: {permission}",
            hint='Expected "resource:action" or "resource:action:scopeType:scopeValue"',
        )
    resource, action = parts[0], parts[1]
    if len(parts) == 2:
        return ParsedPermission(resource, action)

    if len(parts) > 4:
        raise ValidationError(
            f"Invalid permission format: {permission}",
            hint='Expected "resource:action" or "resource:action:scopeType:scopeValue"',
        )

    scope_type = parts[2]
    raw_value = parts[3] if len(parts) == 4 else None
    if scope_type == SCOPE_ALL and raw_value is not None:
        raise ValidationError(f"Scope all takes no value: {permission}")
    if scope_type in _VALUED_SCOPES:
        if raw_value is None:
            raise ValidationError(f"Scope {scope_type} requires a value: {permission}")
        try:
            value = int(raw_value)
        except ValueError:
            raise ValidationError(f"Invalid {scope_type} id in permission: {permission}")
        return ParsedPermission(resource, action, Scope(scope_type, value))
    # Unrecognized types are kept so they can be denied explicitly
    return ParsedPermission(resource, action, Scope(scope_type))


def scope_matches(scope: Optional[Scope], context: PermissionContext) -> bool:
    if scope is None or scope.type == SCOPE_ALL:
        return True
    if scope.type == SCOPE_DEPARTMENT:
        return context.department_id is not None and context.department_id == scope.value
    if scope.type == SCOPE_ROLE:
        return context.role_id is not None and context.role_id == scope.value
    if scope.type == SCOPE_USER:
        return context.subject_id == scope.value
    return False
