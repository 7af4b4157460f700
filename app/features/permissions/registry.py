"""
Page permission registry and request matcher.

A page permission bundles the API operations a page needs. Granting view or
edit on a page grants its operations; the resolver uses the registry to map an
inbound (method, path) back to the page permissions that cover it.

Path patterns use ":name" placeholders, each matching exactly one non-slash
segment. Patterns are compiled once when the registry is built.
"""
import json
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Mapping, NamedTuple, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.core.errors import NotFoundError, ValidationError
from app.utils import get_logger


log = get_logger(__name__)

PageAction = Literal["view", "edit"]
PAGE_ACTIONS: Tuple[str, ...] = ("view", "edit")

HTTP_METHOD_ACTIONS: Dict[str, str] = {
    "GET": "read",
    "POST": "create",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "delete",
}


# ============================================================================
# Catalog Types
# ============================================================================

class APIOperation(BaseModel):
    """One backend endpoint: resource:action plus the HTTP method and path pattern."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    resource: str
    action: str
    http_method: str = Field(validation_alias=AliasChoices("http_method", "httpMethod", "method"))
    path_pattern: str = Field(validation_alias=AliasChoices("path_pattern", "pathPattern", "path"))
    description: str = ""
    description_localized: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("description_localized", "descriptionLocalized", "descriptionHebrew"),
    )

    @field_validator("http_method")
    @classmethod
    def method_uppercase(cls, v: str) -> str:
        return v.upper()

    @property
    def key(self) -> str:
        """Leaf permission name granted for this operation."""
        return f"{self.resource}:{self.action}"


class CustomMode(BaseModel):
    """Named permission bundle narrower than full view/edit on a page."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    mode_id: str = Field(validation_alias=AliasChoices("mode_id", "modeId", "id"))
    name: str = ""
    description: str = ""
    operations: Tuple[APIOperation, ...] = Field(
        default=(), validation_alias=AliasChoices("operations", "apis")
    )


class PagePermission(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    page_id: str = Field(validation_alias=AliasChoices("page_id", "pageId", "page"))
    display_name: str = Field("", validation_alias=AliasChoices("display_name", "displayName"))
    description: str = ""
    category: str = "general"
    view_operations: Tuple[APIOperation, ...] = Field(
        default=(), validation_alias=AliasChoices("view_operations", "viewAPIs", "viewOperations")
    )
    edit_operations: Tuple[APIOperation, ...] = Field(
        default=(), validation_alias=AliasChoices("edit_operations", "editAPIs", "editOperations")
    )
    supports_edit_mode: bool = Field(
        True, validation_alias=AliasChoices("supports_edit_mode", "supportsEditMode")
    )
    custom_modes: Tuple[CustomMode, ...] = Field(
        default=(), validation_alias=AliasChoices("custom_modes", "customModes")
    )

    def get_custom_mode(self, mode_id: str) -> Optional[CustomMode]:
        for mode in self.custom_modes:
            if mode.mode_id == mode_id:
                return mode
        return None


class OperationMatch(NamedTuple):
    page_id: str
    action: str
    operation: APIOperation

    @property
    def permission_key(self) -> str:
        return page_permission_key(self.page_id, self.action)


# ============================================================================
# Leaf Permission Keys
# ============================================================================

def page_permission_key(page_id: str, action: str) -> str:
    return f"page:{page_id}:{action}"


def custom_mode_permission_key(page_id: str, mode_id: str) -> str:
    return f"page:{page_id}:mode:{mode_id}"


def parse_page_key(key: str) -> Optional[Tuple[str, str]]:
    """
    Split a page leaf key into (page_id, action).

    Returns ("students", "view") for "page:students:view" and
    ("students", "mode:teacher") for a custom mode key; None for anything
    that is not a page leaf.
    """
    parts = key.split(":")
    if len(parts) == 3 and parts[0] == "page" and parts[2] in PAGE_ACTIONS:
        return parts[1], parts[2]
    if len(parts) == 4 and parts[0] == "page" and parts[2] == "mode":
        return parts[1], f"mode:{parts[3]}"
    return None


# ============================================================================
# Path Helpers
# ============================================================================

def normalize_path(path: str) -> str:
    """
    Strip query string and trailing slash and make sure the path starts with /api.

    "/students/?page=2" -> "/api/students"
    """
    normalized = path.split("?", 1)[0].split("#", 1)[0]
    if not normalized.startswith("/"):
        normalized = "/" + normalized
    if len(normalized) > 1:
        normalized = normalized.rstrip("/")
    if normalized != "/api" and not normalized.startswith("/api/"):
        normalized = "/api" + ("" if normalized == "/" else normalized)
    return normalized


def compile_path_pattern(template: str) -> "re.Pattern[str]":
    segments = []
    for segment in template.strip("/").split("/"):
        if segment.startswith(":") and len(segment) > 1:
            segments.append("[^/]+")
        else:
            segments.append(re.escape(segment))
    return re.compile("^/" + "/".join(segments) + "$")


def infer_resource_action(path: str, method: str) -> Optional[Tuple[str, str]]:
    """
    Fallback mapping of a request onto a resource:action pair.

    The first segment after /api/ is the resource; the action comes from the
    HTTP method. Returns None when either cannot be determined.
    """
    action = HTTP_METHOD_ACTIONS.get(method.upper())
    if action is None:
        return None
    segments = [s for s in normalize_path(path)[len("/api"):].split("/") if s]
    if not segments:
        return None
    return segments[0], action


def dedupe_operations(operations: Iterable[APIOperation]) -> List[APIOperation]:
    """
    Deduplicate by resource:action keeping the first occurrence.

    A later duplicate that carries a localized description fills it in on the
    kept entry when the kept entry has none; method and path stay as first seen.
    """
    unique: Dict[str, APIOperation] = {}
    for op in operations:
        kept = unique.get(op.key)
        if kept is None:
            unique[op.key] = op
        elif op.description_localized and not kept.description_localized:
            unique[op.key] = kept.model_copy(
                update={"description": op.description, "description_localized": op.description_localized}
            )
    return list(unique.values())


# ============================================================================
# Registry
# ============================================================================

class PermissionRegistry:
    """
    Immutable catalog of page permissions with a precompiled request matcher.

    Usage:
        registry = PermissionRegistry(DEFAULT_PAGES)
        registry.match_operations("GET", "/api/students/12")
    """

    def __init__(self, pages: Iterable[PagePermission]):
        self._pages: Dict[str, PagePermission] = {}
        for page in pages:
            if page.page_id in self._pages:
                raise ValueError(f"Duplicate page id in registry: {page.page_id}")
            self._pages[page.page_id] = page

        # One compiled pattern per distinct template
        self._patterns: Dict[str, "re.Pattern[str]"] = {}
        self._entries: List[Tuple[OperationMatch, "re.Pattern[str]"]] = []
        for page in self._pages.values():
            for action, operations in (("view", page.view_operations), ("edit", page.edit_operations)):
                for op in operations:
                    pattern = self._patterns.get(op.path_pattern)
                    if pattern is None:
                        pattern = compile_path_pattern(op.path_pattern)
                        self._patterns[op.path_pattern] = pattern
                    self._entries.append((OperationMatch(page.page_id, action, op), pattern))

        log.debug(
            "Permission registry loaded: %d pages, %d operations, %d patterns",
            len(self._pages), len(self._entries), len(self._patterns),
        )

    @classmethod
    def from_config(cls, config: Mapping[str, Mapping[str, Any]]) -> "PermissionRegistry":
        """Build from the external pageId -> {viewAPIs, editAPIs, ...} format."""
        pages = []
        for page_id, body in config.items():
            pages.append(PagePermission.model_validate({**body, "page_id": page_id}))
        return cls(pages)

    @classmethod
    def from_json_file(cls, path: str) -> "PermissionRegistry":
        log.info("Loading permission registry from %s", path)
        with Path(path).open(encoding="utf-8") as fp:
            return cls.from_config(json.load(fp))

    # ---------------------------------------------------------------- lookup

    @property
    def pages(self) -> List[PagePermission]:
        return list(self._pages.values())

    @property
    def page_ids(self) -> List[str]:
        return list(self._pages.keys())

    def has_page(self, page_id: str) -> bool:
        return page_id in self._pages

    def get_page(self, page_id: str) -> PagePermission:
        page = self._pages.get(page_id)
        if page is None:
            raise NotFoundError(f'Page "{page_id}" not found', hint="See GET /api/permissions/pages")
        return page

    def get_custom_mode(self, page_id: str, mode_id: str) -> CustomMode:
        mode = self.get_page(page_id).get_custom_mode(mode_id)
        if mode is None:
            raise NotFoundError(f'Custom mode "{mode_id}" not found on page "{page_id}"')
        return mode

    def categories(self) -> List[str]:
        seen: Dict[str, None] = {}
        for page in self._pages.values():
            seen.setdefault(page.category, None)
        return list(seen)

    def pages_by_category(self, category: str) -> List[PagePermission]:
        return [p for p in self._pages.values() if p.category == category]

    # -------------------------------------------------------------- matching

    def match_operations(self, method: str, path: str) -> List[OperationMatch]:
        """Every (page, action, operation) whose method and pattern match the request."""
        method = method.upper()
        normalized = normalize_path(path)
        return [
            entry
            for entry, pattern in self._entries
            if entry.operation.http_method == method and pattern.match(normalized)
        ]

    def required_operations(self, page_id: str, action: str) -> List[APIOperation]:
        """
        Operations granted with a page permission.

        Edit is additive to view: the edit set is view + edit deduplicated by
        resource:action. Unknown pages yield an empty list.
        """
        if action not in PAGE_ACTIONS:
            raise ValidationError(f'Invalid page action "{action}"', hint='Use "view" or "edit"')
        page = self._pages.get(page_id)
        if page is None:
            return []
        if action == "view":
            return dedupe_operations(page.view_operations)
        return dedupe_operations(page.view_operations + page.edit_operations)

    def custom_mode_operations(self, page_id: str, mode_id: str) -> List[APIOperation]:
        return dedupe_operations(self.get_custom_mode(page_id, mode_id).operations)

    def operations_for_key(self, key: str) -> List[APIOperation]:
        """Operations granted by a page or custom mode leaf key."""
        parsed = parse_page_key(key)
        if parsed is None:
            return []
        page_id, action = parsed
        if action.startswith("mode:"):
            page = self._pages.get(page_id)
            mode = page.get_custom_mode(action[len("mode:"):]) if page else None
            return dedupe_operations(mode.operations) if mode else []
        return self.required_operations(page_id, action)
