"""Tests for the page permission registry and request matcher."""

import json
import pytest

from app.core.errors import NotFoundError, ValidationError
from app.features.permissions.catalog import DEFAULT_PAGES
from app.features.permissions.registry import (
    APIOperation,
    PagePermission,
    PermissionRegistry,
    compile_path_pattern,
    dedupe_operations,
    infer_resource_action,
    normalize_path,
    parse_page_key,
)


def _op(resource, action, method, path, **kwargs):
    return APIOperation(resource=resource, action=action, http_method=method, path_pattern=path, **kwargs)


class TestNormalizePath:
    @pytest.mark.parametrize("raw, expected", [
        ("/api/students", "/api/students"),
        ("/api/students/", "/api/students"),
        ("/api/students?page=2", "/api/students"),
        ("/api/students/?page=2&size=10", "/api/students"),
        ("/students", "/api/students"),
        ("students/4", "/api/students/4"),
        ("/api", "/api"),
        ("/", "/api"),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_path(raw) == expected

    def test_apis_prefix_is_not_api(self):
        assert normalize_path("/apis/x") == "/api/apis/x"


class TestPathPatterns:
    def test_placeholder_matches_one_segment(self):
        pattern = compile_path_pattern("/api/students/:id")
        assert pattern.match("/api/students/12")
        assert not pattern.match("/api/students")
        assert not pattern.match("/api/students/12/grades")

    def test_literal_segments_are_escaped(self):
        pattern = compile_path_pattern("/api/export/logs.csv")
        assert pattern.match("/api/export/logs.csv")
        assert not pattern.match("/api/export/logsXcsv")

    def test_patterns_compiled_once_per_template(self):
        registry = PermissionRegistry(DEFAULT_PAGES)
        templates = {op.path_pattern for page in DEFAULT_PAGES for op in page.view_operations + page.edit_operations}
        assert set(registry._patterns) == templates


class TestInferResourceAction:
    @pytest.mark.parametrize("path, method, expected", [
        ("/api/students", "GET", ("students", "read")),
        ("/api/students/3", "post", ("students", "create")),
        ("/api/cohorts/1", "PUT", ("cohorts", "update")),
        ("/api/cohorts/1", "PATCH", ("cohorts", "update")),
        ("/api/classes/9", "DELETE", ("classes", "delete")),
        ("/classes?x=1", "GET", ("classes", "read")),
    ])
    def test_inference(self, path, method, expected):
        assert infer_resource_action(path, method) == expected

    def test_unknown_method(self):
        assert infer_resource_action("/api/students", "OPTIONS") is None

    def test_empty_path(self):
        assert infer_resource_action("/api", "GET") is None
        assert infer_resource_action("/api/", "GET") is None


class TestDedupe:
    def test_first_occurrence_wins(self):
        first = _op("students", "read", "GET", "/api/students", description="List")
        second = _op("students", "read", "GET", "/api/students/:id", description="One")
        result = dedupe_operations([first, second])
        assert result == [first]

    def test_localized_description_fills_in(self):
        first = _op("students", "read", "GET", "/api/students", description="List")
        second = _op(
            "students", "read", "GET", "/api/students/:id",
            description="One", description_localized="רשימת תלמידים",
        )
        (kept,) = dedupe_operations([first, second])
        assert kept.path_pattern == "/api/students"
        assert kept.description_localized == "רשימת תלמידים"

    def test_existing_localized_description_kept(self):
        first = _op("students", "read", "GET", "/api/students", description_localized="א")
        second = _op("students", "read", "GET", "/api/students/:id", description_localized="ב")
        (kept,) = dedupe_operations([first, second])
        assert kept.description_localized == "א"


class TestPermissionRegistry:
    def test_edit_is_superset_of_view_without_duplicates(self, registry):
        for page in registry.pages:
            view_keys = [op.key for op in registry.required_operations(page.page_id, "view")]
            edit_keys = [op.key for op in registry.required_operations(page.page_id, "edit")]
            assert set(view_keys) <= set(edit_keys), page.page_id
            assert len(edit_keys) == len(set(edit_keys)), page.page_id
            assert len(view_keys) == len(set(view_keys)), page.page_id

    def test_match_operations_view_before_edit(self, registry):
        matches = registry.match_operations("GET", "/api/students/12")
        assert [(m.page_id, m.action) for m in matches][:1] == [("students", "view")]
        assert all(m.operation.http_method == "GET" for m in matches)

    def test_match_operations_across_pages(self, registry):
        pages = {m.page_id for m in registry.match_operations("GET", "/api/tracks")}
        assert pages == {"students", "tracks"}

    def test_match_uses_method(self, registry):
        matches = registry.match_operations("POST", "/api/students")
        assert [m.permission_key for m in matches] == ["page:students:edit"]

    def test_match_normalizes(self, registry):
        assert registry.match_operations("get", "/students/?x=1")

    def test_no_match(self, registry):
        assert registry.match_operations("GET", "/api/unknown") == []

    def test_required_operations_unknown_page(self, registry):
        assert registry.required_operations("nope", "view") == []

    def test_required_operations_bad_action(self, registry):
        with pytest.raises(ValidationError):
            registry.required_operations("students", "delete")

    def test_get_page_unknown(self, registry):
        with pytest.raises(NotFoundError) as exc:
            registry.get_page("nope")
        assert exc.value.status_code == 404

    def test_custom_mode_operations(self, registry):
        keys = [op.key for op in registry.custom_mode_operations("students", "teacher")]
        assert keys == ["students:read", "classes:read"]

    def test_custom_mode_unknown(self, registry):
        with pytest.raises(NotFoundError):
            registry.custom_mode_operations("students", "principal")
        with pytest.raises(NotFoundError):
            registry.custom_mode_operations("nope", "teacher")

    def test_categories(self, registry):
        assert registry.categories() == ["general", "academic", "administration", "security"]
        assert [p.page_id for p in registry.pages_by_category("security")] == ["soc"]

    def test_duplicate_page_rejected(self):
        page = PagePermission(page_id="x")
        with pytest.raises(ValueError):
            PermissionRegistry([page, page])

    def test_operations_for_key(self, registry):
        assert registry.operations_for_key("page:students:view") == registry.required_operations("students", "view")
        assert [op.key for op in registry.operations_for_key("page:students:mode:counselor")] == [
            "students:read", "student-exits:read",
        ]
        assert registry.operations_for_key("students:read") == []
        assert registry.operations_for_key("page:students:mode:nope") == []


class TestParsePageKey:
    def test_view_and_edit(self):
        assert parse_page_key("page:students:view") == ("students", "view")
        assert parse_page_key("page:students:edit") == ("students", "edit")

    def test_mode(self):
        assert parse_page_key("page:students:mode:teacher") == ("students", "mode:teacher")

    def test_not_page_keys(self):
        assert parse_page_key("students:read") is None
        assert parse_page_key("page:students:delete") is None


class TestRegistryConfig:
    CONFIG = {
        "students": {
            "displayName": "Students",
            "viewAPIs": [
                {"resource": "students", "action": "read", "method": "get", "path": "/api/students"},
            ],
            "editAPIs": [
                {"resource": "students", "action": "create", "httpMethod": "POST", "pathPattern": "/api/students"},
            ],
            "customModes": [
                {"id": "teacher", "name": "Teacher", "apis": [
                    {"resource": "classes", "action": "read", "method": "GET", "path": "/api/classes"},
                ]},
            ],
        },
        "dashboard": {"supportsEditMode": False, "viewAPIs": []},
    }

    def test_from_config(self):
        registry = PermissionRegistry.from_config(self.CONFIG)
        assert registry.page_ids == ["students", "dashboard"]
        students = registry.get_page("students")
        assert students.display_name == "Students"
        assert students.view_operations[0].http_method == "GET"
        assert registry.get_page("dashboard").supports_edit_mode is False
        assert [op.key for op in registry.custom_mode_operations("students", "teacher")] == ["classes:read"]

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "pages.json"
        path.write_text(json.dumps(self.CONFIG), encoding="utf-8")
        registry = PermissionRegistry.from_json_file(str(path))
        assert [m.permission_key for m in registry.match_operations("POST", "/api/students")] == [
            "page:students:edit",
        ]
