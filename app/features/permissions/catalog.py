"""
Built-in page permission catalog for the admissions application.

Each page lists the endpoints it reads (view) and the extra endpoints it
writes (edit). Only pages that exist in the application are listed.
"""
from app.features.permissions.registry import APIOperation, CustomMode, PagePermission


def op(resource: str, action: str, method: str, path: str, description: str = "") -> APIOperation:
    return APIOperation(
        resource=resource,
        action=action,
        http_method=method,
        path_pattern=path,
        description=description,
    )


DEFAULT_PAGES: list[PagePermission] = [
    PagePermission(
        page_id="dashboard",
        display_name="Dashboard",
        description="View dashboard and statistics",
        category="general",
        view_operations=(
            op("dashboard", "read", "GET", "/api/auth/me", "Get current user info"),
            op("search", "read", "GET", "/api/search/pages", "Search pages"),
            op("search", "read", "GET", "/api/search/pages/search", "Search pages by query"),
            op("search", "read", "GET", "/api/search/pages/categories", "Get pages by category"),
            op("permissions", "check", "POST", "/api/permissions/check", "Check access to an endpoint"),
        ),
        supports_edit_mode=False,
    ),
    PagePermission(
        page_id="students",
        display_name="Students",
        description="Manage students",
        category="academic",
        view_operations=(
            op("students", "read", "GET", "/api/students", "List all students"),
            op("students", "read", "GET", "/api/students/:id", "Get student by ID"),
            op("students", "read", "GET", "/api/students/id-number/:idNumber", "Get student by ID number"),
            op("tracks", "read", "GET", "/api/tracks", "List tracks"),
            op("cohorts", "read", "GET", "/api/cohorts", "List cohorts"),
            op("cohorts", "read", "GET", "/api/cohorts/:id", "Get cohort by ID"),
        ),
        edit_operations=(
            op("students", "create", "POST", "/api/students", "Create new student"),
            op("students", "create", "POST", "/api/students/upload", "Upload students from file"),
            op("students", "update", "PUT", "/api/students/:id", "Update student"),
            op("students", "delete", "DELETE", "/api/students/:id", "Delete student"),
            op("tracks", "read", "GET", "/api/tracks/:id", "Get track by ID"),
            op("tracks", "create", "POST", "/api/tracks", "Create track"),
            op("tracks", "update", "PUT", "/api/tracks/:id", "Update track"),
            op("tracks", "delete", "DELETE", "/api/tracks/:id", "Delete track"),
            op("cohorts", "update", "PUT", "/api/cohorts/:id", "Update cohort"),
            op("cohorts", "update", "POST", "/api/cohorts/refresh", "Refresh cohorts"),
        ),
        custom_modes=(
            CustomMode(
                mode_id="teacher",
                name="Teacher",
                description="Students and their classes, read only",
                operations=(
                    op("students", "read", "GET", "/api/students", "List all students"),
                    op("students", "read", "GET", "/api/students/:id", "Get student by ID"),
                    op("classes", "read", "GET", "/api/classes", "List classes"),
                ),
            ),
            CustomMode(
                mode_id="counselor",
                name="Counselor",
                description="Students and exit records, read only",
                operations=(
                    op("students", "read", "GET", "/api/students", "List all students"),
                    op("student-exits", "read", "GET", "/api/student-exits", "List student exits"),
                ),
            ),
        ),
    ),
    PagePermission(
        page_id="resources",
        display_name="Resources",
        description="Manage users, departments, rooms and roles",
        category="administration",
        view_operations=(
            op("soldiers", "read", "GET", "/api/soldiers", "List all users"),
            op("soldiers", "read", "GET", "/api/soldiers/:id", "Get user by ID"),
            op("departments", "read", "GET", "/api/departments", "List all departments"),
            op("departments", "read", "GET", "/api/departments/:id", "Get department by ID"),
            op("departments", "read", "GET", "/api/departments/:id/commanders", "Get department commanders"),
            op("roles", "read", "GET", "/api/roles", "List all roles"),
            op("roles", "read", "GET", "/api/roles/:id", "Get role by ID"),
            op("rooms", "read", "GET", "/api/rooms", "List all rooms"),
            op("rooms", "read", "GET", "/api/rooms/:id", "Get room by ID"),
            op("permissions", "read", "GET", "/api/permissions/users/:userId/page-permissions",
               "Get user page permissions"),
            op("permissions", "read", "GET", "/api/permissions/roles/:roleId/page-permissions",
               "Get role page permissions"),
            op("permissions", "read", "GET", "/api/permissions/presets", "List permission presets"),
            op("auth", "read", "GET", "/api/auth/created", "Get created users"),
            op("auth", "read", "GET", "/api/auth/pending", "Get pending users"),
        ),
        edit_operations=(
            op("soldiers", "create", "POST", "/api/soldiers", "Create new user"),
            op("soldiers", "update", "PUT", "/api/soldiers/:id", "Update user"),
            op("soldiers", "delete", "DELETE", "/api/soldiers/:id", "Delete user"),
            op("departments", "create", "POST", "/api/departments", "Create new department"),
            op("departments", "update", "PUT", "/api/departments/:id", "Update department"),
            op("departments", "delete", "DELETE", "/api/departments/:id", "Delete department"),
            op("rooms", "create", "POST", "/api/rooms", "Create new room"),
            op("rooms", "update", "PUT", "/api/rooms/:id", "Update room"),
            op("rooms", "delete", "DELETE", "/api/rooms/:id", "Delete room"),
            op("roles", "create", "POST", "/api/roles", "Create new role"),
            op("roles", "update", "PUT", "/api/roles/:id", "Update role"),
            op("roles", "delete", "DELETE", "/api/roles/:id", "Delete role"),
            op("permissions", "update", "POST", "/api/permissions/users/:userId/grant-page",
               "Grant page permission to user"),
            op("permissions", "update", "POST", "/api/permissions/users/:userId/revoke-page",
               "Revoke page permission from user"),
            op("permissions", "update", "POST", "/api/permissions/roles/:roleId/grant-page",
               "Grant page permission to role"),
            op("permissions", "update", "POST", "/api/permissions/roles/:roleId/revoke-page",
               "Revoke page permission from role"),
            op("permissions", "update", "POST", "/api/permissions/users/:userId/bulk-grant-page",
               "Bulk grant page permissions to user"),
            op("permissions", "update", "POST", "/api/permissions/roles/:roleId/bulk-grant-page",
               "Bulk grant page permissions to role"),
            op("permissions", "update", "POST", "/api/permissions/users/:userId/grant-custom-mode",
               "Grant custom mode permission to user"),
            op("permissions", "update", "POST", "/api/permissions/users/:userId/revoke-custom-mode",
               "Revoke custom mode permission from user"),
            op("permissions", "update", "POST", "/api/permissions/roles/:roleId/grant-custom-mode",
               "Grant custom mode permission to role"),
            op("permissions", "update", "POST", "/api/permissions/roles/:roleId/revoke-custom-mode",
               "Revoke custom mode permission from role"),
            op("permissions", "update", "POST", "/api/permissions/users/:userId/apply-preset",
               "Apply preset to user"),
            op("permissions", "update", "POST", "/api/permissions/roles/:roleId/apply-preset",
               "Apply preset to role"),
            op("permissions", "update", "POST", "/api/permissions/users/:userId/copy-from-user",
               "Copy permissions from another user"),
            op("permissions", "update", "POST", "/api/permissions/users/:userId/copy-from-role",
               "Copy permissions from a role"),
            op("permissions", "update", "POST", "/api/permissions/roles/:roleId/copy-from-role",
               "Copy permissions between roles"),
            op("permissions", "update", "POST", "/api/permissions/users/:userId/grant",
               "Grant permission to user"),
            op("permissions", "update", "POST", "/api/permissions/users/:userId/revoke",
               "Revoke permission from user"),
            op("auth", "create", "POST", "/api/auth/create-user", "Create new user"),
            op("auth", "update", "POST", "/api/auth/:id/approve", "Approve user"),
            op("auth", "update", "POST", "/api/auth/:id/reject", "Reject user"),
            op("auth", "update", "PUT", "/api/auth/:id", "Update user"),
            op("auth", "delete", "DELETE", "/api/auth/:id", "Delete user"),
        ),
    ),
    PagePermission(
        page_id="soc",
        display_name="Security Operations",
        description="View security logs and incidents",
        category="security",
        view_operations=(
            op("soc", "read", "GET", "/api/soc/audit-logs", "View audit logs"),
            op("soc", "read", "GET", "/api/soc/stats", "View security statistics"),
            op("soc", "read", "GET", "/api/soc/incidents", "View security incidents"),
            op("soc", "read", "GET", "/api/soc/alerts", "View security alerts"),
            op("soc", "read", "GET", "/api/soc/users/:userId/activity", "View user activity"),
            op("soc", "read", "GET", "/api/soc/resources/:resource/:resourceId", "View resource history"),
            op("soc", "read", "GET", "/api/soc/export/logs", "Export audit logs"),
        ),
        edit_operations=(
            op("soc", "update", "PUT", "/api/soc/incidents/:id", "Update security incident"),
            op("soc", "update", "POST", "/api/soc/incidents/:id/mark", "Mark as security incident"),
        ),
    ),
    PagePermission(
        page_id="api-keys",
        display_name="API Keys",
        description="Manage API keys",
        category="administration",
        view_operations=(
            op("api-keys", "read", "GET", "/api/api-keys", "List user API keys"),
            op("api-keys", "read", "GET", "/api/api-keys/:id", "Get API key by ID"),
        ),
        edit_operations=(
            op("api-keys", "create", "POST", "/api/api-keys", "Create new API key"),
            op("api-keys", "delete", "DELETE", "/api/api-keys/:id", "Revoke API key"),
        ),
    ),
    PagePermission(
        page_id="settings",
        display_name="Settings",
        description="View system settings",
        category="general",
        view_operations=(
            op("auth", "read", "GET", "/api/auth/me", "Get current user info"),
        ),
        supports_edit_mode=False,
    ),
    PagePermission(
        page_id="tracks",
        display_name="Tracks",
        description="Manage educational tracks",
        category="academic",
        view_operations=(
            op("tracks", "read", "GET", "/api/tracks", "List all tracks"),
            op("tracks", "read", "GET", "/api/tracks/:id", "Get track by ID"),
        ),
        edit_operations=(
            op("tracks", "create", "POST", "/api/tracks", "Create new track"),
            op("tracks", "update", "PUT", "/api/tracks/:id", "Update track"),
            op("tracks", "delete", "DELETE", "/api/tracks/:id", "Delete track"),
        ),
    ),
    PagePermission(
        page_id="cohorts",
        display_name="Cohorts",
        description="Manage student cohorts",
        category="academic",
        view_operations=(
            op("cohorts", "read", "GET", "/api/cohorts", "List all cohorts"),
            op("cohorts", "read", "GET", "/api/cohorts/:id", "Get cohort by ID"),
        ),
        edit_operations=(
            op("cohorts", "create", "POST", "/api/cohorts", "Create new cohort"),
            op("cohorts", "update", "PUT", "/api/cohorts/:id", "Update cohort"),
            op("cohorts", "update", "POST", "/api/cohorts/refresh", "Refresh cohorts"),
        ),
    ),
    PagePermission(
        page_id="classes",
        display_name="Classes",
        description="Manage classes",
        category="academic",
        view_operations=(
            op("classes", "read", "GET", "/api/classes", "List all classes"),
            op("classes", "read", "GET", "/api/classes/:id", "Get class by ID"),
        ),
        edit_operations=(
            op("classes", "create", "POST", "/api/classes", "Create new class"),
            op("classes", "update", "PUT", "/api/classes/:id", "Update class"),
            op("classes", "delete", "DELETE", "/api/classes/:id", "Delete class"),
        ),
    ),
    PagePermission(
        page_id="student-exits",
        display_name="Student Exits",
        description="Manage student exits and transfers",
        category="academic",
        view_operations=(
            op("student-exits", "read", "GET", "/api/student-exits", "List all student exits"),
            op("student-exits", "read", "GET", "/api/student-exits/student/:studentId",
               "Get exits by student ID"),
        ),
        edit_operations=(
            op("student-exits", "create", "POST", "/api/student-exits", "Create student exit record"),
            op("student-exits", "update", "PUT", "/api/student-exits/:studentId", "Update student exit record"),
        ),
    ),
]
