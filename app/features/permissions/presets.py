"""
Named bundles of page permissions that can be applied in one call.
"""
from typing import Dict, List, Tuple

from pydantic import BaseModel, ConfigDict

from app.core.errors import NotFoundError


class PresetEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    page_id: str
    action: str


class PermissionPreset(BaseModel):
    model_config = ConfigDict(frozen=True)

    preset_id: str
    name: str
    description: str
    permissions: Tuple[PresetEntry, ...]


def _preset(preset_id: str, name: str, description: str, *entries: Tuple[str, str]) -> PermissionPreset:
    return PermissionPreset(
        preset_id=preset_id,
        name=name,
        description=description,
        permissions=tuple(PresetEntry(page_id=page, action=action) for page, action in entries),
    )


PERMISSION_PRESETS: Dict[str, PermissionPreset] = {
    preset.preset_id: preset
    for preset in (
        _preset(
            "teacher", "Teacher", "Can view and manage students",
            ("dashboard", "view"), ("students", "edit"),
        ),
        _preset(
            "counselor", "Counselor", "Can view students and security operations",
            ("dashboard", "view"), ("students", "view"), ("soc", "view"),
        ),
        _preset(
            "administrator", "Administrator", "Access to all administrative pages",
            ("dashboard", "view"), ("students", "edit"), ("resources", "edit"),
            ("soc", "edit"), ("api-keys", "edit"), ("settings", "view"),
        ),
        _preset(
            "commander", "Commander", "Can view students and manage resources",
            ("dashboard", "view"), ("students", "view"), ("resources", "edit"), ("soc", "view"),
        ),
        _preset(
            "viewer", "Viewer", "View-only access",
            ("dashboard", "view"), ("students", "view"), ("soc", "view"),
        ),
        _preset(
            "api-developer", "API Developer", "Can manage API keys",
            ("dashboard", "view"), ("api-keys", "edit"),
        ),
    )
}


def get_preset(preset_id: str) -> PermissionPreset:
    preset = PERMISSION_PRESETS.get(preset_id)
    if preset is None:
        raise NotFoundError(
            f'Preset "{preset_id}" not found',
            hint=f"Available presets: {', '.join(PERMISSION_PRESETS)}",
        )
    return preset


def get_all_presets() -> List[PermissionPreset]:
    return list(PERMISSION_PRESETS.values())
