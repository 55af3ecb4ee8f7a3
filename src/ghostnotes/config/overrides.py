from __future__ import annotations

from typing import Any, Mapping

import yaml

from ghostnotes.config.settings import Settings

"""
Per-user settings overrides (safe subset).

Users can tune a few knobs for their own session (e.g. the proximity radius from the
settings screen, or the cooldown between "note nearby" alerts). This module:
- validates the override payload against a whitelist,
- deep-merges the safe subset onto current settings,
- re-validates with Pydantic to ensure types/ranges remain correct.

We do NOT allow overriding the notified-set store location or relay credentials.
"""

# A value of True allows any keys under the subtree; a nested dict restricts it.
ALLOWED_SETTINGS_OVERRIDES_TREE: dict[str, Any] = {
    "reveal": {
        "radius_m": True,
        "angle_deg": True,
        "require_sightline": True,
    },
    "proximity": True,
}


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = dict(base)
    for key, override_value in override.items():
        if isinstance(override_value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(dict(merged[key]), override_value)
            continue
        merged[key] = override_value
    return merged


def _filter_overrides(
    overrides: Mapping[str, Any],
    *,
    allowed_tree: Mapping[str, Any],
    path: tuple[str, ...] = (),
) -> dict[str, Any]:
    filtered: dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in allowed_tree:
            dotted_path = ".".join((*path, key))
            raise ValueError(f"settings_overrides contains a disallowed key: '{dotted_path}'")

        allowed = allowed_tree[key]
        if allowed is True:
            filtered[key] = value
            continue

        if not isinstance(value, Mapping):
            dotted_path = ".".join((*path, key))
            raise ValueError(f"settings_overrides key '{dotted_path}' must be a mapping")

        filtered[key] = _filter_overrides(value, allowed_tree=allowed, path=(*path, key))
    return filtered


def parse_override_pairs(pairs: list[str]) -> dict[str, Any]:
    """Parse `section.key=VALUE` pairs into a nested override mapping.

    Values are parsed as YAML scalars so `120`, `0.5` and `false` keep their types.
    """
    out: dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Invalid override '{pair}', expected KEY=VALUE")
        dotted, raw = pair.split("=", 1)
        parts = [p.strip() for p in dotted.split(".") if p.strip()]
        if not parts:
            raise ValueError(f"Invalid override '{pair}', empty key")
        node = out
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = yaml.safe_load(raw)
    return out


def apply_settings_overrides(settings: Settings, overrides: Mapping[str, Any] | None) -> Settings:
    if not overrides:
        return settings

    safe_overrides = _filter_overrides(overrides, allowed_tree=ALLOWED_SETTINGS_OVERRIDES_TREE)
    merged_payload = _deep_merge(settings.model_dump(mode="python"), safe_overrides)
    return Settings.model_validate(merged_payload)
