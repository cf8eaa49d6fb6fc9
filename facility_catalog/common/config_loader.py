"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from facility_catalog.common.errors import ConfigError
from facility_catalog.common.fs import read_yaml
from facility_catalog.common.schema import (
    validate_facility_types_config,
    validate_group_config,
    validate_place_rules_config,
)


@dataclass(frozen=True)
class ConfigBundle:
    groups: dict[str, dict]
    place_rules: dict
    facility_types: dict


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path) or {}
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path) or {}
    return _deep_merge(base, overlay)


def _overlay(overlay_config_dir: Path | None, relative: Path) -> Path | None:
    if overlay_config_dir is None:
        return None
    return overlay_config_dir / relative


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    group_dir = config_dir / "groups"
    group_files = sorted(group_dir.glob("*.yml")) if group_dir.is_dir() else []
    if not group_files:
        raise ConfigError(f"No place group configs found in {group_dir}")

    groups = {}
    for path in group_files:
        relative = Path("groups") / path.name
        cfg = validate_group_config(
            _load_yaml_with_overlay(path, _overlay(overlay_config_dir, relative)),
            allow_unknown=allow_unknown,
        )
        groups[cfg["place_group"]["slug"]] = cfg

    place_rules = validate_place_rules_config(
        _load_yaml_with_overlay(
            config_dir / "place_rules.yml",
            _overlay(overlay_config_dir, Path("place_rules.yml")),
        )
    )
    facility_types = validate_facility_types_config(
        _load_yaml_with_overlay(
            config_dir / "facility_types.yml",
            _overlay(overlay_config_dir, Path("facility_types.yml")),
        )
    )
    return ConfigBundle(groups=groups, place_rules=place_rules, facility_types=facility_types)


def resolve_groups(target: str, bundle: ConfigBundle) -> list[str]:
    if target == "all":
        return sorted(bundle.groups)
    if target not in bundle.groups:
        raise ConfigError(f"Unknown place group: {target}")
    return [target]
