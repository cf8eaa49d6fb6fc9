"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from facility_catalog.common.constants import SOURCE_MODES
from facility_catalog.common.errors import ConfigError


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"Expected a mapping for {ctx}")
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def validate_group_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    top_required = {
        "place_group",
        "source_mode",
        "sources",
        "overpass",
        "nominatim",
        "reverse_geocode",
        "places",
        "neighbors",
        "output",
    }
    top_known = top_required | {"fields"}
    _assert_required_keys(cfg, top_required, "group config")
    _assert_no_unknown_keys(cfg, top_known, "group config", allow_unknown)

    _assert_required_keys(cfg["place_group"], {"slug", "name", "state_code"}, "place_group")
    if cfg["source_mode"] not in SOURCE_MODES:
        raise ConfigError(f"source_mode must be one of {', '.join(SOURCE_MODES)}: {cfg['source_mode']}")

    sources = cfg["sources"]
    _assert_required_keys(sources, {"government", "osm", "manual"}, "sources")
    _assert_required_keys(sources["government"], {"enabled", "path", "source_name"}, "sources.government")
    _assert_required_keys(sources["osm"], {"dir"}, "sources.osm")
    _assert_required_keys(sources["manual"], {"dir"}, "sources.manual")
    if cfg["source_mode"] == "government" and not sources["government"]["enabled"]:
        raise ConfigError("source_mode=government requires sources.government.enabled")

    _assert_required_keys(cfg["overpass"], {"enabled", "endpoint", "timeout_seconds"}, "overpass")
    _assert_required_keys(cfg["nominatim"], {"search_endpoint", "reverse_endpoint"}, "nominatim")
    _assert_required_keys(
        cfg["reverse_geocode"],
        {"enabled", "cache_path", "min_interval_seconds"},
        "reverse_geocode",
    )
    _assert_required_keys(cfg["places"], {"seed_list"}, "places")
    _assert_required_keys(cfg["neighbors"], {"k"}, "neighbors")
    if int(cfg["neighbors"]["k"]) < 0:
        raise ConfigError("neighbors.k must be >= 0")
    _assert_required_keys(cfg["output"], {"catalog_dir", "site_dir"}, "output")

    fields = cfg.get("fields") or {}
    for key, value in fields.items():
        if not isinstance(value, list):
            raise ConfigError(f"fields.{key} must be a list of column names")

    return cfg


def validate_place_rules_config(cfg: dict) -> dict:
    _assert_required_keys(
        cfg,
        {
            "max_length",
            "max_tokens",
            "directional_prefixes",
            "block_tokens",
            "sentence_tokens",
            "addressy_patterns",
            "noise_tokens",
            "noise_prefix_tokens",
        },
        "place_rules",
    )
    for key in ("aliases", "fragment_tokens", "drop_tokens", "hard_include"):
        value = cfg.get(key, {})
        if not isinstance(value, dict):
            raise ConfigError(f"place_rules.{key} must be a mapping keyed by place group")
    return cfg


def validate_facility_types_config(cfg: dict) -> dict:
    _assert_required_keys(cfg, {"types", "default"}, "facility_types")
    if not isinstance(cfg["types"], list) or not cfg["types"]:
        raise ConfigError("facility_types.types must be a non-empty list")
    for idx, entry in enumerate(cfg["types"]):
        _assert_required_keys(entry, {"type", "keywords"}, f"facility_types.types[{idx}]")
    return cfg
