import shutil
from pathlib import Path

import pytest

from facility_catalog.common.config_loader import load_all_configs, resolve_groups
from facility_catalog.common.errors import ConfigError


def _copy_repo_config(tmp_path: Path) -> Path:
    base = tmp_path / "base"
    shutil.copytree(Path("config"), base)
    return base


def test_load_all_configs_from_repo_config_dir():
    bundle = load_all_configs(Path("config"))
    assert set(bundle.groups) == {"california", "texas"}
    assert bundle.place_rules["max_tokens"] == 4
    assert bundle.facility_types["default"] == "other"


def test_resolve_groups():
    bundle = load_all_configs(Path("config"))
    assert resolve_groups("all", bundle) == ["california", "texas"]
    assert resolve_groups("texas", bundle) == ["texas"]
    with pytest.raises(ConfigError):
        resolve_groups("ohio", bundle)


def test_load_all_configs_applies_overlay_values(tmp_path: Path):
    base = _copy_repo_config(tmp_path)
    overlay = tmp_path / "overlay"
    (overlay / "groups").mkdir(parents=True)
    (overlay / "groups" / "texas.yml").write_text(
        """overpass:
  enabled: false
neighbors:
  k: 3
""",
        encoding="utf-8",
    )

    bundle = load_all_configs(base, overlay_config_dir=overlay)

    assert bundle.groups["texas"]["overpass"]["enabled"] is False
    assert bundle.groups["texas"]["overpass"]["timeout_seconds"] == 25
    assert bundle.groups["texas"]["neighbors"]["k"] == 3
    assert bundle.groups["california"]["neighbors"]["k"] == 10


def test_load_all_configs_ignores_empty_overlay_file(tmp_path: Path):
    base = _copy_repo_config(tmp_path)
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "place_rules.yml").write_text("", encoding="utf-8")

    bundle = load_all_configs(base, overlay_config_dir=overlay)
    assert bundle.place_rules["max_length"] == 32


def test_load_all_configs_rejects_non_mapping_overlay(tmp_path: Path):
    base = _copy_repo_config(tmp_path)
    overlay = tmp_path / "overlay"
    (overlay / "groups").mkdir(parents=True)
    (overlay / "groups" / "texas.yml").write_text("- not\n- a\n- mapping\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_all_configs(base, overlay_config_dir=overlay)


def test_load_all_configs_requires_group_configs(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_all_configs(tmp_path)


def test_load_all_configs_requires_place_rules(tmp_path: Path):
    base = _copy_repo_config(tmp_path)
    (base / "place_rules.yml").unlink()

    with pytest.raises(ConfigError):
        load_all_configs(base)
