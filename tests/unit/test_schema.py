import copy
from pathlib import Path

import pytest

from facility_catalog.common.errors import ConfigError
from facility_catalog.common.fs import read_yaml
from facility_catalog.common.schema import (
    validate_facility_types_config,
    validate_group_config,
    validate_place_rules_config,
)

BASE_GROUP = read_yaml(Path("config/groups/texas.yml"))


def _group() -> dict:
    return copy.deepcopy(BASE_GROUP)


def test_validate_group_config_accepts_repo_shape():
    validated = validate_group_config(_group())
    assert validated["place_group"]["slug"] == "texas"


def test_validate_group_config_rejects_unknown_key_by_default():
    bad = _group()
    bad["unexpected"] = True
    with pytest.raises(ConfigError):
        validate_group_config(bad)


def test_validate_group_config_allows_unknown_when_enabled():
    okay = _group()
    okay["extra"] = 1
    validate_group_config(okay, allow_unknown=True)


def test_validate_group_config_rejects_unknown_source_mode():
    bad = _group()
    bad["source_mode"] = "scrape"
    with pytest.raises(ConfigError):
        validate_group_config(bad)


def test_validate_group_config_requires_enabled_government_source_in_government_mode():
    bad = _group()
    bad["sources"]["government"]["enabled"] = False
    with pytest.raises(ConfigError):
        validate_group_config(bad)


def test_validate_group_config_rejects_scalar_field_candidates():
    bad = _group()
    bad["fields"]["name"] = "Site Name"
    with pytest.raises(ConfigError):
        validate_group_config(bad)


def test_validate_place_rules_requires_group_keyed_aliases():
    rules = read_yaml(Path("config/place_rules.yml"))
    rules["aliases"] = ["antonio"]
    with pytest.raises(ConfigError):
        validate_place_rules_config(rules)


def test_validate_facility_types_rejects_entry_without_keywords():
    with pytest.raises(ConfigError):
        validate_facility_types_config({"types": [{"type": "landfill"}], "default": "other"})
