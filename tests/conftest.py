from __future__ import annotations

import logging
import shutil
from pathlib import Path

import pytest

from facility_catalog.common.config_loader import ConfigBundle, load_all_configs

FIXTURES = Path("tests/fixtures")


@pytest.fixture
def bundle() -> ConfigBundle:
    return load_all_configs(Path("config"), overlay_config_dir=FIXTURES / "config_overlay")


@pytest.fixture
def texas_cfg(bundle: ConfigBundle) -> dict:
    return bundle.groups["texas"]


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    target = tmp_path / "data"
    shutil.copytree(FIXTURES / "data", target)
    return target


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("facility_catalog.tests")
