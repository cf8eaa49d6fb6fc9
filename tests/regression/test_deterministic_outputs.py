import shutil
from pathlib import Path

import pytest

from facility_catalog.cli import parse_args, run_command

FIXTURE_DATA = Path("tests/fixtures/data")


def _run_once(data_dir: Path, run_id: str) -> None:
    args = parse_args(
        [
            "all",
            "--group",
            "texas",
            "--config-dir",
            "config",
            "--overlay-config-dir",
            "tests/fixtures/config_overlay",
            "--data-dir",
            str(data_dir),
            "--run-date",
            "2026-02-17",
            "--run-id",
            run_id,
        ]
    )
    assert run_command(args) == 0


def _snapshot(root: Path) -> dict[str, bytes]:
    return {p.relative_to(root).as_posix(): p.read_bytes() for p in sorted(root.rglob("*.json"))}


@pytest.mark.regression
def test_catalog_outputs_are_byte_stable_for_same_inputs(tmp_path: Path):
    first = tmp_path / "first"
    second = tmp_path / "second"
    shutil.copytree(FIXTURE_DATA, first)
    shutil.copytree(FIXTURE_DATA, second)

    _run_once(first, "run-a")
    _run_once(second, "run-b")

    assert _snapshot(first / "catalog") == _snapshot(second / "catalog")
    assert _snapshot(first / "raw") == _snapshot(second / "raw")
    assert (first / "out" / "reports" / "texas_quality.json").read_bytes() == (
        second / "out" / "reports" / "texas_quality.json"
    ).read_bytes()


@pytest.mark.regression
def test_rerun_leaves_catalog_untouched(tmp_path: Path):
    data_dir = tmp_path / "data"
    shutil.copytree(FIXTURE_DATA, data_dir)

    _run_once(data_dir, "run-a")
    before = _snapshot(data_dir / "catalog")
    mtimes = {p: p.stat().st_mtime_ns for p in (data_dir / "catalog").rglob("*.json")}
    _run_once(data_dir, "run-b")

    assert _snapshot(data_dir / "catalog") == before
    assert {p: p.stat().st_mtime_ns for p in (data_dir / "catalog").rglob("*.json")} == mtimes
