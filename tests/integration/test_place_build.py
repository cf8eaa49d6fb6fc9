from __future__ import annotations

import copy
from pathlib import Path

import pytest

from facility_catalog.common.fs import read_json
from facility_catalog.pipeline.catalog import load_catalog
from facility_catalog.pipeline.neighbors import run_neighbors
from facility_catalog.pipeline.places import run_place_build


def _build(data_dir: Path, cfg: dict, bundle, logger, **kwargs) -> dict:
    return run_place_build("texas", cfg, bundle, data_dir, "run-build", logger, **kwargs)


@pytest.mark.integration
def test_place_build_publishes_catalog_and_places(data_dir: Path, texas_cfg: dict, bundle, logger):
    report = _build(data_dir, texas_cfg, bundle, logger)

    counts = report["counts"]
    assert counts["records_in"] == 12
    assert counts["skipped_unidentifiable"] == 2
    assert counts["normalized"] == 10
    assert counts["invalid_coordinates"] == 1
    assert counts["facilities"] == 10
    assert counts["records_salvaged"] == 1
    assert counts["records_unplaced"] == 2
    assert counts["renderable_places"] == 5
    assert report["rejections"] == {"empty": 1, "failed-quality-gate": 1, "not-array-source": 1}
    assert report["skipped_sources"] == [{"path": "broken.json", "reason": "not-array-source"}]

    places_root = data_dir / "catalog" / "places" / "texas"
    assert read_json(places_root / "_places.json") == [
        {"facility_count": 1, "name": "Austin", "slug": "austin"},
        {"facility_count": 1, "name": "Brownwood", "slug": "brownwood"},
        {"facility_count": 2, "name": "Dalhart", "slug": "dalhart"},
        {"facility_count": 1, "name": "Dallas", "slug": "dallas"},
        {"facility_count": 3, "name": "Houston", "slug": "houston"},
    ]
    houston = read_json(places_root / "houston.json")
    assert [f["name"] for f in houston["facilities"]] == [
        "City of Houston Northeast Transfer Station",
        "North Houston Landfill",
        "Westside Recycling Center",
    ]

    catalog = load_catalog(data_dir / "catalog")
    assert len(catalog) == 10
    by_name = {f.name: f for f in catalog.values()}
    assert by_name["Dallas Drop-Off Center"].id.startswith("f_manual_")
    assert by_name["Dallas Drop-Off Center"].type == "drop_off"
    assert by_name["Dalhart Transfer Station"].type == "transfer_station"
    assert by_name["Main Street Convenience Center"].appears_in == set()
    assert by_name["North Houston Landfill"].lat is None

    observed = read_json(data_dir / "intermediate" / "texas_observed.json")["facility_ids"]
    assert observed == sorted(catalog)


@pytest.mark.integration
def test_place_build_backfills_harvested_documents(data_dir: Path, texas_cfg: dict, bundle, logger):
    _build(data_dir, texas_cfg, bundle, logger)

    items = read_json(data_dir / "raw" / "osm" / "texas" / "houston.json")["items"]
    catalog = load_catalog(data_dir / "catalog")
    assert catalog[items[0]["facility_id"]].name == "Westside Recycling Center"
    assert catalog[items[1]["facility_id"]].name == "North Houston Landfill"
    assert "facility_id" not in items[2]


@pytest.mark.integration
def test_place_build_rerun_is_idempotent(data_dir: Path, texas_cfg: dict, bundle, logger):
    _build(data_dir, texas_cfg, bundle, logger)
    snapshot = {p: p.read_bytes() for p in sorted((data_dir / "catalog").rglob("*.json"))}

    report = _build(data_dir, texas_cfg, bundle, logger)

    assert report["catalog"] == {"written": 0, "unchanged": 10, "total": 10}
    assert {p: p.read_bytes() for p in sorted((data_dir / "catalog").rglob("*.json"))} == snapshot


@pytest.mark.integration
def test_place_build_reverse_geocodes_unlabelled_records(data_dir: Path, texas_cfg: dict, bundle, logger):
    cfg = copy.deepcopy(texas_cfg)
    cfg["reverse_geocode"]["enabled"] = True
    calls = []

    def fake_lookup(lat, lng):
        calls.append((lat, lng))
        return "Temple"

    report = _build(data_dir, cfg, bundle, logger, reverse_lookup=fake_lookup)

    assert calls == [(31.1, -97.3)]
    assert report["counts"]["records_reverse_geocoded"] == 1
    assert report["reverse_geocode"] == {"hits": 0, "misses": 1, "failures": 0}
    assert read_json(data_dir / "cache" / "reverse_geocode.json") == {"31.1000,-97.3000": "Temple"}
    slugs = [entry["slug"] for entry in read_json(data_dir / "catalog" / "places" / "texas" / "_places.json")]
    assert "temple" in slugs


@pytest.mark.integration
def test_neighbors_after_place_build(data_dir: Path, texas_cfg: dict, bundle, logger):
    _build(data_dir, texas_cfg, bundle, logger)

    result = run_neighbors("texas", texas_cfg, data_dir, "run-build", logger)

    assert result["centroids"] == 5
    graph = read_json(data_dir / "catalog" / "places" / "texas" / "_neighbors.json")
    assert sorted(graph) == ["austin", "brownwood", "dalhart", "dallas", "houston"]
    assert all(len(edges) == 4 for edges in graph.values())
    assert graph["dalhart"][-1]["slug"] == "houston"
    centroids = read_json(data_dir / "catalog" / "places" / "texas" / "_centroids.json")
    assert centroids["houston"]["count"] == 2


@pytest.mark.integration
def test_place_build_survives_undecodable_government_export(data_dir: Path, texas_cfg: dict, bundle, logger):
    with (data_dir / "sources" / "tceq" / "msw-facilities-texas.csv").open("ab") as f:
        f.write(b"\xff\xfe broken,row\n")

    report = _build(data_dir, texas_cfg, bundle, logger)

    assert {"path": "msw-facilities-texas.csv", "reason": "not-array-source"} in report["skipped_sources"]
    assert report["counts"]["facilities"] > 0
    published = read_json(data_dir / "catalog" / "places" / "texas" / "_places.json")
    assert "houston" in [entry["slug"] for entry in published]
    assert (data_dir / "out" / "reports" / "texas_quality.json").exists()
