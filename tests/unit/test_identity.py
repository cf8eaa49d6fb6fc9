import random
from pathlib import Path

import pytest

from facility_catalog.common.errors import ContractError
from facility_catalog.common.fs import read_yaml
from facility_catalog.common.models import CanonicalFacility, NormalizedRecord, PlaceRef
from facility_catalog.pipeline import identity
from facility_catalog.pipeline.identity import (
    FacilityResolver,
    TypeTaxonomy,
    apply_improvements,
    fingerprint,
    is_placeholder_name,
    is_weak_address,
)

TAXONOMY = TypeTaxonomy.from_config(read_yaml(Path("config/facility_types.yml")))


def _record(**overrides) -> NormalizedRecord:
    values = {
        "name": "Austin Community Landfill",
        "type": "landfill",
        "address": "9900 Giles Rd Austin TX 78754",
        "city": "Austin",
        "state": "TX",
        "lat": 30.33,
        "lng": -97.6,
        "website": "",
        "source": "tceq",
        "source_url": "",
    }
    values.update(overrides)
    return NormalizedRecord(**values)


def _facility(**overrides) -> CanonicalFacility:
    values = {
        "id": "f_000000000001",
        "slug": "site",
        "name": "Site",
        "type": "landfill",
        "address": "",
        "lat": None,
        "lng": None,
        "website": None,
        "external_reference_url": None,
    }
    values.update(overrides)
    return CanonicalFacility(**values)


def test_type_taxonomy_matches_label_then_keywords():
    assert TAXONOMY.canonical("Transfer Station") == "transfer_station"
    assert TAXONOMY.canonical("drop off") == "drop_off"
    assert TAXONOMY.canonical("Type V", "Dalhart Transfer Station") == "transfer_station"
    assert TAXONOMY.canonical("Type I", "Somewhere", fallback="landfill") == "landfill"
    assert TAXONOMY.canonical("", "Somewhere") == "other"


def test_fingerprint_rounds_coordinates_and_normalises_text():
    a = fingerprint(_record(lat=30.330001, name="Austin  Community Landfill"), "landfill")
    b = fingerprint(_record(lat=30.33, name="austin community landfill"), "landfill")
    assert a == b
    assert a.startswith("lat:30.33|lng:-97.6|type:landfill|name:")


def test_fingerprint_separates_fields_by_label():
    with_address = fingerprint(_record(name="", address="Austin"), "landfill")
    with_name = fingerprint(_record(name="Austin", address=""), "landfill")
    assert with_address != with_name


def test_facility_id_is_stable_and_prefixed():
    resolver = FacilityResolver(TAXONOMY)
    first = resolver.facility_id(_record())
    second = FacilityResolver(TAXONOMY).facility_id(_record())
    assert first == second
    assert first.startswith("f_")
    assert len(first) == len("f_") + 12


def test_manual_id_ignores_coordinates():
    without = FacilityResolver(TAXONOMY).facility_id(_record(source="manual", lat=None, lng=None))
    with_coords = FacilityResolver(TAXONOMY).facility_id(_record(source="manual"))
    assert without == with_coords
    assert without.startswith("f_manual_")


def test_facility_id_collision_raises(monkeypatch):
    monkeypatch.setattr(identity, "short_hash", lambda _value: "deadbeef0000")
    resolver = FacilityResolver(TAXONOMY)
    resolver.facility_id(_record(name="One"))

    with pytest.raises(ContractError):
        resolver.facility_id(_record(name="Two"))


def test_same_site_in_two_places_becomes_one_facility():
    resolver = FacilityResolver(TAXONOMY)
    assigned = resolver.resolve(
        [
            (_record(source_file="a.json"), PlaceRef("texas", "austin")),
            (_record(source_file="b.json"), PlaceRef("texas", "round-rock")),
        ]
    )

    assert assigned[0] == assigned[1]
    facility = resolver.facilities[assigned[0]]
    assert facility.appears_in == {PlaceRef("texas", "austin"), PlaceRef("texas", "round-rock")}


def test_resolve_is_independent_of_input_order():
    items = [
        (_record(name="Unnamed site", source_file="a.json", row_index=0), PlaceRef("texas", "austin")),
        (_record(name="Austin Community Landfill", source_file="b.json", row_index=0), PlaceRef("texas", "austin")),
        (_record(name="Other", address="1 Main St", lat=31.0, source_file="c.json"), None),
        (_record(name="Unnamed site", address="", lat=None, lng=None, source_file="d.json"), None),
    ]
    baseline = FacilityResolver(TAXONOMY)
    baseline.resolve(items)
    expected = {fid: f.to_dict() for fid, f in baseline.facilities.items()}

    rng = random.Random(7)
    for _ in range(5):
        shuffled = list(items)
        rng.shuffle(shuffled)
        resolver = FacilityResolver(TAXONOMY)
        resolver.resolve(shuffled)
        assert {fid: f.to_dict() for fid, f in resolver.facilities.items()} == expected


def test_observe_skips_records_without_identifiers():
    resolver = FacilityResolver(TAXONOMY)
    assert resolver.observe(_record(name="", address="", lat=None, lng=None)) is None
    assert resolver.skipped == 1


def test_observe_defaults_placeholder_name_and_source_type():
    resolver = FacilityResolver(TAXONOMY, default_types={"tceq": "landfill"})
    fid = resolver.observe(_record(name="", type="Type I"))
    facility = resolver.facilities[fid]
    assert facility.name == "Unnamed site"
    assert facility.type == "landfill"
    assert facility.slug == fid


def test_placeholder_and_weak_address_rules():
    assert is_placeholder_name("") is True
    assert is_placeholder_name(" Unnamed Site ") is True
    assert is_placeholder_name("Facility") is True
    assert is_placeholder_name("Austin Landfill") is False

    assert is_weak_address("") is True
    assert is_weak_address("Austin") is True
    assert is_weak_address("Amarillo") is True
    assert is_weak_address("12 A") is True
    assert is_weak_address("9900 Giles Rd") is False


def test_apply_improvements_replaces_placeholder_name_only():
    target = _facility(name="Unnamed site", slug="f_000000000001")
    assert apply_improvements(target, _facility(name="Giles Road Landfill")) is True
    assert target.name == "Giles Road Landfill"
    assert target.slug == "giles-road-landfill"

    apply_improvements(target, _facility(name="Another Name"))
    assert target.name == "Giles Road Landfill"


def test_apply_improvements_upgrades_weak_address_only():
    target = _facility(address="Austin")
    apply_improvements(target, _facility(address="9900 Giles Rd Austin TX"))
    assert target.address == "9900 Giles Rd Austin TX"

    apply_improvements(target, _facility(address="1 Other Rd Austin TX"))
    assert target.address == "9900 Giles Rd Austin TX"

    weak = _facility(address="Austin")
    apply_improvements(weak, _facility(address="Travis County"))
    assert weak.address == "Austin"


def test_apply_improvements_fills_missing_values_and_unions_places():
    target = _facility(website="https://keep.example", appears_in={PlaceRef("texas", "austin")})
    candidate = _facility(
        lat=30.1,
        lng=-97.1,
        website="https://other.example",
        external_reference_url="https://ref.example",
        appears_in={PlaceRef("texas", "manor")},
    )
    apply_improvements(target, candidate)

    assert (target.lat, target.lng) == (30.1, -97.1)
    assert target.website == "https://keep.example"
    assert target.external_reference_url == "https://ref.example"
    assert target.appears_in == {PlaceRef("texas", "austin"), PlaceRef("texas", "manor")}

    assert apply_improvements(target, _facility(lat=31.0, lng=-98.0)) is False
    assert (target.lat, target.lng) == (30.1, -97.1)
