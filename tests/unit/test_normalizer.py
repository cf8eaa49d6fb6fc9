from facility_catalog.pipeline.normalizer import build_address, normalize_record, resolve_field_map


def _tceq_fields() -> dict:
    return resolve_field_map(
        {
            "city": ["Phys Addr City"],
            "state": ["Phys Addr State"],
            "zip": ["Phys Addr Zip"],
            "address_lines": ["Phys Addr Line 1", "Phys Addr Line 2"],
            "near_lines": ["Near Phys Loc Txt", "Near Phys Loc City"],
            "type": ["Physical Type"],
        }
    )


def test_resolve_field_map_puts_overrides_first_without_duplicates():
    fields = resolve_field_map({"name": ["Site Name", "name"]})
    assert fields["name"][:2] == ["Site Name", "name"]
    assert fields["name"].count("name") == 1
    assert fields["lat"] == ["lat", "latitude", "Latitude"]


def test_normalize_record_maps_alternate_keys():
    record = normalize_record(
        {
            "facility_name": "  Austin   Community Landfill ",
            "facility_type": "landfill",
            "full_address": "9900 Giles Rd, Austin, TX 78754",
            "latitude": "30.33",
            "longitude": "-97.60",
            "url": "https://example.org",
            "sourceUrl": "https://ref.example/1",
        },
        "osm",
        state_code="TX",
        place_group="texas",
        place="Austin",
        source_file="raw/osm/texas/austin.json",
        row_index=3,
    )

    assert record.name == "Austin Community Landfill"
    assert record.type == "landfill"
    assert record.address == "9900 Giles Rd, Austin, TX 78754"
    assert (record.lat, record.lng) == (30.33, -97.6)
    assert record.website == "https://example.org"
    assert record.source_url == "https://ref.example/1"
    assert record.state == "TX"
    assert record.place == "Austin"
    assert record.row_index == 3


def test_normalize_record_returns_none_without_name_or_address():
    assert normalize_record({"lat": 30.0, "lng": -97.0, "type": "landfill"}, "osm") is None
    assert normalize_record("not a mapping", "osm") is None


def test_build_address_joins_lines_with_city_state_zip():
    raw = {
        "Phys Addr Line 1": "5565 Kirkpatrick Blvd",
        "Phys Addr Line 2": "",
        "Phys Addr City": "Houston",
        "Phys Addr State": "TX",
        "Phys Addr Zip": "77028",
    }
    assert build_address(raw, _tceq_fields()) == "5565 Kirkpatrick Blvd Houston TX 77028"


def test_build_address_falls_back_to_near_location_text():
    raw = {"Near Phys Loc Txt": "3 mi NW of Dalhart on US 87", "Near Phys Loc City": "Dalhart"}
    assert build_address(raw, _tceq_fields()) == "3 mi NW of Dalhart on US 87 Dalhart"


def test_normalize_record_derives_city_from_address_tail():
    record = normalize_record({"name": "Amarillo Landfill", "address": "3501 SE 3rd Ave, Amarillo TX 79106"}, "manual", state_code="TX")
    assert record.city == "Amarillo"


def test_normalize_record_reads_reference_link_from_source_field():
    record = normalize_record({"name": "Depot", "source": "https://city.example/depot"}, "manual")
    assert record.source_url == "https://city.example/depot"

    record = normalize_record({"name": "Depot", "source": "city website"}, "manual")
    assert record.source_url == ""


def test_normalize_record_reprojects_when_source_crs_given():
    record = normalize_record(
        {"name": "Projected Site", "lat": 3539000.0, "lng": -10880000.0},
        "tceq",
        source_epsg=3857,
    )
    assert 29 < record.lat < 31
    assert -98 < record.lng < -97
