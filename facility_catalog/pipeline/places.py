"""Build the canonical catalog and the published place list for one place group."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable

from facility_catalog.common.config_loader import ConfigBundle
from facility_catalog.common.constants import SAMPLE_LIMIT
from facility_catalog.common.fs import list_json_files, read_json_or, write_json, write_json_if_changed
from facility_catalog.common.http import HttpClient
from facility_catalog.common.logging import log_event
from facility_catalog.common.models import CanonicalFacility, NormalizedRecord, PlaceDecision, PlaceRef
from facility_catalog.common.text import slugify, title_case_from_slug
from facility_catalog.pipeline.catalog import backfill_facility_ids, load_catalog, merge_into_catalog
from facility_catalog.pipeline.coordinates import validate_coordinate
from facility_catalog.pipeline.identity import FacilityResolver, TypeTaxonomy
from facility_catalog.pipeline.normalizer import normalize_record, resolve_field_map
from facility_catalog.pipeline.place_classifier import (
    REASON_EMPTY,
    PlaceRules,
    canonicalize_place_slugs,
    classify_place_label,
)
from facility_catalog.pipeline.reverse_geocode import ReverseGeocodeCache, ReverseLookup, nominatim_reverse_lookup
from facility_catalog.pipeline.sources import GroupSources, SkippedSource, SourceDocument, load_group_sources

REASON_NO_IDENTIFIERS = "no-identifiers"
PLACES_FILENAME = "_places.json"


@dataclass
class Observation:
    record: NormalizedRecord
    document: SourceDocument
    row_index: int
    slug: str = ""
    decision: PlaceDecision | None = None
    reverse_geocoded: bool = False


def places_dir(data_dir: Path, cfg: dict, place_group: str) -> Path:
    return data_dir / cfg["output"]["catalog_dir"] / "places" / place_group


def observed_ids_path(data_dir: Path, place_group: str) -> Path:
    return data_dir / "intermediate" / f"{place_group}_observed.json"


def _in_group(record: NormalizedRecord, place_group: str, state_code: str) -> bool:
    if not record.state:
        return True
    return slugify(record.state) in {slugify(state_code), place_group}


def _relative(path: Path, data_dir: Path) -> str:
    try:
        return path.relative_to(data_dir).as_posix()
    except ValueError:
        return path.as_posix()


def collect_observations(
    place_group: str,
    cfg: dict,
    sources: GroupSources,
    data_dir: Path,
    counts: Counter,
) -> list[Observation]:
    state_code = cfg["place_group"]["state_code"]
    fields = resolve_field_map(cfg.get("fields"))
    government = cfg["sources"]["government"]

    observations: list[Observation] = []
    for doc in sources.documents:
        source_file = _relative(doc.path, data_dir)
        if not doc.rows:
            sources.skipped.append(SkippedSource(path=source_file, reason="empty"))
            continue

        usable = 0
        epsg = government.get("epsg") if doc.source == government["source_name"] else None
        for idx, raw in enumerate(doc.rows):
            counts["records_in"] += 1
            record = normalize_record(
                raw,
                doc.source,
                fields=fields,
                state_code=state_code,
                place_group=place_group if doc.place else "",
                place=doc.place,
                source_file=source_file,
                row_index=idx,
                source_epsg=epsg,
            )
            if record is None:
                counts["skipped_unidentifiable"] += 1
                continue
            if not _in_group(record, place_group, state_code):
                counts["out_of_group"] += 1
                continue

            lat, lng = validate_coordinate(record.lat, record.lng)
            if lat is None and (record.lat is not None or record.lng is not None):
                counts["invalid_coordinates"] += 1
            observations.append(Observation(record=replace(record, lat=lat, lng=lng), document=doc, row_index=idx))
            usable += 1

        if usable == 0:
            sources.skipped.append(SkippedSource(path=source_file, reason="no-usable-rows"))
    counts["normalized"] = len(observations)
    return observations


def _label(observation: Observation) -> str:
    return observation.record.place or observation.record.city


def assign_places(
    observations: list[Observation],
    rules: PlaceRules,
    reverse_cache: ReverseGeocodeCache | None,
) -> set[str]:
    """Classify every observation's place label; returns the slugs accepted from clean labels."""
    known: set[str] = set()
    for obs in observations:
        obs.decision = classify_place_label(_label(obs), rules)
        if obs.decision.accepted and not obs.decision.salvaged:
            known.add(obs.decision.slug)

    # Salvage only against places that some clean label already established.
    for obs in observations:
        if not obs.decision.accepted:
            obs.decision = classify_place_label(_label(obs), rules, known)

    for obs in observations:
        if obs.decision.accepted or reverse_cache is None or not obs.record.has_coordinates:
            continue
        name = reverse_cache.resolve(obs.record.lat, obs.record.lng)
        if not name:
            continue
        decision = classify_place_label(name, rules, known)
        if decision.accepted:
            obs.decision = decision
            obs.reverse_geocoded = True

    for obs in observations:
        if obs.decision.accepted:
            obs.slug = obs.decision.slug
        elif obs.decision.reason == REASON_EMPTY and not obs.record.has_coordinates:
            obs.decision = replace(obs.decision, reason=REASON_NO_IDENTIFIERS)
    return known


def _place_names(observations: Iterable[Observation], rules: PlaceRules) -> dict[str, str]:
    seen: dict[str, set[str]] = defaultdict(set)
    for obs in observations:
        if obs.slug and obs.decision and slugify(obs.decision.name) == obs.slug:
            seen[obs.slug].add(obs.decision.name)
    return {slug: rules.trusted.get(slug) or sorted(names)[0] for slug, names in seen.items()}


def _members(catalog: dict[str, CanonicalFacility], place_group: str) -> dict[str, list[CanonicalFacility]]:
    members: dict[str, list[CanonicalFacility]] = defaultdict(list)
    for facility in catalog.values():
        for ref in facility.appears_in:
            if ref.place_group == place_group:
                members[ref.place].append(facility)
    return members


def renderable_members(catalog: dict[str, CanonicalFacility], place_group: str) -> dict[str, list[CanonicalFacility]]:
    """Places of the group holding at least one facility with coordinates."""
    return {
        slug: facilities
        for slug, facilities in _members(catalog, place_group).items()
        if any(f.has_coordinates for f in facilities)
    }


def published_place_names(data_dir: Path, cfg: dict, place_group: str) -> dict[str, str]:
    places = read_json_or(places_dir(data_dir, cfg, place_group) / PLACES_FILENAME, [])
    if not isinstance(places, list):
        return {}
    return {
        entry["slug"]: entry["name"]
        for entry in places
        if isinstance(entry, dict) and entry.get("slug") and entry.get("name")
    }


def write_place_documents(
    data_dir: Path,
    cfg: dict,
    place_group: str,
    catalog: dict[str, CanonicalFacility],
    names: dict[str, str],
) -> list[dict]:
    out_dir = places_dir(data_dir, cfg, place_group)
    published = []
    for slug, facilities in sorted(renderable_members(catalog, place_group).items()):
        ordered = sorted(facilities, key=lambda f: (f.name.lower(), f.id))
        name = names.get(slug) or title_case_from_slug(slug)
        write_json_if_changed(
            out_dir / f"{slug}.json",
            {
                "place_group": place_group,
                "place": slug,
                "name": name,
                "facility_count": len(ordered),
                "facilities": [f.summary() for f in ordered],
            },
        )
        published.append({"slug": slug, "name": name, "facility_count": len(ordered)})

    published_slugs = {entry["slug"] for entry in published}
    for path in list_json_files(out_dir):
        if not path.name.startswith("_") and path.stem not in published_slugs:
            path.unlink()

    published.sort(key=lambda entry: (entry["name"].lower(), entry["slug"]))
    write_json_if_changed(out_dir / PLACES_FILENAME, published)
    return published


def _quality_report(
    place_group: str,
    observations: list[Observation],
    sources: GroupSources,
    counts: Counter,
    resolver: FacilityResolver,
    published: list[dict],
    reverse_cache: ReverseGeocodeCache | None,
) -> dict:
    rejections: Counter = Counter()
    rejected_labels: set[str] = set()
    for obs in observations:
        if obs.decision is not None and not obs.decision.accepted:
            rejections[obs.decision.reason] += 1
            if _label(obs):
                rejected_labels.add(_label(obs))
    for skipped in sources.skipped:
        rejections[skipped.reason] += 1

    placed = [obs for obs in observations if obs.slug]
    return {
        "place_group": place_group,
        "counts": {
            "records_in": counts["records_in"],
            "normalized": counts["normalized"],
            "skipped_unidentifiable": counts["skipped_unidentifiable"] + resolver.skipped,
            "out_of_group": counts["out_of_group"],
            "invalid_coordinates": counts["invalid_coordinates"],
            "facilities": len(resolver.facilities),
            "places_accepted": len({obs.slug for obs in placed}),
            "records_placed": len(placed),
            "records_salvaged": sum(1 for obs in placed if obs.decision.salvaged),
            "records_reverse_geocoded": sum(1 for obs in placed if obs.reverse_geocoded),
            "records_unplaced": sum(1 for obs in observations if not obs.slug),
            "renderable_places": len(published),
        },
        "rejections": dict(sorted(rejections.items())),
        "rejected_label_samples": sorted(rejected_labels)[:SAMPLE_LIMIT],
        "skipped_sources": [s.to_dict() for s in sorted(sources.skipped, key=lambda s: (s.path, s.reason))],
        "reverse_geocode": {
            "hits": reverse_cache.hits if reverse_cache else 0,
            "misses": reverse_cache.misses if reverse_cache else 0,
            "failures": reverse_cache.failures if reverse_cache else 0,
        },
    }


def run_place_build(
    place_group: str,
    cfg: dict,
    bundle: ConfigBundle,
    data_dir: Path,
    run_id: str,
    logger: logging.Logger,
    reverse_lookup: ReverseLookup | None = None,
) -> dict:
    sources = load_group_sources(place_group, cfg, data_dir, logger)
    counts: Counter = Counter()
    observations = collect_observations(place_group, cfg, sources, data_dir, counts)

    extra_trusted = [seed["place"] for seed in sources.seed_places] + sources.manual_place_names
    rules = PlaceRules.from_config(bundle.place_rules, cfg, extra_trusted)

    rg_cfg = cfg["reverse_geocode"]
    client: HttpClient | None = None
    reverse_cache = None
    if rg_cfg["enabled"]:
        if reverse_lookup is None:
            client = HttpClient()
            reverse_lookup = nominatim_reverse_lookup(client, cfg["nominatim"]["reverse_endpoint"])
        reverse_cache = ReverseGeocodeCache(
            data_dir / rg_cfg["cache_path"],
            reverse_lookup,
            min_interval=float(rg_cfg["min_interval_seconds"]),
            logger=logger,
        )
    try:
        assign_places(observations, rules, reverse_cache)
    finally:
        if reverse_cache is not None:
            reverse_cache.save()
        if client is not None:
            client.close()

    canonical = canonicalize_place_slugs((obs.slug for obs in observations), rules)
    for obs in observations:
        if obs.slug:
            obs.slug = canonical.get(obs.slug, obs.slug)
    names = {**rules.trusted, **_place_names(observations, rules)}

    government = cfg["sources"]["government"]
    default_types = {government["source_name"]: government["default_type"]} if government.get("default_type") else {}
    resolver = FacilityResolver(TypeTaxonomy.from_config(bundle.facility_types), default_types)
    assigned = resolver.resolve(
        (obs.record, PlaceRef(place_group, obs.slug) if obs.slug else None) for obs in observations
    )

    catalog_dir = data_dir / cfg["output"]["catalog_dir"]
    merge_result = merge_into_catalog(resolver.facilities, catalog_dir, logger)

    ids_by_doc: dict[Path, dict[int, str]] = defaultdict(dict)
    for idx, obs in enumerate(observations):
        facility_id = assigned.get(idx)
        if facility_id and obs.document.source == "osm":
            ids_by_doc[obs.document.path][obs.row_index] = facility_id
    docs_by_path = {doc.path: doc for doc in sources.documents}
    for path in sorted(ids_by_doc):
        backfill_facility_ids(path, docs_by_path[path].container_key, ids_by_doc[path])

    catalog = load_catalog(catalog_dir, logger)
    published = write_place_documents(data_dir, cfg, place_group, catalog, names)

    observed = sorted({fid for fid in assigned.values() if fid})
    write_json(observed_ids_path(data_dir, place_group), {"place_group": place_group, "facility_ids": observed})

    report = _quality_report(place_group, observations, sources, counts, resolver, published, reverse_cache)
    report["catalog"] = {
        "written": merge_result.written,
        "unchanged": merge_result.unchanged,
        "total": merge_result.total,
    }
    write_json(data_dir / "out" / "reports" / f"{place_group}_quality.json", report)

    log_event(
        logger,
        f"Place build complete for {place_group}",
        run_id=run_id,
        stage="merge",
        place_group=place_group,
        event="place_build_complete",
        status="warn" if sources.skipped else "ok",
        rows_in=counts["records_in"],
        rows_out=len(resolver.facilities),
    )
    return report
