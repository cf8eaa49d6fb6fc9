"""Load untrusted source documents for one place group."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from facility_catalog.common.constants import CONTAINER_KEYS
from facility_catalog.common.errors import ConfigError, SourceFormatError
from facility_catalog.common.fs import list_json_files, read_json
from facility_catalog.common.logging import log_event
from facility_catalog.common.text import clean_str, slugify, title_case_from_slug
from facility_catalog.harvest.tabular import read_government_export

PLACE_NAME_KEYS = ("place", "city", "name", "title")
PLACE_GROUP_KEYS = ("place_group", "state")


@dataclass
class SourceDocument:
    path: Path
    source: str
    rows: list[Any]
    container_key: str | None
    place: str = ""
    place_group: str = ""


@dataclass
class SkippedSource:
    path: str
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "reason": self.reason}


@dataclass
class GroupSources:
    documents: list[SourceDocument] = field(default_factory=list)
    skipped: list[SkippedSource] = field(default_factory=list)
    seed_places: list[dict] = field(default_factory=list)

    @property
    def manual_place_names(self) -> list[str]:
        return [doc.place for doc in self.documents if doc.source == "manual" and doc.place]


def extract_rows(payload: Any) -> tuple[list[Any], str | None]:
    """Return ``(rows, container_key)`` for a bare array or a recognised container document."""
    if isinstance(payload, list):
        return payload, None
    if isinstance(payload, dict):
        for key in CONTAINER_KEYS:
            if isinstance(payload.get(key), list):
                return payload[key], key
    raise SourceFormatError("Document holds no facility array")


def _doc_place(payload: Any, path: Path) -> str:
    if isinstance(payload, dict):
        for key in PLACE_NAME_KEYS:
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return clean_str(value)
    return title_case_from_slug(slugify(path.stem))


def _doc_group(payload: Any, default: str) -> str:
    if isinstance(payload, dict):
        for key in PLACE_GROUP_KEYS:
            value = slugify(payload.get(key))
            if value:
                return value
    return default


def load_place_documents(
    directory: Path,
    source: str,
    place_group: str,
    skipped: list[SkippedSource],
    logger: logging.Logger,
) -> list[SourceDocument]:
    documents = []
    for path in list_json_files(directory):
        try:
            payload = read_json(path)
            rows, container_key = extract_rows(payload)
        except (ValueError, SourceFormatError) as exc:
            skipped.append(SkippedSource(path=str(path.name), reason="not-array-source"))
            log_event(
                logger,
                f"Skipping {source} document {path.name}: {exc}",
                event="source_doc_skipped",
                status="warn",
                place_group=place_group,
                source=source,
                error_code=SourceFormatError.error_code,
            )
            continue
        documents.append(
            SourceDocument(
                path=path,
                source=source,
                rows=rows,
                container_key=container_key,
                place=_doc_place(payload, path),
                place_group=_doc_group(payload, place_group),
            )
        )
    return documents


def load_seed_places(path: Path, place_group: str, state_code: str) -> list[dict]:
    """Seed entries for this group as ``{place_group, place, query}`` dicts."""
    try:
        payload = read_json(path)
        entries, _ = extract_rows(payload)
    except (ValueError, SourceFormatError) as exc:
        raise ConfigError(f"Seed place list {path} is unreadable: {exc}") from exc

    accepted_groups = {place_group, slugify(state_code)}
    seeds: dict[str, dict] = {}
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        group = next((slugify(entry[k]) for k in PLACE_GROUP_KEYS if entry.get(k)), place_group)
        place = clean_str(entry.get("place") or entry.get("city"))
        if group not in accepted_groups or not place:
            continue
        slug = slugify(place)
        seeds.setdefault(
            slug,
            {
                "place_group": place_group,
                "place": place,
                "query": clean_str(entry.get("query")) or f"{place}, {state_code}",
            },
        )
    return [seeds[slug] for slug in sorted(seeds)]


def load_group_sources(place_group: str, cfg: dict, data_dir: Path, logger: logging.Logger) -> GroupSources:
    sources_cfg = cfg["sources"]
    out = GroupSources()

    manual_dir = data_dir / sources_cfg["manual"]["dir"]
    out.documents.extend(load_place_documents(manual_dir, "manual", place_group, out.skipped, logger))

    seed_path = data_dir / cfg["places"]["seed_list"]
    if seed_path.exists():
        out.seed_places = load_seed_places(seed_path, place_group, cfg["place_group"]["state_code"])
    elif not out.documents:
        raise ConfigError(f"Missing seed place list {seed_path} and no manual overrides for {place_group}")

    osm_dir = data_dir / sources_cfg["osm"]["dir"]
    if cfg["source_mode"] == "osm" and not osm_dir.is_dir():
        raise ConfigError(f"Missing map extract directory: {osm_dir}")
    out.documents.extend(load_place_documents(osm_dir, "osm", place_group, out.skipped, logger))

    government = sources_cfg["government"]
    if cfg["source_mode"] == "government" and government.get("enabled"):
        gov_path = data_dir / government["path"]
        if not gov_path.exists():
            raise ConfigError(f"Missing government export: {gov_path}")
        try:
            rows = read_government_export(gov_path, government.get("filters") or {})
        except (ValueError, csv.Error, OSError) as exc:
            out.skipped.append(SkippedSource(path=str(gov_path.name), reason="not-array-source"))
            log_event(
                logger,
                f"Skipping government export {gov_path.name}: {exc}",
                event="source_doc_skipped",
                status="warn",
                place_group=place_group,
                source=government["source_name"],
                error_code=SourceFormatError.error_code,
            )
            return out
        out.documents.append(
            SourceDocument(
                path=gov_path,
                source=government["source_name"],
                rows=rows,
                container_key=None,
            )
        )
    return out
