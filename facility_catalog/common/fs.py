"""Filesystem helpers."""

from __future__ import annotations

import csv
import json
import shutil
from pathlib import Path
from typing import Iterator


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def read_yaml(path: Path):
    import yaml

    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def dump_json(payload) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True) + "\n"


def write_json(path: Path, payload) -> None:
    ensure_dir(path.parent)
    with path.open("w", encoding="utf-8") as f:
        f.write(dump_json(payload))


def write_json_if_changed(path: Path, payload) -> bool:
    text = dump_json(payload)
    if path.exists() and path.read_text(encoding="utf-8") == text:
        return False
    ensure_dir(path.parent)
    with path.open("w", encoding="utf-8") as f:
        f.write(text)
    return True


def read_json(path: Path):
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def read_json_or(path: Path, fallback):
    if not path.exists():
        return fallback
    try:
        return read_json(path)
    except ValueError:
        return fallback


def list_json_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix.lower() == ".json")


def list_dir_names(directory: Path) -> list[str]:
    if not directory.is_dir():
        return []
    return sorted(p.name for p in directory.iterdir() if p.is_dir())


def remove_tree(path: Path) -> None:
    if path.is_dir():
        shutil.rmtree(path)
    elif path.exists():
        path.unlink()


def iter_csv_rows(path: Path) -> Iterator[dict[str, str]]:
    with path.open("r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        for row in reader:
            yield {key.strip(): (value or "") for key, value in row.items() if key is not None}

