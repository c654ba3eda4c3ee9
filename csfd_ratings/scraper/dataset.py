"""Dataset persistence: CSV + JSON in the persisted field order."""

from __future__ import annotations

import csv
import shutil
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from . import config
from .models import FIELD_ORDER, RatingItem
from .utils import load_json_file, log_line, save_json_file

# Record keys written by older exports of the dataset.
_LEGACY_KEYS = {
    "url": "sourceUrl",
    "ratingDate": "ratedOn",
    "type": "kind",
    "imdb_id": "externalId",
    "imdb_url": "externalUrl",
    "original_title": "originalTitle",
}
_LEGACY_KINDS = {
    "film": "work",
    "seriál": "series",
    "epizoda": "episode",
    "série": "season",
}


def _normalize_record(record: Dict[str, Any]) -> Dict[str, Any]:
    normalized = dict(record)
    for old, new in _LEGACY_KEYS.items():
        if old in normalized and not normalized.get(new):
            normalized[new] = normalized.pop(old)
    kind = str(normalized.get("kind") or "")
    normalized["kind"] = _LEGACY_KINDS.get(kind, kind)
    return normalized


def items_from_records(records: Iterable[Any]) -> List[RatingItem]:
    return [RatingItem.from_record(_normalize_record(r)) for r in records if isinstance(r, dict)]


def write_csv(items: Sequence[RatingItem], path: Path = config.DATASET_CSV) -> Path:
    """Write ``items`` as CSV; values with commas, quotes or newlines are quoted."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(
            handle,
            fieldnames=list(FIELD_ORDER),
            quoting=csv.QUOTE_MINIMAL,
            lineterminator="\n",
        )
        writer.writeheader()
        for item in items:
            writer.writerow(item.to_record())
    tmp_path.replace(path)
    return path


def write_json(items: Sequence[RatingItem], path: Path = config.DATASET_JSON) -> Path:
    save_json_file(path, [item.to_record() for item in items])
    return Path(path)


def write_dataset(
    items: Sequence[RatingItem],
    *,
    csv_path: Path = config.DATASET_CSV,
    json_path: Path = config.DATASET_JSON,
) -> None:
    """Write both dataset files. Errors propagate: an unwritable dataset is fatal."""

    write_csv(items, csv_path)
    write_json(items, json_path)
    log_line(f"[DATASET] Wrote {len(items)} items -> {csv_path}, {json_path}")


def read_csv(path: Path = config.DATASET_CSV) -> List[RatingItem]:
    path = Path(path)
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", newline="") as handle:
        return items_from_records(csv.DictReader(handle))


def load_dataset(
    json_path: Path = config.DATASET_JSON,
    csv_path: Path = config.DATASET_CSV,
) -> List[RatingItem]:
    """Existing dataset items; JSON preferred, CSV as fallback, else ``[]``."""

    records = load_json_file(json_path, default=None)
    if isinstance(records, list):
        return items_from_records(records)
    return read_csv(csv_path)


def backup_dataset(json_path: Path = config.DATASET_JSON) -> Optional[Path]:
    """Copy the JSON dataset next to itself with a timestamped name."""

    json_path = Path(json_path)
    if not json_path.exists():
        return None
    stamp = time.strftime("%Y-%m-%dT%H-%M-%S")
    backup_path = json_path.with_name(f"{json_path.stem}_backup_{stamp}{json_path.suffix}")
    shutil.copy2(json_path, backup_path)
    log_line(f"[DATASET] Backup created: {backup_path}")
    return backup_path


def merge_new_first(new_items: Sequence[RatingItem], existing: Sequence[RatingItem]) -> List[RatingItem]:
    """New items first (newest ratings lead the listing), then the rest, deduplicated."""

    merged: List[RatingItem] = []
    seen = set()
    for item in list(new_items) + list(existing):
        if item.dedup_key in seen:
            continue
        seen.add(item.dedup_key)
        merged.append(item)
    return merged


def write_new_items(items: Sequence[RatingItem], path: Path = config.NEW_ITEMS_JSON) -> Path:
    return write_json(items, path)


__all__ = [
    "items_from_records",
    "write_csv",
    "write_json",
    "write_dataset",
    "read_csv",
    "load_dataset",
    "backup_dataset",
    "merge_new_first",
    "write_new_items",
]
