from __future__ import annotations

"""CLI helper for inspecting and cleaning the harvester's data files."""

import argparse
import shutil
from datetime import datetime
from pathlib import Path
from typing import Sequence

from . import config
from .dataset import items_from_records, load_dataset
from .telemetry import dataset_stats
from .utils import format_bytes, load_json_file


def _describe_file(label: str, path: Path) -> str:
    if not path.exists():
        return f"{label}: missing ({path})"
    stat = path.stat()
    modified = datetime.fromtimestamp(stat.st_mtime).strftime("%Y-%m-%d %H:%M:%S")
    return f"{label}: {format_bytes(stat.st_size)}, modified {modified} ({path})"


def cmd_status() -> int:
    items = load_dataset(config.DATASET_JSON, config.DATASET_CSV)
    print(_describe_file("Dataset", config.DATASET_JSON))
    print(f"  items: {len(items)}")

    new_items = load_json_file(config.NEW_ITEMS_JSON, default=None)
    print(_describe_file("New items", config.NEW_ITEMS_JSON))
    if isinstance(new_items, list):
        print(f"  items: {len(new_items)}")

    cache = load_json_file(config.CACHE_FILE, default=None)
    print(_describe_file("Cache", config.CACHE_FILE))
    if isinstance(cache, dict):
        absent = sum(1 for entry in cache.values() if isinstance(entry, dict) and entry.get("status") == "absent")
        print(f"  entries: {len(cache)} ({absent} without IMDb id)")

    state = load_json_file(config.RUN_STATE_FILE, default=None)
    print(_describe_file("Checkpoint", config.RUN_STATE_FILE))
    if isinstance(state, dict):
        print(f"  last page: {state.get('lastPage')}, items: {len(state.get('items') or [])}")

    summary = load_json_file(config.SUMMARY_FILE, default=None)
    if isinstance(summary, dict):
        print(
            f"Last run: mode={summary.get('mode')}, items={summary.get('items')}, "
            f"with IMDb id={summary.get('with_external_id')}, failed={summary.get('failed')}"
        )
    return 0


def _pct(count: int, total: int) -> str:
    return f"{(100.0 * count / total) if total else 0.0:.1f}%"


def cmd_stats() -> int:
    items = load_dataset(config.DATASET_JSON, config.DATASET_CSV)
    if not items:
        print("Dataset not found or empty")
        return 1

    stats = dataset_stats(items)
    total = stats["total"]
    print(f"Total items: {total}")
    for kind, count in stats["by_kind"].items():
        print(f"  {kind}: {count}")
    for key, label in (
        ("with_external_id", "With IMDb id"),
        ("with_original_title", "With original title"),
        ("with_genre", "With genre"),
        ("with_director", "With director"),
        ("with_description", "With description"),
    ):
        print(f"{label}: {stats[key]} ({_pct(stats[key], total)})")

    print("\nRating distribution:")
    for rating, count in sorted(stats["by_rating"].items(), reverse=True):
        bar = "#" * round(100.0 * count / total / 2)
        print(f"  {rating:>7}: {count:>4} ({_pct(count, total):>6}) {bar}")
    return 0


def cmd_recent(limit: int = 10) -> int:
    raw = load_json_file(config.NEW_ITEMS_JSON, default=None)
    source = "new items"
    if not isinstance(raw, list) or not raw:
        raw = load_json_file(config.DATASET_JSON, default=None)
        source = "dataset"
    if not isinstance(raw, list) or not raw:
        print("No items")
        return 0

    items = items_from_records(raw)[:limit]
    print(f"Most recent {len(items)} items ({source}):")
    for position, item in enumerate(items, start=1):
        print(f"{position}. {item.title} ({item.year or '?'}) - {item.kind.value} - {item.rating or '-'}*")
        if item.external_id:
            print(f"   IMDb: {item.external_id}")
        if item.genre:
            print(f"   Genre: {item.genre}")
    return 0


def cmd_cleanup() -> int:
    for path in (config.NEW_ITEMS_JSON, config.CACHE_FILE, config.RUN_STATE_FILE):
        try:
            path.unlink()
            print(f"Deleted {path}")
        except FileNotFoundError:
            print(f"Not present: {path}")
    if config.DEBUG_DIR.exists():
        shutil.rmtree(config.DEBUG_DIR)
        print(f"Deleted {config.DEBUG_DIR}/")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    """Return an argument parser for the management CLI."""

    parser = argparse.ArgumentParser(description="Inspect and maintain the CSFD ratings data files.")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Show dataset, cache and checkpoint files.")
    sub.add_parser("stats", help="Show dataset coverage and rating distribution.")
    recent = sub.add_parser("recent", help="Show the most recently added items.")
    recent.add_argument("--limit", type=int, default=10)
    sub.add_parser("cleanup", help="Delete cache, checkpoint, new items and debug dumps.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the management CLI."""

    args = _build_parser().parse_args(list(argv) if argv is not None else None)
    if args.command == "status":
        return cmd_status()
    if args.command == "stats":
        return cmd_stats()
    if args.command == "recent":
        return cmd_recent(args.limit)
    return cmd_cleanup()


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
