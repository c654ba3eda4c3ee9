"""Run telemetry and dataset analytics helpers."""

from __future__ import annotations

import json
import time
import uuid
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from . import config
from .models import FIELD_ORDER, RatingItem

MAX_RUNS_KEPT = 20


def _ts() -> str:
    return time.strftime("%Y%m%d_%H%M%S")


class RunTelemetry:
    """Collect per-item outcomes of one run and write them to ``RUNS_DIR``."""

    def __init__(self, mode: str, runs_dir: Path | None = None) -> None:
        self.run_id = f"{_ts()}_{uuid.uuid4().hex[:8]}"
        self.mode = mode
        self.runs_dir = Path(runs_dir) if runs_dir is not None else config.RUNS_DIR
        self.started_at = time.time()
        self.entries: List[Dict[str, Any]] = []
        self.summary: Dict[str, Any] = defaultdict(int)

    def add(self, status: str, reason: str, meta: Dict[str, Any]) -> None:
        self.entries.append(
            {
                "status": status,
                "reason": reason,
                **meta,
            }
        )
        self.summary[f"count_{status}"] += 1

    def add_item(self, item: RatingItem, status: str, reason: str = "") -> None:
        self.add(
            status,
            reason,
            {
                "title": item.title,
                "kind": item.kind.value,
                "source_url": item.source_url,
                "external_id": item.external_id,
            },
        )

    def count(self, status: str) -> int:
        return int(self.summary.get(f"count_{status}", 0))

    def finalize(self, extra: Optional[Dict[str, Any]] = None) -> Path:
        payload = {
            "run_id": self.run_id,
            "mode": self.mode,
            "started_at": self.started_at,
            "ended_at": time.time(),
            "summary": dict(self.summary),
            "entries": self.entries,
            **(extra or {}),
        }
        self.runs_dir.mkdir(parents=True, exist_ok=True)
        path = self.runs_dir / f"run_{self.run_id}.json"
        with path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
        prune_old_runs(self.runs_dir)
        return path


def prune_old_runs(runs_dir: Path | None = None, keep: int = MAX_RUNS_KEPT) -> None:
    runs_dir = Path(runs_dir) if runs_dir is not None else config.RUNS_DIR
    files = sorted(runs_dir.glob("run_*.json"))
    while len(files) > keep:
        old = files.pop(0)
        try:
            old.unlink()
        except OSError:
            continue


def items_frame(items: Sequence[RatingItem]) -> pd.DataFrame:
    """Return ``items`` as a DataFrame with the persisted column names."""

    return pd.DataFrame([item.to_record() for item in items], columns=list(FIELD_ORDER))


def dataset_stats(items: Sequence[RatingItem]) -> Dict[str, Any]:
    """Coverage counts plus kind and rating distributions."""

    df = items_frame(items)
    total = int(len(df))
    if not total:
        return {
            "total": 0,
            "with_external_id": 0,
            "with_original_title": 0,
            "with_genre": 0,
            "with_director": 0,
            "with_description": 0,
            "external_id_coverage": 0.0,
            "by_kind": {},
            "by_rating": {},
        }

    with_id = int((df["externalId"] != "").sum())
    return {
        "total": total,
        "with_external_id": with_id,
        "with_original_title": int((df["originalTitle"] != "").sum()),
        "with_genre": int((df["genre"] != "").sum()),
        "with_director": int((df["director"] != "").sum()),
        "with_description": int((df["description"] != "").sum()),
        "external_id_coverage": round(100.0 * with_id / total, 1),
        "by_kind": {str(k): int(v) for k, v in df["kind"].value_counts().sort_index().items()},
        "by_rating": {
            str(k or "unrated"): int(v) for k, v in df["rating"].value_counts().sort_index().items()
        },
    }


__all__ = [
    "RunTelemetry",
    "prune_old_runs",
    "items_frame",
    "dataset_stats",
]
