"""Excel export of the ratings dataset."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from . import config
from .models import RatingItem
from .telemetry import dataset_stats, items_frame


def export_dataset_to_excel(items: Sequence[RatingItem], dest_path: Optional[Path] = None) -> Path:
    """Write ``items`` to an XLSX workbook and return its path.

    Sheets: ``All`` (every item), ``Missing ID`` (items without an IMDb
    identifier), ``Summary_Kind`` and ``Summary_Rating``.
    """

    df = items_frame(items)
    if df.empty:
        df = pd.DataFrame([{"info": "No items in dataset"}])
        missing = pd.DataFrame()
    else:
        missing = df[df["externalId"] == ""].copy()

    stats = dataset_stats(items)
    summary_kind = pd.DataFrame(
        [{"kind": kind, "count": count} for kind, count in stats["by_kind"].items()]
    )
    summary_rating = pd.DataFrame(
        [{"rating": rating, "count": count} for rating, count in stats["by_rating"].items()]
    )

    dest_path = Path(dest_path) if dest_path is not None else config.DATASET_XLSX
    dest_path.parent.mkdir(parents=True, exist_ok=True)

    with pd.ExcelWriter(dest_path, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="All")
        missing.to_excel(writer, index=False, sheet_name="Missing ID")
        if not summary_kind.empty:
            summary_kind.to_excel(writer, index=False, sheet_name="Summary_Kind")
        if not summary_rating.empty:
            summary_rating.to_excel(writer, index=False, sheet_name="Summary_Rating")

    return dest_path


__all__ = ["export_dataset_to_excel"]
