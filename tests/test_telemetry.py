import json

import pandas as pd

from csfd_ratings.scraper.export_excel import export_dataset_to_excel
from csfd_ratings.scraper.models import ItemKind, RatingItem
from csfd_ratings.scraper.telemetry import RunTelemetry, dataset_stats, prune_old_runs


def _items():
    return [
        RatingItem(title="Duna", source_url="https://www.csfd.cz/film/1/", rating="5", external_id="tt1160419",
                   genre="Sci-Fi", original_title="Dune"),
        RatingItem(title="Fargo", source_url="https://www.csfd.cz/film/2/", rating="4", kind=ItemKind.SERIES,
                   external_id="tt2802850"),
        RatingItem(title="Epizoda 1", source_url="https://www.csfd.cz/film/2/3/", kind=ItemKind.EPISODE),
        RatingItem(title="Odpad", source_url="https://www.csfd.cz/film/4/", rating="5"),
    ]


def test_dataset_stats():
    stats = dataset_stats(_items())

    assert stats["total"] == 4
    assert stats["with_external_id"] == 2
    assert stats["external_id_coverage"] == 50.0
    assert stats["with_original_title"] == 1
    assert stats["with_genre"] == 1
    assert stats["by_kind"] == {"episode": 1, "series": 1, "work": 2}
    assert stats["by_rating"] == {"unrated": 1, "4": 1, "5": 2}


def test_dataset_stats_empty():
    stats = dataset_stats([])

    assert stats["total"] == 0
    assert stats["by_kind"] == {}


def test_run_telemetry_written_and_pruned(tmp_path):
    telemetry = RunTelemetry("full", runs_dir=tmp_path)
    item = _items()[0]
    telemetry.add_item(item, "enriched", "direct")
    telemetry.add_item(_items()[2], "failed", "timeout")

    path = telemetry.finalize({"stop_reason": "empty_page"})

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["mode"] == "full"
    assert payload["stop_reason"] == "empty_page"
    assert payload["summary"] == {"count_enriched": 1, "count_failed": 1}
    assert payload["entries"][0]["external_id"] == "tt1160419"
    assert telemetry.count("failed") == 1

    for index in range(5):
        (tmp_path / f"run_0000_{index}.json").write_text("{}", encoding="utf-8")
    prune_old_runs(tmp_path, keep=3)
    assert len(list(tmp_path.glob("run_*.json"))) == 3
    assert path.exists()


def test_export_dataset_to_excel(tmp_path):
    dest = export_dataset_to_excel(_items(), tmp_path / "ratings.xlsx")

    workbook = pd.ExcelFile(dest, engine="openpyxl")
    assert workbook.sheet_names == ["All", "Missing ID", "Summary_Kind", "Summary_Rating"]
    missing = pd.read_excel(workbook, sheet_name="Missing ID")
    assert list(missing["title"]) == ["Epizoda 1", "Odpad"]
    assert len(pd.read_excel(workbook, sheet_name="All")) == 4


def test_export_empty_dataset(tmp_path):
    dest = export_dataset_to_excel([], tmp_path / "empty.xlsx")

    workbook = pd.ExcelFile(dest, engine="openpyxl")
    assert workbook.sheet_names == ["All", "Missing ID"]
