from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

import pytest

from csfd_ratings.scraper import config
from csfd_ratings.scraper.error_codes import ErrorCode
from csfd_ratings.scraper.fetcher import FetchError, PageFetcher

Response = Union[str, BaseException, List[Union[str, BaseException]], Callable[[str], str]]


class FakeFetcher(PageFetcher):
    """In-memory fetcher: URL -> HTML, exception, or a list consumed in order.

    Unknown URLs raise a 404 ``FetchError``. A key ending in ``*`` matches
    any URL with that prefix.
    """

    name = "fake"

    def __init__(self, pages: Optional[Dict[str, Response]] = None, *, supports_settle: bool = False) -> None:
        self.pages: Dict[str, Response] = dict(pages or {})
        self.supports_settle = supports_settle
        self.calls: List[Tuple[str, bool]] = []
        self.released = 0
        self._lock = threading.Lock()

    def _lookup(self, url: str) -> Optional[Response]:
        if url in self.pages:
            return self.pages[url]
        prefixes = sorted((key for key in self.pages if key.endswith("*")), key=len, reverse=True)
        for key in prefixes:
            if url.startswith(key[:-1]):
                return self.pages[key]
        return None

    def fetch(self, url: str, *, wait_for: Optional[str] = None, settle: bool = False) -> str:
        with self._lock:
            self.calls.append((url, settle))
            response = self._lookup(url)
            if isinstance(response, list):
                response = response.pop(0) if len(response) > 1 else response[0]
        if response is None:
            raise FetchError(ErrorCode.HTTP_404, f"HTTP 404 for {url}", http_status=404)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(url)
        return response

    def release_thread(self) -> None:
        with self._lock:
            self.released += 1

    def urls(self) -> List[str]:
        with self._lock:
            return [url for url, _ in self.calls]


@pytest.fixture
def fake_fetcher() -> type:
    return FakeFetcher


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data_dir = tmp_path / "data"
    monkeypatch.setattr(config, "DATA_DIR", data_dir)
    monkeypatch.setattr(config, "LOG_DIR", data_dir / "logs")
    monkeypatch.setattr(config, "LOG_FILE", data_dir / "logs" / "latest.log")
    monkeypatch.setattr(config, "DEBUG_DIR", tmp_path / "debug")
    monkeypatch.setattr(config, "RUNS_DIR", data_dir / "runs")
    monkeypatch.setattr(config, "EXPORTS_DIR", data_dir / "exports")
    monkeypatch.setattr(config, "DATASET_CSV", data_dir / "csfd_ratings.csv")
    monkeypatch.setattr(config, "DATASET_JSON", data_dir / "csfd_ratings.json")
    monkeypatch.setattr(config, "DATASET_XLSX", data_dir / "exports" / "csfd_ratings.xlsx")
    monkeypatch.setattr(config, "NEW_ITEMS_JSON", data_dir / "new_items.json")
    monkeypatch.setattr(config, "CACHE_FILE", data_dir / "scraper_cache.json")
    monkeypatch.setattr(config, "RUN_STATE_FILE", data_dir / "scraper_state.json")
    monkeypatch.setattr(config, "SUMMARY_FILE", data_dir / "last_summary.json")
    monkeypatch.setattr(config, "RETRY_BASE_DELAY_SECONDS", 0.0)
    monkeypatch.setattr(config, "LISTING_RETRY_DELAY_SECONDS", 0.0)
    return data_dir


def listing_row(
    title: str,
    href: str,
    *,
    info: str = "(2021)",
    stars: Optional[int] = 4,
    rated_on: str = "01.02.2024",
) -> str:
    stars_html = f'<span class="stars stars-{stars}"></span>' if stars is not None else '<span class="stars trash"></span>'
    return (
        "<tr>"
        f'<td class="name"><h3 class="film-title-nooverflow"><a href="{href}" class="film-title-name">{title}</a>'
        f'<span class="film-title-info"><span class="info">{info}</span></span></h3></td>'
        f'<td class="star-rating-only"><span class="star-rating">{stars_html}</span></td>'
        f'<td class="date-only">{rated_on}</td>'
        "</tr>"
    )


def listing_page(*rows: str) -> str:
    return (
        '<html><body><div id="snippet--ratings"><table class="striped"><tbody>'
        + "".join(rows)
        + "</tbody></table></div></body></html>"
    )


def detail_page(
    *,
    imdb_href: Optional[str] = None,
    original_title: Optional[str] = None,
    genres: Optional[str] = None,
    json_ld: Optional[str] = None,
    body: str = "",
) -> str:
    parts = ["<html><head>"]
    if json_ld is not None:
        parts.append(f'<script type="application/ld+json">{json_ld}</script>')
    parts.append("</head><body>")
    if original_title is not None:
        parts.append(
            f'<div class="film-header-name"><ul class="film-names"><li>{original_title}</li></ul></div>'
        )
    if genres is not None:
        parts.append(f'<div class="genres">{genres}</div>')
    if imdb_href is not None:
        parts.append(f'<a class="button-imdb" href="{imdb_href}">IMDb</a>')
    parts.append(body)
    parts.append("</body></html>")
    return "".join(parts)


@pytest.fixture
def html_builders():
    class _Builders:
        row = staticmethod(listing_row)
        listing = staticmethod(listing_page)
        detail = staticmethod(detail_page)

    return _Builders
