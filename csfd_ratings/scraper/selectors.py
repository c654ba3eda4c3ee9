from __future__ import annotations

"""Selectors and attribute hints for CSFD listing and detail pages."""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class ListingSelectors:
    """Selector hints for the user's ``hodnoceni`` (ratings) listing.

    One table row per rated work; the title link carries the detail URL and
    the star rating is encoded in a ``stars-N`` class.
    """

    row_selector: str = "#snippet--ratings table.striped tbody tr"
    title_link: str = ".name .film-title-name"
    info_spans: str = ".film-title-info .info"
    stars: str = ".star-rating .stars"
    rated_on: str = ".date-only"


@dataclass(frozen=True)
class DetailSelectors:
    """Selector hints for a CSFD film/series detail page.

    Tuples are ordered newest layout first, legacy layouts last.
    """

    imdb_button: str = "a.button-imdb"
    imdb_anchor: str = 'a[href*="imdb.com/title/"]'
    original_title: Tuple[str, ...] = (
        ".film-header-name .film-names li:first-child",
        ".film-names li:first-child",
        ".film-header-name .film-names li",
        ".film-names li",
        ".film-header-name .original",
        ".film-header-name .original-name",
    )
    genre: Tuple[str, ...] = (
        ".film-info-content .genres",
        ".genres",
    )
    director: Tuple[str, ...] = (
        ".creators .director a",
        ".film-creator .director a",
        ".film-header .director a",
        ".film-info .director",
        '[data-type="director"] a',
    )
    creators_block: str = "#creators"
    creators_other: str = "div.other-professions"
    plot: Tuple[str, ...] = (
        ".body--plots .plot-full p",
        ".plot-full p",
        ".plot-preview p",
        ".plot-full",
        ".plot-preview",
    )
    json_ld: str = 'script[type="application/ld+json"]'


@dataclass(frozen=True)
class SearchSelectors:
    """IMDb ``find`` page: embedded Next.js payload, then result list items."""

    next_data: str = "script#__NEXT_DATA__"
    result_items: Tuple[str, ...] = (
        "li.find-title-result",
        "li.ipc-metadata-list-summary-item",
        "li.find-result-item",
        "tr.findResult",
    )
    result_link: str = 'a[href*="/title/tt"]'


CONSENT_BUTTON_SELECTORS: Tuple[str, ...] = (
    'button[id^="didomi-notice-agree-button"]',
    "#didomi-notice-agree-button",
)
CONSENT_IFRAME_SELECTOR = 'iframe[src*="didomi"]'

LISTING_SELECTORS = ListingSelectors()
DETAIL_SELECTORS = DetailSelectors()
SEARCH_SELECTORS = SearchSelectors()

__all__ = [
    "ListingSelectors",
    "DetailSelectors",
    "SearchSelectors",
    "LISTING_SELECTORS",
    "DETAIL_SELECTORS",
    "SEARCH_SELECTORS",
    "CONSENT_BUTTON_SELECTORS",
    "CONSENT_IFRAME_SELECTOR",
]
