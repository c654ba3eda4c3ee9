"""Row parsing for the CSFD ratings listing."""
from __future__ import annotations

import re
from typing import List
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from . import config
from .models import ItemKind, RatingItem
from .selectors import LISTING_SELECTORS, ListingSelectors
from .titles import extract_year, normalize_title

_STARS = re.compile(r"stars-(\d)")


def classify_kind(info_text: str) -> ItemKind:
    """Map the listing info line onto an :class:`ItemKind`.

    Later markers win: a row mentioning both "seriál" and "epizoda" is an
    episode, and "série" beats both.
    """

    lowered = (info_text or "").lower()
    kind = ItemKind.WORK
    if "seriál" in lowered:
        kind = ItemKind.SERIES
    if "epizoda" in lowered:
        kind = ItemKind.EPISODE
    if "série" in lowered:
        kind = ItemKind.SEASON
    return kind


def parse_listing_html(
    html: str,
    base_url: str = config.PROFILE_URL,
    selectors: ListingSelectors = LISTING_SELECTORS,
) -> List[RatingItem]:
    """Parse every rated row on one listing page.

    Rows without a title link are skipped; relative links are resolved
    against ``base_url``.
    """

    soup = BeautifulSoup(html or "", "html5lib")
    items: List[RatingItem] = []
    for row in soup.select(selectors.row_selector):
        link = row.select_one(selectors.title_link)
        if link is None:
            continue
        title = normalize_title(link.get_text(" "))
        href = (link.get("href") or "").strip()
        if not title or not href:
            continue

        info_text = " ".join(
            span.get_text(" ", strip=True) for span in row.select(selectors.info_spans)
        )

        rating = ""
        stars = row.select_one(selectors.stars)
        if stars is not None:
            match = _STARS.search(" ".join(stars.get("class") or []))
            if match:
                rating = match.group(1)

        rated_on_el = row.select_one(selectors.rated_on)
        rated_on = rated_on_el.get_text(strip=True) if rated_on_el is not None else ""

        items.append(
            RatingItem(
                title=title,
                source_url=urljoin(base_url, href),
                year=extract_year(info_text),
                kind=classify_kind(info_text),
                rating=rating,
                rated_on=rated_on,
            )
        )
    return items


__all__ = ["parse_listing_html", "classify_kind"]
