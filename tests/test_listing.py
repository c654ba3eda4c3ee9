import pytest

from csfd_ratings.scraper.listing import classify_kind, parse_listing_html
from csfd_ratings.scraper.models import ItemKind

BASE = "https://www.csfd.cz/uzivatel/2544-ludivitto/hodnoceni/"


@pytest.mark.parametrize(
    "info, expected",
    [
        ("(2021)", ItemKind.WORK),
        ("(2014) seriál", ItemKind.SERIES),
        ("(2014) epizoda", ItemKind.EPISODE),
        ("(2015) série", ItemKind.SEASON),
        ("(2014) seriál epizoda", ItemKind.EPISODE),
        ("(2014) Seriál", ItemKind.SERIES),
        ("", ItemKind.WORK),
    ],
)
def test_classify_kind(info, expected):
    assert classify_kind(info) == expected


def test_parse_rows(html_builders):
    html = html_builders.listing(
        html_builders.row("Duna", "/film/1234-duna/", info="(2021)", stars=5, rated_on="12.03.2024"),
        html_builders.row("Fargo (více)", "/film/682829-fargo/", info="(2014) seriál", stars=3),
        html_builders.row("Odpad", "https://www.csfd.cz/film/9-odpad/", stars=None),
    )
    items = parse_listing_html(html, BASE)

    assert [item.title for item in items] == ["Duna", "Fargo", "Odpad"]
    first = items[0]
    assert first.source_url == "https://www.csfd.cz/film/1234-duna/"
    assert first.year == "2021"
    assert first.kind is ItemKind.WORK
    assert first.rating == "5"
    assert first.rated_on == "12.03.2024"
    assert items[1].kind is ItemKind.SERIES
    assert items[1].rating == "3"
    assert items[2].rating == ""
    assert items[2].source_url == "https://www.csfd.cz/film/9-odpad/"


def test_rows_without_link_are_skipped(html_builders):
    broken = '<tr><td class="name">no link here</td><td class="date-only">01.01.2024</td></tr>'
    empty_href = html_builders.row("Bez odkazu", "")
    html = html_builders.listing(broken, empty_href, html_builders.row("Duna", "/film/1234-duna/"))

    assert [item.title for item in parse_listing_html(html, BASE)] == ["Duna"]


def test_page_without_rows_is_empty():
    assert parse_listing_html("<html><body><p>Žádná hodnocení</p></body></html>", BASE) == []
    assert parse_listing_html("", BASE) == []
