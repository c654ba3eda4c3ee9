import pytest

from csfd_ratings.scraper.extraction import (
    Cascade,
    DetailExtractor,
    DetailPage,
    SelectorTextTactic,
    Tactic,
    build_cast_cascade,
    build_director_cascade,
    build_external_id_cascade,
    build_genre_cascade,
    build_original_title_cascade,
    parent_url,
)

URL = "https://www.csfd.cz/film/1234-duna/prehled/"


def _page(html: str, url: str = URL) -> DetailPage:
    return DetailPage.parse(url, html)


def test_button_wins_over_json_ld_and_raw_html(html_builders):
    html = html_builders.detail(
        imdb_href="https://www.imdb.com/title/tt1160419/",
        json_ld='{"@type": "Movie", "sameAs": "https://www.imdb.com/title/tt0000001/"}',
        body="<p>see tt9999999</p>",
    )
    outcome = build_external_id_cascade().run(_page(html))

    assert outcome.ok
    assert outcome.value == "tt1160419"
    assert outcome.tactic == "imdb_button"


def test_generic_anchor_used_without_button():
    html = '<html><body><a href="https://www.imdb.com/title/tt15239678/?ref_=x">IMDb</a></body></html>'
    outcome = build_external_id_cascade().run(_page(html))

    assert outcome.value == "tt15239678"
    assert outcome.tactic == "imdb_anchor"


def test_json_ld_identifier_without_anchor():
    html = (
        '<html><head><script type="application/ld+json">'
        '{"@context": "http://schema.org", "@type": "TVSeries", "name": "Fargo",'
        ' "sameAs": ["https://www.imdb.com/title/tt3402138/"]}'
        "</script></head><body><h1>Fargo</h1></body></html>"
    )
    result = DetailExtractor().extract(_page(html))

    assert result.enrichment.external_id == "tt3402138"
    assert result.enrichment.external_url == "https://www.imdb.com/title/tt3402138/"
    assert result.outcomes["external_id"].tactic == "json_ld"


def test_json_ld_file_names_do_not_yield_identifiers(html_builders):
    html = html_builders.detail(
        json_ld='{"@type": "Movie", "name": "Matt", "image": "https://img.csfd.cz/posters/matt2024.jpg"}',
        body="<p>IMDb: https://www.imdb.com/title/tt1160419/</p>",
    )
    outcome = build_external_id_cascade().run(_page(html))

    assert outcome.value == "tt1160419"
    assert outcome.tactic == "raw_html"


def test_raw_html_bare_identifier_last():
    html = "<html><body><div data-imdb='tt0133093'></div></body></html>"
    outcome = build_external_id_cascade().run(_page(html))

    assert outcome.value == "tt0133093"
    assert outcome.tactic == "raw_html"


def test_no_identifier_is_empty_outcome():
    outcome = build_external_id_cascade().run(_page("<html><body>nothing</body></html>"))

    assert outcome.status == "empty"
    assert outcome.value == ""


def test_original_title_newest_layout_first(html_builders):
    html = (
        '<html><body><div class="film-header-name">'
        '<ul class="film-names"><li>Dune (více)</li><li>Duna</li></ul>'
        '<span class="original">Legacy</span></div></body></html>'
    )
    outcome = build_original_title_cascade().run(_page(html))

    assert outcome.value == "Dune"


def test_original_title_from_json_ld_then_label():
    html = (
        '<html><head><script type="application/ld+json">{"@type": "Movie", "alternateName": "Dune"}</script>'
        "</head><body></body></html>"
    )
    assert build_original_title_cascade().run(_page(html)).tactic == "json_ld"

    html = "<html><body><p>Originální název: Spirited Away</p></body></html>"
    outcome = build_original_title_cascade().run(_page(html))
    assert outcome.value == "Spirited Away"
    assert outcome.tactic == "labelled_text"


def test_genre_limited_to_three(html_builders):
    html = html_builders.detail(genres="Sci-Fi / Dobrodružný / Drama / Akční")
    assert build_genre_cascade().run(_page(html)).value == "Sci-Fi, Dobrodružný, Drama"


def test_director_from_label_text():
    html = "<html><body><div>Režie: Denis Villeneuve</div></body></html>"
    assert build_director_cascade().run(_page(html)).value == "Denis Villeneuve"


def test_cast_from_creators_block():
    actors = "".join(f'<a href="/tvurce/{i}/">Herec {i}</a>' for i in range(1, 11))
    html = (
        '<html><body><div id="creators">'
        '<div class="director"><a href="/tvurce/0/">Režisér</a></div>'
        f"<div><h4>Hrají:</h4>{actors}</div>"
        '<div class="other-professions">...</div>'
        "</div></body></html>"
    )
    outcome = build_cast_cascade().run(_page(html))

    assert outcome.tactic == "creators_block"
    assert outcome.value.split(", ") == [f"Herec {i}" for i in range(1, 9)]


def test_description_cleaned_and_truncated():
    plot = "Epický příběh na pouštní planetě. " * 20 + "(Netflix)"
    html = f'<html><body><div class="plot-full"><p>{plot}</p></div></body></html>'
    result = DetailExtractor().extract(_page(html))

    assert "Netflix" not in result.enrichment.description
    assert len(result.enrichment.description) <= 250
    assert result.enrichment.description.endswith(".")


class _Exploding(Tactic):
    name = "exploding"

    def attempt(self, page):
        raise RuntimeError("boom")


def test_cascade_records_tactic_errors_and_continues():
    cascade = Cascade("title", [_Exploding(), SelectorTextTactic("h1")])
    outcome = cascade.run(_page("<html><body><h1>Duna</h1></body></html>"))

    assert outcome.ok
    assert outcome.value == "Duna"
    assert outcome.errors and "boom" in outcome.errors[0]


def test_cascade_error_outcome_when_all_fail():
    outcome = Cascade("title", [_Exploding()]).run(_page("<html></html>"))

    assert outcome.status == "error"
    assert not outcome.ok


def test_undecodable_json_ld_is_tolerated():
    html = '<html><head><script type="application/ld+json">{not json tt1234567</script></head></html>'
    page = _page(html)

    assert page.json_ld == []
    assert build_external_id_cascade().run(page).value == "tt1234567"


@pytest.mark.parametrize(
    "url, expected",
    [
        (
            "https://www.csfd.cz/film/682829-fargo/1234-serie-1/5678-epizoda-1/",
            "https://www.csfd.cz/film/682829-fargo/",
        ),
        (
            "https://www.csfd.cz/film/682829-fargo/1234-serie-1/",
            "https://www.csfd.cz/film/682829-fargo/",
        ),
        ("https://www.csfd.cz/film/682829-fargo/", ""),
        ("https://www.csfd.cz/", ""),
        ("", ""),
    ],
)
def test_parent_url(url, expected):
    assert parent_url(url) == expected
