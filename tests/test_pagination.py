from csfd_ratings.scraper import config
from csfd_ratings.scraper.error_codes import ErrorCode
from csfd_ratings.scraper.fetcher import FetchError
from csfd_ratings.scraper.models import RatingItem
from csfd_ratings.scraper.pagination import PaginationWalker

BASE = "https://www.csfd.cz/uzivatel/2544-ludivitto/hodnoceni/"


def _url(page):
    return config.listing_page_url(page, BASE)


def _page(builders, start, count):
    return builders.listing(
        *(builders.row(f"Film {i}", f"/film/{i}-film/") for i in range(start, start + count))
    )


def _walker(fetcher, **kwargs):
    kwargs.setdefault("page_delay", 0.0)
    kwargs.setdefault("empty_retry_delay", 0.0)
    kwargs.setdefault("base_delay", 0.0)
    kwargs.setdefault("max_attempts", 2)
    return PaginationWalker(fetcher, base_url=BASE, sleep=lambda _seconds: None, **kwargs)


def test_walk_until_empty_page_keeps_collected_items(fake_fetcher, html_builders):
    empty = html_builders.listing()
    fetcher = fake_fetcher(
        {
            _url(1): _page(html_builders, 0, 3),
            _url(2): _page(html_builders, 3, 3),
            _url(3): empty,
        }
    )
    walker = _walker(fetcher, page_attempts=2)

    batches = list(walker.walk(max_pages=10))

    assert [len(batch) for batch in batches] == [3, 3]
    assert len(walker.collected) == 6
    assert walker.last_page == 2
    assert walker.stop_reason == "empty_page"
    assert fetcher.urls().count(_url(3)) == 2
    dumps = sorted(path.name for path in config.DEBUG_DIR.glob("page_p3_a*.html"))
    assert dumps == ["page_p3_a1.html", "page_p3_a2.html"]


def test_empty_page_recovers_on_second_attempt(fake_fetcher, html_builders):
    fetcher = fake_fetcher({_url(1): [html_builders.listing(), _page(html_builders, 0, 2)], _url(2): html_builders.listing()})
    walker = _walker(fetcher, page_attempts=2)

    batches = list(walker.walk(max_pages=1))

    assert [len(batch) for batch in batches] == [2]
    assert walker.stop_reason == "max_pages"


def test_duplicates_and_known_keys_are_dropped(fake_fetcher, html_builders):
    fetcher = fake_fetcher(
        {
            _url(1): _page(html_builders, 0, 3),
            _url(2): _page(html_builders, 2, 3),
            _url(3): _page(html_builders, 2, 3),
        }
    )
    known = [("https://www.csfd.cz/film/0-film/", "Film 0")]
    walker = _walker(fetcher, known_keys=known)

    batches = list(walker.walk(max_pages=5))

    assert [[item.title for item in batch] for batch in batches] == [["Film 1", "Film 2"], ["Film 3", "Film 4"]]
    assert walker.stop_reason == "no_new_items"
    assert walker.last_page == 2


def test_max_items_stops_mid_page(fake_fetcher, html_builders):
    fetcher = fake_fetcher({_url(1): _page(html_builders, 0, 3), _url(2): _page(html_builders, 3, 3)})
    walker = _walker(fetcher)

    batches = list(walker.walk(max_pages=5, max_items=4))

    assert [len(batch) for batch in batches] == [3, 1]
    assert len(walker.collected) == 4
    assert walker.stop_reason == "max_items"
    assert fetcher.urls() == [_url(1), _url(2)]


def test_max_pages_is_the_last_page_number(fake_fetcher, html_builders):
    fetcher = fake_fetcher({BASE + "*": lambda url: _page(html_builders, int(url.rsplit("=", 1)[-1]) * 10, 2)})
    walker = _walker(fetcher)

    list(walker.walk(start_page=3, max_pages=4))

    assert fetcher.urls() == [_url(3), _url(4)]
    assert walker.stop_reason == "max_pages"


def test_resume_seeds_collected_items(fake_fetcher, html_builders):
    fetcher = fake_fetcher({_url(3): _page(html_builders, 0, 2)})
    previous = [RatingItem(title="Film 0", source_url="https://www.csfd.cz/film/0-film/")]
    walker = _walker(fetcher, initial_items=previous)

    batches = list(walker.walk(start_page=3, max_pages=3))

    assert [item.title for item in batches[0]] == ["Film 1"]
    assert [item.title for item in walker.collected] == ["Film 0", "Film 1"]


def test_checkpoint_after_each_consumed_batch(fake_fetcher, html_builders):
    fetcher = fake_fetcher({_url(page): _page(html_builders, page, 1) for page in range(1, 5)})
    events = []
    walker = _walker(
        fetcher,
        checkpoint_every=2,
        on_checkpoint=lambda last_page, collected: events.append(("checkpoint", last_page, len(collected))),
    )

    for batch in walker.walk(max_pages=4):
        events.append(("batch", walker.last_page, len(batch)))

    assert events == [
        ("batch", 1, 1),
        ("batch", 2, 1),
        ("checkpoint", 2, 2),
        ("batch", 3, 1),
        ("batch", 4, 1),
        ("checkpoint", 4, 4),
    ]


def test_fetch_failure_stops_and_keeps_items(fake_fetcher, html_builders):
    fetcher = fake_fetcher(
        {_url(1): _page(html_builders, 0, 2), _url(2): FetchError(ErrorCode.NETWORK, "reset")}
    )
    walker = _walker(fetcher, max_attempts=3)

    list(walker.walk(max_pages=5))

    assert walker.stop_reason == "fetch_failed"
    assert len(walker.collected) == 2
    assert fetcher.urls().count(_url(2)) == 3
