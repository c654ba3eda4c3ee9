import pytest

from csfd_ratings.scraper import config, config_validation
from csfd_ratings.scraper.config_validation import validate_runtime_config


def test_invalid_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "NAV_TIMEOUT_SECONDS", 0)
    with pytest.raises(ValueError):
        validate_runtime_config("cli")


def test_invalid_retry_attempts(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "RETRY_MAX_ATTEMPTS", 0)
    with pytest.raises(ValueError):
        validate_runtime_config("tests")


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_pages": 0},
        {"max_items": -1},
        {"page_delay": -0.5},
        {"backend": "lynx"},
        {"incremental": True, "repair_missing": True},
    ],
)
def test_blocking_option_errors(overrides) -> None:
    options = config.ScrapeOptions.build(**overrides)
    with pytest.raises(ValueError):
        validate_runtime_config("cli", options, mode="full")


def test_concurrency_clamped(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "MAX_CONCURRENCY", 4)
    events = []
    monkeypatch.setattr(config_validation, "_scraper_event", lambda *args, **kwargs: events.append(kwargs))

    options = config.ScrapeOptions.build(concurrency=50)
    validate_runtime_config("tests", options)
    assert options.concurrency == 4

    options = config.ScrapeOptions.build(concurrency=0)
    validate_runtime_config("tests", options)
    assert options.concurrency == 1
    assert [event["kind"] for event in events] == ["config_adjustment", "config_adjustment"]


def test_valid_options_pass() -> None:
    options = config.ScrapeOptions.build(max_pages=3, max_items=10, backend="http")
    validate_runtime_config("tests", options, mode="full")
    assert options.concurrency >= 1
