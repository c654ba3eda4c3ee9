from __future__ import annotations

import pytest

from csfd_ratings.scraper import logging_utils, retry_policy
from csfd_ratings.scraper.error_codes import ErrorCode
from csfd_ratings.scraper.fetcher import FetchError


@pytest.fixture
def event_recorder(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, dict]]:
    events: list[tuple[str, dict]] = []

    def _record(label: str = "", *, phase: str | None = None, **fields: object) -> None:
        events.append((label, {"phase": phase, **fields}))

    monkeypatch.setattr(retry_policy, "_scraper_event", _record)
    return events


@pytest.mark.parametrize(
    "attempt, expected, kind",
    [
        (1, True, "retryable"),
        (2, True, "retryable"),
        (3, False, "capped"),
        (5, False, "capped"),
    ],
)
def test_timeout_retry_limits(
    attempt: int, expected: bool, kind: str, event_recorder: list[tuple[str, dict]]
) -> None:
    result = retry_policy.decide_retry(attempt, 3, error_code=ErrorCode.TIMEOUT, label="listing")
    assert result is expected
    assert len(event_recorder) == 1
    label, fields = event_recorder[0]
    assert label == "state"
    assert fields["phase"] == "retry_decision"
    assert fields["attempt"] == attempt
    assert fields["max_attempts"] == 3
    assert fields["will_retry"] is expected
    assert fields["kind"] == kind


@pytest.mark.parametrize(
    "error_code",
    [ErrorCode.HTTP_403, ErrorCode.HTTP_404, ErrorCode.HTTP_4XX, ErrorCode.SITE_STRUCTURE],
)
def test_non_retryable_error_codes(error_code: str, event_recorder: list[tuple[str, dict]]) -> None:
    assert error_code in retry_policy.NON_RETRYABLE_ERROR_CODES
    assert retry_policy.decide_retry(1, 3, error_code=error_code) is False
    _, fields = event_recorder[0]
    assert fields["kind"] == "non_retryable"
    assert fields["will_retry"] is False
    assert fields["error_code"] == error_code


def test_unknown_codes_retry_until_capped(event_recorder: list[tuple[str, dict]]) -> None:
    assert retry_policy.decide_retry(1, 2, error_code="mystery") is True
    assert event_recorder[-1][1]["kind"] == "unknown"
    assert retry_policy.decide_retry(2, 2, error_code="mystery") is False


@pytest.mark.parametrize("attempt, expected", [(1, 2.0), (2, 4.0), (3, 8.0), (0, 2.0)])
def test_compute_backoff_seconds(attempt: int, expected: float) -> None:
    assert retry_policy.compute_backoff_seconds(attempt, 2.0) == expected


def test_with_retry_recovers_with_exponential_backoff(event_recorder) -> None:
    sleeps: list[float] = []
    outcomes = [FetchError(ErrorCode.TIMEOUT, "slow"), FetchError(ErrorCode.HTTP_5XX, "502"), "ok"]

    def _operation() -> str:
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    result = retry_policy.with_retry(_operation, max_attempts=3, base_delay=1.5, label="page", sleep=sleeps.append)

    assert result == "ok"
    assert sleeps == [1.5, 3.0]


def test_with_retry_exhausts_and_keeps_last_error(event_recorder) -> None:
    sleeps: list[float] = []
    calls = []

    def _operation() -> str:
        calls.append(1)
        raise FetchError(ErrorCode.NETWORK, f"reset {len(calls)}")

    with pytest.raises(retry_policy.RetryExhausted) as info:
        retry_policy.with_retry(_operation, max_attempts=3, base_delay=1.0, label="detail", sleep=sleeps.append)

    assert len(calls) == 3
    assert sleeps == [1.0, 2.0]
    assert info.value.attempts == 3
    assert info.value.error_code == ErrorCode.NETWORK
    assert "reset 3" in str(info.value.last_error)


def test_with_retry_stops_on_terminal_error(event_recorder) -> None:
    sleeps: list[float] = []
    calls = []

    def _operation() -> str:
        calls.append(1)
        raise FetchError(ErrorCode.HTTP_404, "gone", http_status=404)

    with pytest.raises(retry_policy.RetryExhausted) as info:
        retry_policy.with_retry(_operation, max_attempts=5, base_delay=1.0, sleep=sleeps.append)

    assert len(calls) == 1
    assert sleeps == []
    assert info.value.error_code == ErrorCode.HTTP_404


def test_with_retry_logs_each_decision_through_real_events(monkeypatch: pytest.MonkeyPatch) -> None:
    lines: list[str] = []
    monkeypatch.setattr(logging_utils, "log_line", lines.append)

    def _operation() -> str:
        raise FetchError(ErrorCode.TIMEOUT, "slow")

    with pytest.raises(retry_policy.RetryExhausted) as info:
        retry_policy.with_retry(
            _operation, max_attempts=2, base_delay=0.0, label="detail:/film/1/", sleep=lambda _s: None
        )

    assert info.value.attempts == 2
    assert len(lines) == 2
    assert all(line.startswith("[SCRAPER][STATE]") for line in lines)
    assert "operation='detail:/film/1/'" in lines[0]
    assert "kind='retryable'" in lines[0]
    assert "kind='capped'" in lines[1]


def test_decide_retry_events_carry_the_operation_name(event_recorder) -> None:
    retry_policy.decide_retry(1, 3, error_code=ErrorCode.NETWORK, label="listing:2")
    retry_policy.decide_retry(1, 3, error_code=ErrorCode.HTTP_404, label="listing:3")

    assert [fields["operation"] for _, fields in event_recorder] == ["listing:2", "listing:3"]
