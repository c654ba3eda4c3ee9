from __future__ import annotations

import time
from typing import Callable, Optional, TypeVar

from .error_codes import ErrorCode, classify_exception
from .logging_utils import _scraper_event

T = TypeVar("T")

RETRYABLE_ERROR_CODES = {
    ErrorCode.NETWORK,
    ErrorCode.TIMEOUT,
    ErrorCode.RENDER,
    ErrorCode.HTTP_5XX,
    ErrorCode.RATE_LIMIT,
    ErrorCode.PARSE,
    ErrorCode.INTERNAL,
}

NON_RETRYABLE_ERROR_CODES = {
    ErrorCode.HTTP_403,
    ErrorCode.HTTP_404,
    ErrorCode.HTTP_4XX,
    ErrorCode.SITE_STRUCTURE,
}


class RetryExhausted(Exception):
    """Raised once an operation has failed for the last permitted time."""

    def __init__(
        self,
        label: str,
        last_error: BaseException,
        *,
        attempts: int,
        error_code: str,
    ) -> None:
        super().__init__(f"{label} failed after {attempts} attempt(s): {last_error}")
        self.label = label
        self.last_error = last_error
        self.attempts = attempts
        self.error_code = error_code


def compute_backoff_seconds(attempt_index: int, base_delay: float = 1.0) -> float:
    """Return the exponential backoff after 1-based ``attempt_index``."""

    return float(max(0.0, base_delay) * (2 ** max(0, attempt_index - 1)))


def decide_retry(
    attempt_index: int,
    max_attempts: int,
    error: BaseException | None = None,
    *,
    error_code: Optional[str] = None,
    label: str = "",
) -> bool:
    """Decide whether a failed attempt should be retried."""

    code = (error_code or "").strip()
    if attempt_index >= max_attempts:
        _scraper_event(
            "state",
            phase="retry_decision",
            kind="capped",
            operation=label,
            attempt=attempt_index,
            max_attempts=max_attempts,
            error_code=code or None,
            will_retry=False,
        )
        return False

    if code in NON_RETRYABLE_ERROR_CODES:
        _scraper_event(
            "state",
            phase="retry_decision",
            kind="non_retryable",
            operation=label,
            error_code=code,
            attempt=attempt_index,
            max_attempts=max_attempts,
            will_retry=False,
        )
        return False

    # Unknown codes are treated as transient; the attempt cap still bounds them.
    _scraper_event(
        "state",
        phase="retry_decision",
        kind="retryable" if code in RETRYABLE_ERROR_CODES else "unknown",
        operation=label,
        error_code=code or None,
        attempt=attempt_index,
        max_attempts=max_attempts,
        will_retry=True,
        error_repr=repr(error) if error is not None else None,
    )
    return True


def with_retry(
    operation: Callable[[], T],
    *,
    max_attempts: int,
    base_delay: float,
    label: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation`` with bounded retries and exponential backoff.

    Raises :class:`RetryExhausted` carrying the last underlying error when
    the attempts run out or a terminal error code is hit.
    """

    attempts = max(1, int(max_attempts))
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except Exception as exc:  # noqa: BLE001
            code = classify_exception(exc)
            if not decide_retry(attempt, attempts, exc, error_code=code, label=label):
                raise RetryExhausted(label, exc, attempts=attempt, error_code=code) from exc
            delay = compute_backoff_seconds(attempt, base_delay)
            if delay > 0:
                sleep(delay)

    raise RuntimeError("with_retry exhausted without returning a result")


__all__ = [
    "RetryExhausted",
    "compute_backoff_seconds",
    "decide_retry",
    "with_retry",
    "RETRYABLE_ERROR_CODES",
    "NON_RETRYABLE_ERROR_CODES",
]
