from __future__ import annotations

"""Error code taxonomy for harvester failures.

Codes appear in structured logs, run telemetry and the retry decisions, so
they should stay stable between releases.
"""


class ErrorCode:
    NETWORK = "network_error"
    TIMEOUT = "timeout"
    RENDER = "render_error"
    HTTP_4XX = "http_4xx"
    HTTP_403 = "http_403_forbidden"
    HTTP_404 = "http_404_not_found"
    HTTP_5XX = "http_5xx"
    RATE_LIMIT = "rate_limited"
    SITE_STRUCTURE = "site_structure_changed"
    PARSE = "parse_error"
    INTERNAL = "internal_error"


def classify_http_status(status: int | None) -> str:
    if status is None:
        return ErrorCode.INTERNAL
    if status == 403:
        return ErrorCode.HTTP_403
    if status == 404:
        return ErrorCode.HTTP_404
    if status == 429:
        return ErrorCode.RATE_LIMIT
    if 400 <= status < 500:
        return ErrorCode.HTTP_4XX
    if status >= 500:
        return ErrorCode.HTTP_5XX
    return ErrorCode.INTERNAL


def classify_exception(exc: BaseException) -> str:
    """Map an exception raised by a fetch or parse step onto an error code."""

    code = getattr(exc, "error_code", None)
    if isinstance(code, str) and code:
        return code

    # Imported lazily so the taxonomy stays importable without a browser.
    from playwright.sync_api import Error as PWError
    from playwright.sync_api import TimeoutError as PWTimeout
    import requests

    if isinstance(exc, (PWTimeout, requests.Timeout, TimeoutError)):
        return ErrorCode.TIMEOUT
    if isinstance(exc, PWError):
        return ErrorCode.RENDER
    if isinstance(exc, requests.HTTPError):
        response = getattr(exc, "response", None)
        return classify_http_status(getattr(response, "status_code", None))
    if isinstance(exc, (requests.ConnectionError, ConnectionError)):
        return ErrorCode.NETWORK
    if isinstance(exc, (ValueError, KeyError)):
        return ErrorCode.PARSE
    return ErrorCode.INTERNAL


__all__ = ["ErrorCode", "classify_http_status", "classify_exception"]
