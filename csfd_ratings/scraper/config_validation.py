from __future__ import annotations

from typing import Literal, Optional

from . import config
from .logging_utils import _scraper_event
from .utils import log_line

Entrypoint = Literal["cli", "manage", "tests"]

_BACKENDS = {"playwright", "browser", "chromium", "http", "requests"}


def _raise_config_error(
    message: str, *, entrypoint: Entrypoint, error: str, mode: str | None
) -> None:
    _scraper_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
        mode=mode,
    )
    mode_fragment = f", mode={mode}" if mode else ""
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint}{mode_fragment})")
    raise ValueError(message)


def _adjust(field: str, value, adjusted, *, entrypoint: Entrypoint, mode: str | None, reason: str) -> None:
    _scraper_event(
        "state",
        phase="config",
        context="runtime_validation",
        kind="config_adjustment",
        field=field,
        value=value,
        adjusted=adjusted,
        entrypoint=entrypoint,
        mode=mode,
    )
    log_line(f"[CONFIG] {field}={value!r} {reason}; using {adjusted!r}.")


def validate_runtime_config(
    entrypoint: Entrypoint,
    options: Optional[config.ScrapeOptions] = None,
    *,
    mode: str | None = None,
) -> None:
    """Validate runtime configuration (and per-run options) for ``entrypoint``.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    Adjustable knobs (concurrency) are clamped in place on ``options`` and
    logged but do not raise.
    """

    timeout_fields = [
        ("CSFD_NAV_TIMEOUT_SECONDS", config.NAV_TIMEOUT_SECONDS),
        ("CSFD_SELECTOR_TIMEOUT_SECONDS", config.SELECTOR_TIMEOUT_SECONDS),
    ]
    for field_name, value in timeout_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
                mode=mode,
            )

    if config.RETRY_MAX_ATTEMPTS < 1:
        _raise_config_error(
            "CSFD_RETRY_MAX_ATTEMPTS must be at least 1.",
            entrypoint=entrypoint,
            error="invalid_retry_attempts",
            mode=mode,
        )

    if options is None:
        return

    if options.max_pages < 1:
        _raise_config_error(
            "max_pages must be at least 1.",
            entrypoint=entrypoint,
            error="invalid_max_pages",
            mode=mode,
        )
    if options.max_items is not None and options.max_items < 0:
        _raise_config_error(
            "max_items must be non-negative.",
            entrypoint=entrypoint,
            error="invalid_max_items",
            mode=mode,
        )
    if options.page_delay < 0 or options.item_delay < 0:
        _raise_config_error(
            "Delays must be non-negative.",
            entrypoint=entrypoint,
            error="invalid_delay",
            mode=mode,
        )
    if (options.backend or "").strip().lower() not in _BACKENDS:
        _raise_config_error(
            f"Unknown fetch backend {options.backend!r}.",
            entrypoint=entrypoint,
            error="invalid_backend",
            mode=mode,
        )
    if options.incremental and options.repair_missing:
        _raise_config_error(
            "--incremental and --repair-missing are mutually exclusive.",
            entrypoint=entrypoint,
            error="conflicting_modes",
            mode=mode,
        )

    if options.concurrency < 1:
        _adjust("concurrency", options.concurrency, 1, entrypoint=entrypoint, mode=mode, reason="is below 1")
        options.concurrency = 1
    elif options.concurrency > config.MAX_CONCURRENCY:
        _adjust(
            "concurrency",
            options.concurrency,
            config.MAX_CONCURRENCY,
            entrypoint=entrypoint,
            mode=mode,
            reason="exceeds CSFD_MAX_CONCURRENCY",
        )
        options.concurrency = config.MAX_CONCURRENCY


__all__ = ["validate_runtime_config", "Entrypoint"]
