from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from .utils import log_line

# Keys that say what happened go first; the rest follow alphabetically.
_LEADING_KEYS = ("phase", "kind", "step", "operation")


def _render(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    elif isinstance(value, BaseException):
        value = f"{type(value).__name__}: {value}"
    elif isinstance(value, Path):
        value = value.as_posix()
    return repr(value)


def _format_fields(fields: dict[str, Any]) -> str:
    present = {key: value for key, value in fields.items() if value is not None}
    leading = [key for key in _LEADING_KEYS if key in present]
    rest = sorted(key for key in present if key not in _LEADING_KEYS)
    return ", ".join(f"{key}={_render(present[key])}" for key in leading + rest)


def _scraper_event(label: str = "", *, phase: str | None = None, **fields: Any) -> None:
    """Emit a structured harvester log line: ``[SCRAPER][LABEL] k=v, ...``.

    ``phase`` doubles as the label when no label is given; with both, the
    phase is kept in the payload so the stage is still visible. Fields set
    to ``None`` are left out, enums are logged by value and exceptions as
    ``Type: message``.
    """

    try:
        phase_label = label or (phase or "")
        if phase and label:
            fields.setdefault("phase", phase)
        log_line(f"[SCRAPER][{phase_label.upper()}] {_format_fields(fields)}".rstrip())
    except Exception:  # noqa: BLE001
        # Logging must never break a run.
        return


__all__ = ["_scraper_event"]
