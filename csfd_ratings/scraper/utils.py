from __future__ import annotations

import json
import logging
import re
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any

from . import config

LOGGER = logging.getLogger("csfd_ratings")
_LOGGER_INITIALISED = False
_RUN_LOG_GLOB = "scrape_*.log"


def _close_handlers() -> None:
    for handler in list(LOGGER.handlers):
        LOGGER.removeHandler(handler)
        try:
            handler.close()
        except Exception:  # noqa: BLE001
            continue


def _configure_logger(log_path: Path, *, console_level: int = logging.INFO) -> None:
    """Point the shared logger at ``log_path``.

    The file always receives debug lines so a run log is enough for a
    post-mortem; the console only shows ``console_level`` and above.
    """

    global _LOGGER_INITIALISED

    log_path.parent.mkdir(parents=True, exist_ok=True)
    _close_handlers()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter("[%(asctime)s] %(message)s", datefmt="%H:%M:%S"))

    run_file = logging.FileHandler(log_path, encoding="utf-8")
    run_file.setLevel(logging.DEBUG)
    run_file.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)-5s %(threadName)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )

    LOGGER.setLevel(logging.DEBUG)
    LOGGER.addHandler(console)
    LOGGER.addHandler(run_file)
    LOGGER.propagate = False

    _LOGGER_INITIALISED = True


def _ensure_logger() -> None:
    """Initialise the logger lazily using the default log file."""

    if _LOGGER_INITIALISED:
        return
    _configure_logger(config.LOG_FILE)


def prune_run_logs(keep: int | None = None) -> list[Path]:
    """Delete the oldest timestamped run logs beyond ``keep``; return them."""

    keep = config.LOG_FILES_KEPT if keep is None else keep
    logs = sorted(config.LOG_DIR.glob(_RUN_LOG_GLOB))
    stale = logs[: max(0, len(logs) - max(0, keep))]
    removed: list[Path] = []
    for path in stale:
        try:
            path.unlink()
        except OSError:
            continue
        removed.append(path)
    return removed


def setup_run_logger(*, verbose: bool = False) -> Path:
    """Rotate to a fresh timestamped log file for the current run."""

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_path = config.LOG_DIR / f"scrape_{timestamp}.log"
    # Keep room for the log about to be opened.
    removed = prune_run_logs(max(0, config.LOG_FILES_KEPT - 1))
    _configure_logger(log_path, console_level=logging.DEBUG if verbose else logging.INFO)
    LOGGER.info("Logging to %s", log_path)
    if removed:
        LOGGER.debug("Pruned %d old run log(s)", len(removed))
    return log_path


def ensure_dirs() -> None:
    """Ensure that the data and log directories exist."""

    config.DATA_DIR.mkdir(parents=True, exist_ok=True)
    config.LOG_DIR.mkdir(parents=True, exist_ok=True)


def log_line(message: str) -> None:
    """Write a timestamped log line to stdout and the active log file."""

    _ensure_logger()
    LOGGER.info(message)


def log_debug(message: str) -> None:
    _ensure_logger()
    LOGGER.debug(message)


def load_json_file(path: Path, default: Any = None) -> Any:
    """Return the decoded JSON document at ``path`` or ``default``.

    Missing and undecodable files both yield ``default``.
    """

    try:
        with Path(path).open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except FileNotFoundError:
        return default
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as exc:
        log_line(f"[UTILS][WARN] Unable to read {path}: {exc}")
        return default


def save_json_file(path: Path, payload: Any) -> None:
    """Persist ``payload`` as JSON atomically (temp file + replace)."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, ensure_ascii=False, indent=2)
    tmp_path.replace(path)


def _safe_tag(tag: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9_.-]+", "_", tag.strip())
    return cleaned.strip("._") or "page"


def dump_debug_html(tag: str, html: str) -> Path | None:
    """Write ``html`` to the debug directory for post-mortem inspection."""

    try:
        config.DEBUG_DIR.mkdir(parents=True, exist_ok=True)
        path = config.DEBUG_DIR / f"page_{_safe_tag(tag)}.html"
        path.write_text(html or "<no content>", encoding="utf-8")
        return path
    except OSError as exc:
        log_line(f"[UTILS][WARN] Unable to write debug dump {tag}: {exc}")
        return None


def write_fatal_error(exc: BaseException) -> Path | None:
    """Record a fatal error with its traceback in ``DEBUG_DIR/error.txt``."""

    try:
        config.DEBUG_DIR.mkdir(parents=True, exist_ok=True)
        path = config.DEBUG_DIR / "error.txt"
        text = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        path.write_text(text, encoding="utf-8")
        return path
    except OSError:
        return None


def format_bytes(size: int) -> str:
    """Return ``size`` in a short human readable unit (B, KB, MB, GB)."""

    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.2f} {unit}".replace(".00 B", " B")
        value /= 1024
    return f"{value:.2f} GB"


__all__ = [
    "LOGGER",
    "ensure_dirs",
    "setup_run_logger",
    "prune_run_logs",
    "log_line",
    "log_debug",
    "load_json_file",
    "save_json_file",
    "dump_debug_html",
    "write_fatal_error",
    "format_bytes",
]
