"""Helpers for persisting and restoring run checkpoints."""

from __future__ import annotations

import time
from pathlib import Path
from typing import List, Optional

from . import config
from .models import RatingItem, RunState
from .utils import load_json_file, log_line, save_json_file


class RunStateStore:
    """Checkpoint of the pagination phase: last finished page + collected items."""

    def __init__(self, path: Path = config.RUN_STATE_FILE) -> None:
        self.path = Path(path)

    def save(self, last_page: int, items: List[RatingItem], mode: str = "") -> RunState:
        """Overwrite the checkpoint atomically."""

        state = RunState(last_page=last_page, items=list(items), timestamp=time.time(), mode=mode)
        save_json_file(self.path, state.to_dict())
        log_line(f"[STATE] Checkpoint saved: page {last_page}, {len(state.items)} items")
        return state

    def load(self) -> Optional[RunState]:
        """Load the checkpoint; missing or unreadable files yield ``None``."""

        payload = load_json_file(self.path, default=None)
        if not isinstance(payload, dict):
            return None
        state = RunState.from_dict(payload)
        if state is None:
            log_line(f"[STATE][WARN] Ignoring malformed checkpoint {self.path}")
        return state

    def clear(self) -> None:
        """Remove the checkpoint file if it exists."""

        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def exists(self) -> bool:
        return self.path.exists()


__all__ = ["RunStateStore"]
