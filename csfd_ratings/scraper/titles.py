"""Text clean-up for scraped titles and plot descriptions."""
from __future__ import annotations

import re
from typing import Any

from . import config

_WHITESPACE = re.compile(r"\s+")
# CSFD appends a "(více)" link to truncated titles and plots.
_MORE_MARKER = re.compile(r"(?:\s*\(\s*více\s*\))+\s*$", re.IGNORECASE)
_YEAR = re.compile(r"\b(19\d{2}|20\d{2})\b")

# Distributor call-outs appended to CSFD plots, e.g. "(Netflix)".
_DISTRIBUTOR_NOISE = re.compile(
    r"\(\s*(?:oficiální\s+text\s+distributora|"
    r"netflix|hbo(?:\s*max)?|max|disney\+?|amazon(?:\s+prime(?:\s+video)?)?|"
    r"prime\s+video|apple\s*tv\+?|skyshowtime|voyo|o2\s*tv|"
    r"česká\s+televize|čt|nova|prima|paramount\+?|cinemart|falcon|"
    r"bontonfilm|aerofilms|vertical\s+entertainment|"
    r"magic\s+box|hollywood\s+classic\s+entertainment)\s*\)",
    re.IGNORECASE,
)
_SENTENCE_END = re.compile(r"[.!?…](?=\s|$)")


def normalize_title(raw: Any) -> str:
    """Return ``raw`` with whitespace collapsed and the "(více)" marker removed.

    Non-string input yields an empty string. The result is stable under
    repeated application.
    """

    if not isinstance(raw, str):
        return ""
    text = _WHITESPACE.sub(" ", raw).strip()
    text = _MORE_MARKER.sub("", text)
    return text.strip()


def extract_year(text: str) -> str:
    match = _YEAR.search(text or "")
    return match.group(1) if match else ""


def clean_description(raw: Any, max_chars: int = config.DESCRIPTION_MAX_CHARS) -> str:
    """Strip distributor noise and truncate a plot to ``max_chars``.

    Cuts at the last sentence end inside the budget; without one, cuts at
    the last word boundary and appends an ellipsis.
    """

    text = normalize_title(raw)
    if not text:
        return ""
    text = _DISTRIBUTOR_NOISE.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip()
    if len(text) <= max_chars:
        return text

    ends = [m.end() for m in _SENTENCE_END.finditer(text) if m.end() <= max_chars]
    # A boundary in the first third would throw most of the plot away.
    if ends and ends[-1] >= max_chars // 3:
        return text[: ends[-1]].strip()

    cut = text[: max_chars - 3]
    if " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip(" ,;:-") + "..."


def split_words(text: str) -> list[str]:
    return [word for word in _WHITESPACE.split((text or "").lower()) if word]


__all__ = ["normalize_title", "extract_year", "clean_description", "split_words"]
