"""Utilities to normalize application names, window titles and title patterns."""

from __future__ import annotations

import re
from typing import Optional

_BROWSER_SUFFIXES: dict[str, tuple[str, ...]] = {
    "msedge.exe": (" - Microsoft Edge",),
    "microsoft edge": (" - Microsoft Edge",),
    "chrome.exe": (" - Google Chrome",),
    "google chrome": (" - Google Chrome",),
    "firefox.exe": (" - Mozilla Firefox", " — Mozilla Firefox"),
    "firefox": (" - Mozilla Firefox", " — Mozilla Firefox"),
    "brave.exe": (" - Brave",),
    "brave browser": (" - Brave",),
    "opera.exe": (" - Opera",),
}

_EXTRA_TAB_COUNT_PATTERN = re.compile(r"\s+and\s+\d+\s+more\s+pages?", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

PATTERN_WORDS = 3
MIN_MATCH_WORD_LENGTH = 4


def normalize_app_name(app_name: Optional[str]) -> str:
    if not app_name or not app_name.strip():
        return "Unknown"
    return app_name.strip()


def normalize_window_title(app_name: Optional[str], window_title: Optional[str]) -> Optional[str]:
    """Remove browser suffixes and tab counters to surface the page name."""
    if not window_title:
        return None
    normalized = window_title.strip()
    if not app_name:
        return normalized or None

    suffixes = _BROWSER_SUFFIXES.get(app_name.strip().lower())
    if suffixes:
        for suffix in suffixes:
            if normalized.endswith(suffix):
                normalized = normalized[: -len(suffix)].rstrip(" -")
                break

    normalized = _EXTRA_TAB_COUNT_PATTERN.sub("", normalized).strip(" -|")
    normalized = re.sub(r"\s{2,}", " ", normalized).strip()
    return normalized or None


def title_words(title: Optional[str]) -> list[str]:
    if not title:
        return []
    return [word for word in _WHITESPACE.split(title.lower()) if word]


def significant_words(title: Optional[str]) -> list[str]:
    """Words long enough to be used for fuzzy title matching."""
    return [word for word in title_words(title) if len(word) >= MIN_MATCH_WORD_LENGTH]


def activity_pattern(app_name: Optional[str], title: Optional[str]) -> str:
    """Key an activity by app and the first words of its title.

    Rejected suggestions are counted per pattern, so similar activities share
    their rejection history.
    """
    prefix = " ".join(title_words(title)[:PATTERN_WORDS])
    return f"{(app_name or '').strip().lower()}:{prefix}"
