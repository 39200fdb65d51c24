"""Detect which committed entries overlap a candidate interval."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .intervals import TimeInterval, overlaps, round_half_up
from .models import CommittedEntry


@dataclass(frozen=True, slots=True)
class OverlapResult:
    """Overlapping entries and the minutes they cover within the candidate.

    ``overlap_minutes`` is the raw per-entry sum, so committed entries that
    overlap each other are counted twice; ``percent`` is capped at 100.
    """

    candidate: TimeInterval
    overlapping: tuple[CommittedEntry, ...]
    overlap_minutes: int
    percent: int

    @property
    def has_overlap(self) -> bool:
        return bool(self.overlapping)


def find_overlapping(
    candidate: TimeInterval, entries: Iterable[CommittedEntry]
) -> list[CommittedEntry]:
    return [entry for entry in entries if overlaps(candidate, entry.interval)]


def overlap_percent(overlap_minutes: int, candidate_minutes: int) -> int:
    if candidate_minutes <= 0:
        return 0
    return min(100, round_half_up(overlap_minutes / candidate_minutes * 100))


def detect_overlaps(
    candidate: TimeInterval, entries: Iterable[CommittedEntry]
) -> OverlapResult:
    overlapping = find_overlapping(candidate, entries)
    total = sum(candidate.intersection_minutes(entry.interval) for entry in overlapping)
    return OverlapResult(
        candidate=candidate,
        overlapping=tuple(overlapping),
        overlap_minutes=total,
        percent=overlap_percent(total, candidate.duration),
    )
