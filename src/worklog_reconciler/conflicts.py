"""Pre-flight check of a proposed entry against the day's committed entries."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol

from .intervals import TimeInterval
from .models import CommittedEntry, EntryId
from .overlap import find_overlapping

logger = logging.getLogger(__name__)


class WorklogSource(Protocol):
    def fetch_entries(self, date: str) -> list[CommittedEntry]:
        ...


@dataclass(frozen=True, slots=True)
class ConflictingEntry:
    entry: CommittedEntry
    start_time: str
    end_time: str


@dataclass(frozen=True, slots=True)
class ConflictCheck:
    """Advisory result; a non-empty ``conflicts`` list is not an error."""

    has_overlap: bool
    conflicts: list[ConflictingEntry] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class EntryRange:
    entry: CommittedEntry
    start_time: str
    end_time: str
    duration_minutes: int


def _same_entry(entry_id: EntryId, other: Optional[EntryId]) -> bool:
    return other is not None and str(entry_id) == str(other)


def check_conflict(
    source: WorklogSource,
    date: str,
    candidate_start: str,
    candidate_end: str,
    exclude_entry_id: Optional[EntryId] = None,
) -> ConflictCheck:
    """Fetch the day's entries and report those overlapping the candidate.

    Call it while the user edits and once more right before the write; both
    calls go through this function. Fetch failures propagate unchanged.
    """
    candidate = TimeInterval.from_clock(candidate_start, candidate_end)
    entries = [
        entry
        for entry in source.fetch_entries(date)
        if not _same_entry(entry.id, exclude_entry_id)
    ]
    conflicts = [
        ConflictingEntry(entry, entry.start_label, entry.end_label)
        for entry in find_overlapping(candidate, entries)
    ]
    if conflicts:
        logger.info(
            "Candidate %s on %s overlaps %d existing entries",
            candidate.label(),
            date,
            len(conflicts),
        )
    return ConflictCheck(has_overlap=bool(conflicts), conflicts=conflicts)


def worklogs_with_ranges(entries: Iterable[CommittedEntry]) -> list[EntryRange]:
    ranges = [
        EntryRange(
            entry=entry,
            start_time=entry.start_label,
            end_time=entry.end_label,
            duration_minutes=entry.interval.duration,
        )
        for entry in entries
    ]
    return sorted(ranges, key=lambda item: item.entry.interval.start_minute)
