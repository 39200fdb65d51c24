"""Classify activity blocks against the committed entries of their day."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from .config import ReconcileSettings
from .intervals import TimeInterval
from .models import ActivityBlock, CommittedEntry
from .overlap import detect_overlaps

logger = logging.getLogger(__name__)


class ActivityStatus(str, Enum):
    NEW = "new"
    LOGGED = "logged"
    PARTIAL = "partial"
    CONFLICT = "conflict"


@dataclass(frozen=True, slots=True)
class StatusInfo:
    status: ActivityStatus
    label: str
    percent: int
    overlapping: tuple[CommittedEntry, ...] = ()


def classify(
    candidate: TimeInterval,
    entries: Iterable[CommittedEntry],
    settings: Optional[ReconcileSettings] = None,
) -> StatusInfo:
    """Return the status of ``candidate`` relative to ``entries``.

    Checks run in a fixed order: a degenerate candidate is always new, then no
    overlap means new, then double-booked committed entries mean conflict,
    and finally the coverage percentage decides between logged and partial.
    """
    settings = settings or ReconcileSettings()
    if candidate.duration <= 0:
        return StatusInfo(ActivityStatus.NEW, "To log", 0)

    result = detect_overlaps(candidate, entries)
    if not result.overlapping:
        return StatusInfo(ActivityStatus.NEW, "To log", 0)

    conflict_limit = candidate.duration * settings.conflict_overlap_ratio
    if len(result.overlapping) > 1 and result.overlap_minutes > conflict_limit:
        logger.debug(
            "Conflict for %s: %d overlapping minutes from %d entries",
            candidate.label(),
            result.overlap_minutes,
            len(result.overlapping),
        )
        return StatusInfo(
            ActivityStatus.CONFLICT, "Conflict", result.percent, result.overlapping
        )

    if result.percent >= settings.logged_threshold_percent:
        return StatusInfo(
            ActivityStatus.LOGGED, "Logged", result.percent, result.overlapping
        )

    return StatusInfo(
        ActivityStatus.PARTIAL,
        f"Partial ({result.percent}%)",
        result.percent,
        result.overlapping,
    )


def classify_block(
    block: ActivityBlock,
    entries: Iterable[CommittedEntry],
    settings: Optional[ReconcileSettings] = None,
) -> StatusInfo:
    return classify(block.interval, entries, settings)


def summarize(statuses: Iterable[StatusInfo]) -> dict[ActivityStatus, int]:
    counts = Counter(info.status for info in statuses)
    return {status: counts.get(status, 0) for status in ActivityStatus}
