"""Rank ticket suggestions coming from several history-based sources."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Mapping, Optional

from .models import ProjectMapping, TaskUsage
from .normalization import activity_pattern, significant_words

logger = logging.getLogger(__name__)

REJECTION_LIMIT = 2
MIN_MAPPING_CONFIDENCE = 0.5
HISTORY_MATCH_LIMIT = 3
RECENT_TASK_LIMIT = 5

# (activity pattern, ticket key) -> number of recorded rejections
RejectionCounts = Mapping[tuple[str, str], int]


class SuggestionSource(str, Enum):
    PROJECT_MAPPING = "project_mapping"
    ACTIVITY_HISTORY = "activity_history"
    RECENT_USAGE = "recent_usage"

    @property
    def priority(self) -> int:
        """Lower wins when confidences tie."""
        return _SOURCE_PRIORITY[self]


_SOURCE_PRIORITY = {
    SuggestionSource.PROJECT_MAPPING: 0,
    SuggestionSource.ACTIVITY_HISTORY: 1,
    SuggestionSource.RECENT_USAGE: 2,
}


@dataclass(frozen=True, slots=True)
class Suggestion:
    ticket_key: str
    ticket_name: str
    confidence: float
    reason: str
    source: SuggestionSource

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
        object.__setattr__(self, "source", SuggestionSource(self.source))


def is_rejected(
    rejections: RejectionCounts,
    app: Optional[str],
    title: Optional[str],
    ticket_key: str,
) -> bool:
    if app is None:
        return False
    pattern = activity_pattern(app, title)
    return rejections.get((pattern, ticket_key), 0) >= REJECTION_LIMIT


def _rank_key(suggestion: Suggestion) -> tuple[float, int]:
    return (-suggestion.confidence, suggestion.source.priority)


def rank_suggestions(
    candidates: Iterable[Suggestion],
    *,
    rejections: Optional[RejectionCounts] = None,
    app: Optional[str] = None,
    title: Optional[str] = None,
    limit: int = 5,
) -> list[Suggestion]:
    """Return the best candidate per ticket, most confident first.

    Candidates rejected at least twice for the same app and title prefix are
    dropped. Equal confidences are ordered project mapping first, then
    activity history, then recency.
    """
    if limit <= 0:
        return []
    rejections = rejections or {}

    best: dict[str, Suggestion] = {}
    for candidate in candidates:
        current = best.get(candidate.ticket_key)
        if current is None or _rank_key(candidate) < _rank_key(current):
            best[candidate.ticket_key] = candidate

    ranked = []
    for suggestion in best.values():
        if is_rejected(rejections, app, title, suggestion.ticket_key):
            logger.debug(
                "Dropping %s for %r: rejected too often", suggestion.ticket_key, title
            )
            continue
        ranked.append(suggestion)
    ranked.sort(key=_rank_key)
    return ranked[:limit]


def from_project_mapping(
    mapping: Optional[ProjectMapping], project: Optional[str]
) -> list[Suggestion]:
    if mapping is None or not project or mapping.confidence < MIN_MAPPING_CONFIDENCE:
        return []
    return [
        Suggestion(
            ticket_key=mapping.task_key,
            ticket_name=mapping.task_name,
            confidence=min(1.0, mapping.confidence),
            reason=f'Project "{project}" is usually logged to this ticket',
            source=SuggestionSource.PROJECT_MAPPING,
        )
    ]


def matching_tasks(tasks: Iterable[TaskUsage], title: Optional[str]) -> list[TaskUsage]:
    """Tasks whose recorded activity titles share a significant word with ``title``."""
    words = significant_words(title)
    if not words:
        return []
    matches = [
        task
        for task in tasks
        if any(word in activity.lower() for activity in task.activities for word in words)
    ]
    return sorted(matches, key=lambda task: task.use_count, reverse=True)


def from_activity_history(
    tasks: Iterable[TaskUsage], title: Optional[str]
) -> list[Suggestion]:
    return [
        Suggestion(
            ticket_key=task.key,
            ticket_name=task.name,
            confidence=min(0.8, 0.4 + task.use_count * 0.1),
            reason="Similar activities were logged to this ticket",
            source=SuggestionSource.ACTIVITY_HISTORY,
        )
        for task in matching_tasks(tasks, title)[:HISTORY_MATCH_LIMIT]
    ]


def from_recent_usage(
    tasks: Iterable[TaskUsage], now: Optional[datetime] = None
) -> list[Suggestion]:
    now = now or datetime.now()
    recent = sorted(tasks, key=lambda task: task.last_used, reverse=True)
    suggestions = []
    for task in recent[:RECENT_TASK_LIMIT]:
        days = max((now - task.last_used).total_seconds(), 0.0) / 86400
        suggestions.append(
            Suggestion(
                ticket_key=task.key,
                ticket_name=task.name,
                confidence=min(0.6, max(0.3, 0.6 - days * 0.05)),
                reason="Recently used",
                source=SuggestionSource.RECENT_USAGE,
            )
        )
    return suggestions
