"""Learned ticket history: task usage, project mappings and suggestion feedback."""

from __future__ import annotations

import logging
import sqlite3
from collections import Counter
from datetime import datetime
from typing import Any, Dict, Optional

from .db import (
    fetch_feedback,
    fetch_project_mapping,
    fetch_task_usage,
    insert_feedback,
    upsert_project_mapping,
    upsert_task_usage,
)
from .models import ProjectMapping, TaskUsage
from .normalization import activity_pattern
from .suggestions import (
    Suggestion,
    SuggestionSource,
    from_activity_history,
    from_project_mapping,
    from_recent_usage,
    rank_suggestions,
)

logger = logging.getLogger(__name__)

MAX_REMEMBERED_TITLES = 10


def _remember(values: list[str], value: str) -> list[str]:
    if value in values:
        return values
    return [value, *values][:MAX_REMEMBERED_TITLES]


def record_task_usage(
    conn: sqlite3.Connection,
    task_key: str,
    task_name: str,
    activity_title: str,
    project: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> TaskUsage:
    """Remember that ``activity_title`` was logged to ``task_key``."""
    now = now or datetime.now()
    existing = {usage.key: usage for usage in fetch_task_usage(conn)}.get(task_key)
    if existing is None:
        usage = TaskUsage(
            key=task_key,
            name=task_name,
            last_used=now,
            activities=[activity_title],
            projects=[project] if project else [],
        )
    else:
        usage = existing
        usage.last_used = now
        usage.use_count += 1
        usage.activities = _remember(usage.activities, activity_title)
        if project:
            usage.projects = _remember(usage.projects, project)
    upsert_task_usage(conn, usage)

    if project:
        update_project_mapping(conn, project, task_key, task_name, usage=usage)
    return usage


def update_project_mapping(
    conn: sqlite3.Connection,
    project: str,
    task_key: str,
    task_name: str,
    *,
    usage: Optional[TaskUsage] = None,
) -> ProjectMapping:
    """Strengthen, weaken or switch the mapping of ``project`` after a log."""
    mapping = fetch_project_mapping(conn, project)
    if mapping is None:
        mapping = ProjectMapping(project=project, task_key=task_key, task_name=task_name)
    elif mapping.task_key == task_key:
        mapping.usage_count += 1
        mapping.confidence = min(1.0, mapping.confidence + 0.1)
    else:
        project_usage = usage.projects.count(project) if usage else 0
        if project_usage > mapping.usage_count:
            logger.info("Project %s now maps to %s", project, task_key)
            mapping = ProjectMapping(
                project=project, task_key=task_key, task_name=task_name
            )
        else:
            mapping.confidence = max(0.3, mapping.confidence - 0.05)
    upsert_project_mapping(conn, mapping)
    return mapping


def set_project_mapping(
    conn: sqlite3.Connection, project: str, task_key: str, task_name: str
) -> ProjectMapping:
    """Manually pin a project to a ticket with full confidence."""
    mapping = ProjectMapping(
        project=project, task_key=task_key, task_name=task_name, confidence=1.0
    )
    upsert_project_mapping(conn, mapping)
    return mapping


def record_feedback(
    conn: sqlite3.Connection,
    activity_title: str,
    activity_app: str,
    suggested_ticket: str,
    is_positive: bool,
    source: SuggestionSource | str,
    project: Optional[str] = None,
    actual_ticket: Optional[str] = None,
) -> int:
    feedback_id = insert_feedback(
        conn,
        activity_title=activity_title,
        activity_app=activity_app,
        suggested_ticket=suggested_ticket,
        is_positive=is_positive,
        source=getattr(source, "value", source),
        project_name=project,
        actual_ticket=actual_ticket,
    )
    if project:
        mapping = fetch_project_mapping(conn, project)
        if mapping and mapping.task_key == suggested_ticket:
            if is_positive:
                mapping.confidence = min(1.0, mapping.confidence + 0.1)
                mapping.usage_count += 1
            else:
                mapping.confidence = max(0.1, mapping.confidence - 0.15)
            upsert_project_mapping(conn, mapping)
    return feedback_id


def rejection_counts(conn: sqlite3.Connection) -> dict[tuple[str, str], int]:
    counts: Counter[tuple[str, str]] = Counter()
    for row in fetch_feedback(conn, positive=False):
        pattern = activity_pattern(row["activity_app"], row["activity_title"])
        counts[(pattern, row["suggested_ticket"])] += 1
    return dict(counts)


def feedback_stats(conn: sqlite3.Connection) -> Dict[str, Any]:
    rows = fetch_feedback(conn)
    positive = sum(1 for row in rows if row["is_positive"])
    by_source: dict[str, dict[str, int]] = {}
    for row in rows:
        bucket = by_source.setdefault(row["source"], {"positive": 0, "negative": 0})
        bucket["positive" if row["is_positive"] else "negative"] += 1
    return {
        "total": len(rows),
        "positive": positive,
        "negative": len(rows) - positive,
        "accuracy": positive / len(rows) if rows else 0.0,
        "by_source": by_source,
    }


def suggest_for_activity(
    conn: sqlite3.Connection,
    title: str,
    *,
    app: Optional[str] = None,
    project: Optional[str] = None,
    limit: int = 5,
    now: Optional[datetime] = None,
) -> list[Suggestion]:
    """Collect candidates from every history source and rank them."""
    tasks = fetch_task_usage(conn)
    mapping = fetch_project_mapping(conn, project) if project else None
    candidates = [
        *from_project_mapping(mapping, project),
        *from_activity_history(tasks, title),
        *from_recent_usage(tasks, now),
    ]
    return rank_suggestions(
        candidates,
        rejections=rejection_counts(conn),
        app=app,
        title=title,
        limit=limit,
    )
