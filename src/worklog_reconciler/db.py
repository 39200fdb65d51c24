"""SQLite database layer for ticket history, project mappings and feedback."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from .models import ProjectMapping, TaskUsage


DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"

MAX_HISTORY_ITEMS = 100
MAX_FEEDBACK_ITEMS = 500


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    enable_foreign_keys(conn)
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def enable_foreign_keys(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA foreign_keys = ON;")


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS task_usage (
            task_key TEXT PRIMARY KEY,
            task_name TEXT NOT NULL,
            last_used TEXT NOT NULL,
            use_count INTEGER NOT NULL DEFAULT 1,
            activities TEXT NOT NULL DEFAULT '[]',
            projects TEXT NOT NULL DEFAULT '[]'
        );

        CREATE TABLE IF NOT EXISTS project_mappings (
            id INTEGER PRIMARY KEY,
            project_name TEXT NOT NULL UNIQUE,
            task_key TEXT NOT NULL,
            task_name TEXT NOT NULL,
            confidence REAL NOT NULL DEFAULT 0.5,
            usage_count INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS suggestion_feedback (
            id INTEGER PRIMARY KEY,
            activity_title TEXT NOT NULL,
            activity_app TEXT NOT NULL,
            project_name TEXT,
            suggested_ticket TEXT NOT NULL,
            actual_ticket TEXT,
            is_positive INTEGER NOT NULL,
            source TEXT NOT NULL,
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_feedback_created_at
            ON suggestion_feedback(created_at);
        """
    )


def _now() -> str:
    return datetime.now().strftime(DATETIME_FMT)


def _row_to_task_usage(row: sqlite3.Row) -> TaskUsage:
    return TaskUsage(
        key=row["task_key"],
        name=row["task_name"],
        last_used=datetime.strptime(row["last_used"], DATETIME_FMT),
        use_count=row["use_count"],
        activities=json.loads(row["activities"]),
        projects=json.loads(row["projects"]),
    )


def fetch_task_usage(conn: sqlite3.Connection) -> list[TaskUsage]:
    rows = conn.execute(
        """
        SELECT task_key, task_name, last_used, use_count, activities, projects
        FROM task_usage
        ORDER BY last_used DESC;
        """
    )
    return [_row_to_task_usage(row) for row in rows]


def upsert_task_usage(conn: sqlite3.Connection, usage: TaskUsage) -> None:
    conn.execute(
        """
        INSERT INTO task_usage (task_key, task_name, last_used, use_count, activities, projects)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(task_key) DO UPDATE SET
            task_name = excluded.task_name,
            last_used = excluded.last_used,
            use_count = excluded.use_count,
            activities = excluded.activities,
            projects = excluded.projects;
        """,
        (
            usage.key,
            usage.name,
            usage.last_used.strftime(DATETIME_FMT),
            usage.use_count,
            json.dumps(usage.activities),
            json.dumps(usage.projects),
        ),
    )
    conn.execute(
        """
        DELETE FROM task_usage
        WHERE task_key NOT IN (
            SELECT task_key FROM task_usage ORDER BY last_used DESC LIMIT ?
        );
        """,
        (MAX_HISTORY_ITEMS,),
    )


def _row_to_mapping(row: sqlite3.Row) -> ProjectMapping:
    return ProjectMapping(
        project=row["project_name"],
        task_key=row["task_key"],
        task_name=row["task_name"],
        confidence=row["confidence"],
        usage_count=row["usage_count"],
    )


def fetch_project_mappings(conn: sqlite3.Connection) -> list[ProjectMapping]:
    rows = conn.execute(
        """
        SELECT project_name, task_key, task_name, confidence, usage_count
        FROM project_mappings
        ORDER BY project_name COLLATE NOCASE;
        """
    )
    return [_row_to_mapping(row) for row in rows]


def fetch_project_mapping(
    conn: sqlite3.Connection, project_name: str
) -> Optional[ProjectMapping]:
    row = conn.execute(
        """
        SELECT project_name, task_key, task_name, confidence, usage_count
        FROM project_mappings
        WHERE project_name = ?
        """,
        (project_name,),
    ).fetchone()
    return _row_to_mapping(row) if row is not None else None


def upsert_project_mapping(conn: sqlite3.Connection, mapping: ProjectMapping) -> None:
    if not mapping.project.strip():
        raise ValueError("project name is required")
    now = _now()
    conn.execute(
        """
        INSERT INTO project_mappings (
            project_name, task_key, task_name, confidence, usage_count, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(project_name) DO UPDATE SET
            task_key = excluded.task_key,
            task_name = excluded.task_name,
            confidence = excluded.confidence,
            usage_count = excluded.usage_count,
            updated_at = excluded.updated_at;
        """,
        (
            mapping.project,
            mapping.task_key,
            mapping.task_name,
            mapping.confidence,
            mapping.usage_count,
            now,
            now,
        ),
    )


def delete_project_mapping(conn: sqlite3.Connection, project_name: str) -> bool:
    cur = conn.execute(
        "DELETE FROM project_mappings WHERE project_name = ?", (project_name,)
    )
    return cur.rowcount > 0


def insert_feedback(
    conn: sqlite3.Connection,
    *,
    activity_title: str,
    activity_app: str,
    suggested_ticket: str,
    is_positive: bool,
    source: str,
    project_name: Optional[str] = None,
    actual_ticket: Optional[str] = None,
) -> int:
    cur = conn.execute(
        """
        INSERT INTO suggestion_feedback (
            activity_title,
            activity_app,
            project_name,
            suggested_ticket,
            actual_ticket,
            is_positive,
            source,
            created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            activity_title,
            activity_app,
            project_name,
            suggested_ticket,
            actual_ticket,
            1 if is_positive else 0,
            source,
            _now(),
        ),
    )
    conn.execute(
        """
        DELETE FROM suggestion_feedback
        WHERE id NOT IN (
            SELECT id FROM suggestion_feedback ORDER BY created_at DESC, id DESC LIMIT ?
        );
        """,
        (MAX_FEEDBACK_ITEMS,),
    )
    return int(cur.lastrowid)


def fetch_feedback(
    conn: sqlite3.Connection, *, positive: Optional[bool] = None
) -> list[sqlite3.Row]:
    if positive is None:
        return list(
            conn.execute("SELECT * FROM suggestion_feedback ORDER BY created_at DESC, id DESC")
        )
    return list(
        conn.execute(
            """
            SELECT * FROM suggestion_feedback
            WHERE is_positive = ?
            ORDER BY created_at DESC, id DESC
            """,
            (1 if positive else 0,),
        )
    )
