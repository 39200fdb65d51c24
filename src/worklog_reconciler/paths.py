"""Where the reconciler keeps its ticket history on disk."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import user_data_path

APP_NAME = "WorklogReconciler"
HISTORY_FILENAME = "history.sqlite3"

# Overrides the platform data directory, e.g. to share one history between machines.
DATA_DIR_ENV = "WORKLOG_RECONCILER_DATA_DIR"


def get_data_dir() -> Path:
    override = os.environ.get(DATA_DIR_ENV)
    path = Path(override) if override else user_data_path(APP_NAME, appauthor=False)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_db_path() -> Path:
    """History database used when no explicit ``--db`` path is given."""
    return get_data_dir() / HISTORY_FILENAME
