"""
Shared fixtures: block/entry factories and an in-memory work-log source.
"""

import sys
from pathlib import Path

import pytest

SRC_ROOT = Path(__file__).parent.parent / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from worklog_reconciler.intervals import end_time  # noqa: E402
from worklog_reconciler.models import ActivityBlock, CommittedEntry, Origin  # noqa: E402


class FakeWorklogSource:
    """Work-log collaborator backed by a list; records every fetch."""

    def __init__(self, entries=(), fail=None):
        self.entries = list(entries)
        self.fail = fail
        self.calls = []
        self.created = []

    def fetch_entries(self, date):
        self.calls.append(date)
        if self.fail is not None:
            raise self.fail
        return list(self.entries)

    def create_worklog(self, request, *, issue_id, author_account_id=None):
        entry = CommittedEntry(
            id=1000 + len(self.created),
            start_time=request.start_time,
            duration_seconds=request.duration_seconds,
            ticket_key=request.ticket_key,
            description=request.description,
        )
        self.created.append((request, issue_id))
        self.entries.append(entry)
        return entry


@pytest.fixture
def make_block():
    def _make(
        block_id,
        start,
        minutes,
        *,
        title=None,
        app="Code",
        ticket=None,
        origin=Origin.RAW,
        description="",
    ):
        return ActivityBlock(
            id=block_id,
            start_time=start,
            end_time=end_time(start, minutes * 60),
            duration_seconds=minutes * 60,
            title=title or f"activity {block_id}",
            source_app=app,
            selected_ticket=ticket,
            origin=origin,
            description=description,
        )

    return _make


@pytest.fixture
def make_entry():
    def _make(entry_id, start, minutes, ticket="ABC-1", description=None):
        return CommittedEntry(
            id=entry_id,
            start_time=start,
            duration_seconds=minutes * 60,
            ticket_key=ticket,
            description=description,
        )

    return _make


@pytest.fixture
def fake_source():
    return FakeWorklogSource()
