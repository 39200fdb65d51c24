"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from .config import ReconcileSettings
from .conflicts import ConflictCheck, EntryRange
from .models import ActivityBlock, CommittedEntry
from .status import ActivityStatus, classify_block, summarize

STATUS_ICONS = {
    ActivityStatus.LOGGED: "✓",
    ActivityStatus.NEW: "●",
    ActivityStatus.PARTIAL: "◐",
    ActivityStatus.CONFLICT: "!",
}


class ReconciliationPrinter:
    """Render a day's reconciliation in the console."""

    def __init__(self, settings: Optional[ReconcileSettings] = None) -> None:
        self.settings = settings or ReconcileSettings()

    def print_day(
        self,
        date: str,
        blocks: Sequence[ActivityBlock],
        entries: Sequence[CommittedEntry],
    ) -> None:
        if not blocks:
            print(f"No activity recorded for {date}.")
            return

        statuses = [classify_block(block, entries, self.settings) for block in blocks]
        logged_seconds = sum(entry.duration_seconds for entry in entries)
        active_seconds = sum(block.duration_seconds for block in blocks)

        print(f"Reconciliation for {date}")
        print("-" * 72)
        print(f"Tracked time: {format_duration(active_seconds)}")
        print(f"Logged time:  {format_duration(logged_seconds)}")
        print()
        for block, info in zip(blocks, statuses):
            label = (block.title or block.source_app)[:38]
            print(
                f"  {STATUS_ICONS[info.status]} {block.start_time}-{block.end_time} "
                f"{label:<38} {format_duration(block.duration_seconds)}  {info.label}"
            )
        counts = summarize(statuses)
        print()
        print(
            "  ".join(f"{status.value}: {counts[status]}" for status in ActivityStatus)
        )

    def print_entries(self, date: str, ranges: Iterable[EntryRange]) -> None:
        ranges = list(ranges)
        if not ranges:
            print(f"No work-log entries for {date}.")
            return
        print(f"Work-log entries for {date}")
        print("-" * 72)
        for item in ranges:
            description = (item.entry.description or "")[:40]
            print(
                f"  {item.start_time}-{item.end_time} {item.entry.ticket_key:<12} "
                f"{description:<40} {item.duration_minutes:>4} min"
            )
        total = sum(item.duration_minutes for item in ranges)
        print(f"Total: {total} min")

    def print_conflicts(self, result: ConflictCheck) -> None:
        if not result.has_overlap:
            print("No overlapping entries.")
            return
        print(f"Warning: overlaps {len(result.conflicts)} existing entries:")
        for conflict in result.conflicts:
            print(
                f"  {conflict.entry.ticket_key:<12} {conflict.start_time}-{conflict.end_time} "
                f"{conflict.entry.description or ''}"
            )


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
