"""Domain models for activity blocks and committed work-log entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Set, Tuple, Union

from .intervals import TimeInterval, format_minutes

EntryId = Union[int, str]

# Ids of raw activities absorbed into an aggregation; owned by the caller.
ExclusionSet = Set[str]


class Origin(str, Enum):
    RAW = "raw"
    MANUAL = "manual"
    AGGREGATED = "aggregated"


@dataclass(frozen=True, slots=True)
class AggregatedItem:
    """Snapshot of one block absorbed into an aggregation."""

    original_id: str
    start_time: str
    end_time: str
    title: str
    source_app: str
    duration_seconds: int
    origin: Origin = Origin.RAW
    description: str = ""
    selected_ticket: Optional[str] = None


@dataclass(frozen=True, slots=True)
class AggregationRecord:
    """Chronologically ordered provenance of an aggregated block."""

    items: Tuple[AggregatedItem, ...]

    @property
    def total_seconds(self) -> int:
        return sum(item.duration_seconds for item in self.items)

    @property
    def original_ids(self) -> list[str]:
        return [item.original_id for item in self.items]

    def __len__(self) -> int:
        return len(self.items)


@dataclass(slots=True)
class ActivityBlock:
    """An observed, not yet committed span of time in the working set.

    ``aggregation`` is present exactly when ``origin`` is ``Origin.AGGREGATED``.
    """

    id: str
    start_time: str
    end_time: str
    duration_seconds: int
    title: str
    source_app: str
    selected_ticket: Optional[str] = None
    origin: Origin = Origin.RAW
    description: str = ""
    aggregation: Optional[AggregationRecord] = None

    def __post_init__(self) -> None:
        self.origin = Origin(self.origin)
        if self.origin is Origin.AGGREGATED and self.aggregation is None:
            raise ValueError(f"Aggregated block {self.id} has no aggregation record")
        if self.origin is not Origin.AGGREGATED and self.aggregation is not None:
            raise ValueError(
                f"Block {self.id} with origin {self.origin.value} cannot carry an aggregation record"
            )
        if not self.description:
            self.description = self.title or self.source_app

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval.from_clock(self.start_time, self.end_time)

    @property
    def is_aggregated(self) -> bool:
        return self.origin is Origin.AGGREGATED

    def snapshot(self) -> AggregatedItem:
        return AggregatedItem(
            original_id=self.id,
            start_time=self.start_time,
            end_time=self.end_time,
            title=self.title,
            source_app=self.source_app,
            duration_seconds=self.duration_seconds,
            origin=self.origin,
            description=self.description,
            selected_ticket=self.selected_ticket,
        )

    @classmethod
    def from_snapshot(cls, item: AggregatedItem) -> "ActivityBlock":
        return cls(
            id=item.original_id,
            start_time=item.start_time,
            end_time=item.end_time,
            duration_seconds=item.duration_seconds,
            title=item.title,
            source_app=item.source_app,
            selected_ticket=item.selected_ticket,
            origin=item.origin,
            description=item.description,
        )


@dataclass(frozen=True, slots=True)
class CommittedEntry:
    """A time entry already persisted in the work-log system (read-only)."""

    id: EntryId
    start_time: str
    duration_seconds: int
    ticket_key: str
    description: Optional[str] = None

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval.from_start(self.start_time, self.duration_seconds)

    @property
    def start_label(self) -> str:
        return format_minutes(self.interval.start_minute)

    @property
    def end_label(self) -> str:
        return format_minutes(self.interval.end_minute)


@dataclass(frozen=True, slots=True)
class WorklogWriteRequest:
    """Payload the caller submits to the work-log system for one block."""

    ticket_key: str
    date: str
    start_time: str
    duration_seconds: int
    description: str


@dataclass(slots=True)
class TaskUsage:
    """How often, and for which activities, a ticket has been logged."""

    key: str
    name: str
    last_used: datetime
    use_count: int = 1
    activities: list[str] = field(default_factory=list)
    projects: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ProjectMapping:
    """Preferred ticket for a named project, with a learned confidence."""

    project: str
    task_key: str
    task_name: str
    confidence: float = 0.5
    usage_count: int = 1
