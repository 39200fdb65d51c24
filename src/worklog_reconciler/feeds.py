"""Convert collaborator feed records into engine models and back."""

from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import ReconcileSettings
from .errors import ExternalFetchFailed, InvalidInterval
from .intervals import (
    TimeInterval,
    end_time,
    format_minutes,
    round_half_up,
    round_to_minutes,
    to_minutes,
)
from .models import ActivityBlock, CommittedEntry, Origin, WorklogWriteRequest
from .normalization import normalize_app_name, normalize_window_title


class ActivityRecord(BaseModel):
    """One entry of the activity feed."""

    id: str
    start_timestamp: datetime = Field(alias="startTimestamp")
    duration_seconds: float = Field(alias="durationSeconds", ge=0)
    app_name: Optional[str] = Field(default=None, alias="appName")
    title: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class WorklogRecord(BaseModel):
    """One entry of the work-log feed."""

    entry_id: Union[int, str] = Field(alias="entryId")
    ticket_key: str = Field(alias="ticketKey")
    start_time: str = Field(alias="startTime")
    duration_seconds: int = Field(alias="durationSeconds", ge=0)
    description: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _local_clock(moment: datetime, tz: Optional[tzinfo]) -> str:
    if moment.tzinfo is not None:
        moment = moment.astimezone(tz)
    return format_minutes(moment.hour * 60 + moment.minute)


def activity_block_from_record(
    record: Union[ActivityRecord, Mapping[str, Any]],
    *,
    tz: Optional[tzinfo] = None,
    settings: Optional[ReconcileSettings] = None,
) -> ActivityBlock:
    """Build a raw block; timestamps are shown in ``tz`` (system zone by default)."""
    settings = settings or ReconcileSettings()
    if not isinstance(record, ActivityRecord):
        try:
            record = ActivityRecord.model_validate(record)
        except ValidationError as exc:
            raise ExternalFetchFailed(f"Malformed activity record: {exc}") from exc

    start = _local_clock(record.start_timestamp, tz)
    duration = round_half_up(record.duration_seconds)
    app = normalize_app_name(record.app_name)
    title = normalize_window_title(app, record.title) or app
    return ActivityBlock(
        id=record.id,
        start_time=start,
        end_time=end_time(start, duration, allow_wrap=settings.allow_midnight_wrap),
        duration_seconds=duration,
        title=title,
        source_app=app,
        origin=Origin.RAW,
    )


def activity_blocks_from_records(
    records: Iterable[Union[ActivityRecord, Mapping[str, Any]]],
    *,
    tz: Optional[tzinfo] = None,
    settings: Optional[ReconcileSettings] = None,
) -> list[ActivityBlock]:
    return [
        activity_block_from_record(record, tz=tz, settings=settings)
        for record in records
    ]


def _tempo_to_neutral(raw: Mapping[str, Any]) -> Mapping[str, Any]:
    if "tempoWorklogId" not in raw:
        return raw
    issue = raw.get("issue") or {}
    return {
        "entryId": raw["tempoWorklogId"],
        "ticketKey": issue.get("key", ""),
        "startTime": raw.get("startTime", ""),
        "durationSeconds": raw.get("timeSpentSeconds", 0),
        "description": raw.get("description"),
    }


def committed_entry_from_record(
    record: Union[WorklogRecord, Mapping[str, Any]],
) -> CommittedEntry:
    """Accepts the neutral work-log shape or a raw Tempo worklog."""
    if not isinstance(record, WorklogRecord):
        try:
            record = WorklogRecord.model_validate(_tempo_to_neutral(record))
        except ValidationError as exc:
            raise ExternalFetchFailed(f"Malformed work-log record: {exc}") from exc
    return CommittedEntry(
        id=record.entry_id,
        start_time=record.start_time,
        duration_seconds=record.duration_seconds,
        ticket_key=record.ticket_key,
        description=record.description,
    )


def build_write_request(block: ActivityBlock, date: str) -> WorklogWriteRequest:
    """Prepare the work-log write for ``block``; the caller performs it."""
    if not block.selected_ticket:
        raise ValueError(f"Block {block.id} has no ticket selected")
    seconds = round_to_minutes(block.duration_seconds)
    if seconds <= 0:
        raise InvalidInterval(f"Block {block.id} has no loggable time")
    return WorklogWriteRequest(
        ticket_key=block.selected_ticket,
        date=date,
        start_time=f"{block.start_time}:00",
        duration_seconds=seconds,
        description=block.description or block.title,
    )


def write_window(request: WorklogWriteRequest) -> tuple[str, str]:
    """Clock range the write will occupy once stored; it must not be empty."""
    start = format_minutes(to_minutes(request.start_time))
    end = end_time(request.start_time, request.duration_seconds)
    TimeInterval.from_clock(start, end).require_positive()
    return start, end
