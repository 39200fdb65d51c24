"""FastAPI application that exposes the reconciliation engine as a local API."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from .aggregation import aggregate, disaggregate
from .config import ReconcileSettings, ServiceSettings
from .conflicts import ConflictCheck, WorklogSource, check_conflict, worklogs_with_ranges
from .db import database_connection
from .errors import ExternalServiceError, ReconcilerError
from .feeds import build_write_request, write_window
from .history import (
    feedback_stats,
    record_feedback,
    record_task_usage,
    suggest_for_activity,
)
from .models import (
    ActivityBlock,
    AggregatedItem,
    AggregationRecord,
    CommittedEntry,
    Origin,
)
from .paths import get_db_path
from .status import classify_block
from .suggestions import SuggestionSource

logger = logging.getLogger(__name__)


class AggregatedItemPayload(BaseModel):
    original_id: str
    start_time: str
    end_time: str
    title: str
    source_app: str
    duration_seconds: int = Field(ge=0)
    origin: Origin = Origin.RAW
    description: str = ""
    selected_ticket: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class BlockPayload(BaseModel):
    id: str
    start_time: str
    end_time: str
    duration_seconds: int = Field(ge=0)
    title: str = ""
    source_app: str = ""
    selected_ticket: Optional[str] = None
    origin: Origin = Origin.RAW
    description: str = ""
    aggregated_from: Optional[List[AggregatedItemPayload]] = None

    model_config = ConfigDict(extra="forbid")

    def to_block(self) -> ActivityBlock:
        record = None
        if self.aggregated_from is not None:
            record = AggregationRecord(
                tuple(AggregatedItem(**item.model_dump()) for item in self.aggregated_from)
            )
        return ActivityBlock(
            id=self.id,
            start_time=self.start_time,
            end_time=self.end_time,
            duration_seconds=self.duration_seconds,
            title=self.title,
            source_app=self.source_app,
            selected_ticket=self.selected_ticket,
            origin=self.origin,
            description=self.description,
            aggregation=record,
        )


class OverlapCheckPayload(BaseModel):
    date: str
    start_time: str
    end_time: str
    exclude_entry_id: Optional[Union[int, str]] = None

    model_config = ConfigDict(extra="forbid")


class ClassifyPayload(BaseModel):
    date: str
    blocks: List[BlockPayload]

    model_config = ConfigDict(extra="forbid")


class AggregatePayload(BaseModel):
    blocks: List[BlockPayload]
    exclusions: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class DisaggregatePayload(BaseModel):
    block: BlockPayload
    exclusions: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class SuggestionPayload(BaseModel):
    title: str
    app: Optional[str] = None
    project: Optional[str] = None
    limit: int = Field(default=5, ge=1, le=50)

    model_config = ConfigDict(extra="forbid")


class FeedbackPayload(BaseModel):
    activity_title: str
    activity_app: str
    suggested_ticket: str
    is_positive: bool
    source: SuggestionSource
    project: Optional[str] = None
    actual_ticket: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class LogBlockPayload(BaseModel):
    date: str
    block: BlockPayload
    issue_id: int
    ticket_name: Optional[str] = None
    project: Optional[str] = None
    allow_overlap: bool = False

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    worklog_source: Optional[WorklogSource] = None,
    db_path: Optional[Path] = None,
    settings: Optional[ReconcileSettings] = None,
    service_settings: Optional[ServiceSettings] = None,
) -> FastAPI:
    """Instantiate the FastAPI application.

    Without an explicit ``worklog_source`` a Tempo client is built from the
    service settings when a token is configured.
    """
    resolved_db_path = Path(db_path or get_db_path())
    resolved_settings = settings or ReconcileSettings()
    services = service_settings or ServiceSettings.from_env()
    if worklog_source is None and services.tempo_token:
        from .clients import TempoClient

        worklog_source = TempoClient.from_settings(services)

    app = FastAPI(title="Worklog Reconciler", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path
    app.state.worklog_source = worklog_source
    app.state.author_account_id = services.tempo_account_id

    def _source(request: Request) -> WorklogSource:
        source = request.app.state.worklog_source
        if source is None:
            raise HTTPException(status_code=503, detail="Work-log system is not configured")
        return source

    def _fetch_entries(request: Request, date: str) -> list[CommittedEntry]:
        try:
            return _source(request).fetch_entries(date)
        except ExternalServiceError as exc:
            raise HTTPException(status_code=502, detail=exc.message) from exc

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        return {
            "worklog_source_configured": request.app.state.worklog_source is not None,
            "database_path": str(request.app.state.db_path),
            "logged_threshold_percent": resolved_settings.logged_threshold_percent,
        }

    @app.get("/api/worklogs")
    def worklogs(
        request: Request,
        date: Optional[str] = Query(
            default=None,
            description="Target date in YYYY-MM-DD format.",
        ),
    ) -> Dict[str, Any]:
        target = _parse_date(date)
        ranges = worklogs_with_ranges(_fetch_entries(request, target))
        return {
            "date": target,
            "worklogs": [
                {
                    **_entry_payload(item.entry),
                    "start_time": item.start_time,
                    "end_time": item.end_time,
                    "duration_minutes": item.duration_minutes,
                }
                for item in ranges
            ],
            "total_minutes": sum(item.duration_minutes for item in ranges),
        }

    @app.post("/api/check-overlap")
    def check_overlap(payload: OverlapCheckPayload, request: Request) -> Dict[str, Any]:
        target = _parse_date(payload.date)
        try:
            result = check_conflict(
                _source(request),
                target,
                payload.start_time,
                payload.end_time,
                payload.exclude_entry_id,
            )
        except ExternalServiceError as exc:
            raise HTTPException(status_code=502, detail=exc.message) from exc
        except ReconcilerError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _conflict_payload(result)

    @app.post("/api/classify")
    def classify_blocks(payload: ClassifyPayload, request: Request) -> Dict[str, Any]:
        target = _parse_date(payload.date)
        blocks = [_to_block(item) for item in payload.blocks]
        entries = _fetch_entries(request, target)
        results = []
        for block in blocks:
            try:
                info = classify_block(block, entries, resolved_settings)
            except ReconcilerError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            results.append(
                {
                    "id": block.id,
                    "status": info.status.value,
                    "label": info.label,
                    "overlap_percent": info.percent,
                    "overlapping": [_entry_payload(entry) for entry in info.overlapping],
                }
            )
        return {"date": target, "results": results}

    @app.post("/api/aggregate")
    def aggregate_blocks(payload: AggregatePayload) -> Dict[str, Any]:
        exclusions = set(payload.exclusions)
        try:
            block = aggregate(
                [_to_block(item) for item in payload.blocks],
                exclusions,
                settings=resolved_settings,
            )
        except ReconcilerError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"block": block_to_payload(block), "exclusions": sorted(exclusions)}

    @app.post("/api/disaggregate")
    def disaggregate_block(payload: DisaggregatePayload) -> Dict[str, Any]:
        exclusions = set(payload.exclusions)
        try:
            blocks = disaggregate(_to_block(payload.block), exclusions)
        except ReconcilerError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {
            "blocks": [block_to_payload(block) for block in blocks],
            "exclusions": sorted(exclusions),
        }

    @app.post("/api/suggestions")
    def suggestions(payload: SuggestionPayload, request: Request) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            ranked = suggest_for_activity(
                conn,
                payload.title,
                app=payload.app,
                project=payload.project,
                limit=payload.limit,
            )
        return {
            "suggestions": [
                {
                    "ticket_key": item.ticket_key,
                    "ticket_name": item.ticket_name,
                    "confidence": item.confidence,
                    "reason": item.reason,
                    "source": item.source.value,
                }
                for item in ranked
            ]
        }

    @app.post("/api/suggestions/feedback")
    def suggestion_feedback(payload: FeedbackPayload, request: Request) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            feedback_id = record_feedback(
                conn,
                payload.activity_title,
                payload.activity_app,
                payload.suggested_ticket,
                payload.is_positive,
                payload.source,
                payload.project,
                payload.actual_ticket,
            )
        logger.debug(
            "Recorded %s feedback for %s",
            "positive" if payload.is_positive else "negative",
            payload.suggested_ticket,
        )
        return {"id": feedback_id}

    @app.get("/api/suggestions/stats")
    def suggestion_stats(request: Request) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            return feedback_stats(conn)

    @app.post("/api/log")
    def log_block(payload: LogBlockPayload, request: Request) -> Dict[str, Any]:
        target = _parse_date(payload.date)
        block = _to_block(payload.block)
        source = _source(request)
        try:
            write = build_write_request(block, target)
            start, end = write_window(write)
            result = check_conflict(source, target, start, end)
        except ExternalServiceError as exc:
            raise HTTPException(status_code=502, detail=exc.message) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if result.has_overlap and not payload.allow_overlap:
            raise HTTPException(status_code=409, detail=_conflict_payload(result))

        create = getattr(source, "create_worklog", None)
        if create is None:
            raise HTTPException(status_code=501, detail="Work-log system is read-only")
        try:
            entry = create(
                write,
                issue_id=payload.issue_id,
                author_account_id=request.app.state.author_account_id,
            )
        except ExternalServiceError as exc:
            raise HTTPException(status_code=502, detail=exc.message) from exc

        with database_connection(request.app.state.db_path) as conn:
            record_task_usage(
                conn,
                write.ticket_key,
                payload.ticket_name or write.ticket_key,
                block.title,
                payload.project,
            )
        return {
            "entry": _entry_payload(entry),
            "warnings": _conflict_payload(result)["conflicts"],
        }

    return app


def _parse_date(value: Optional[str]) -> str:
    if not value:
        return datetime.now().strftime("%Y-%m-%d")
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc
    return parsed.strftime("%Y-%m-%d")


def _to_block(payload: BlockPayload) -> ActivityBlock:
    try:
        return payload.to_block()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _entry_payload(entry: CommittedEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "ticket_key": entry.ticket_key,
        "start_time": entry.start_time,
        "duration_seconds": entry.duration_seconds,
        "description": entry.description,
    }


def _conflict_payload(result: ConflictCheck) -> Dict[str, Any]:
    return {
        "has_overlap": result.has_overlap,
        "conflicts": [
            {
                **_entry_payload(item.entry),
                "start_time": item.start_time,
                "end_time": item.end_time,
            }
            for item in result.conflicts
        ],
    }


def block_to_payload(block: ActivityBlock) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": block.id,
        "start_time": block.start_time,
        "end_time": block.end_time,
        "duration_seconds": block.duration_seconds,
        "title": block.title,
        "source_app": block.source_app,
        "selected_ticket": block.selected_ticket,
        "origin": block.origin.value,
        "description": block.description,
    }
    if block.aggregation is not None:
        payload["aggregated_from"] = [
            {
                "original_id": item.original_id,
                "start_time": item.start_time,
                "end_time": item.end_time,
                "title": item.title,
                "source_app": item.source_app,
                "duration_seconds": item.duration_seconds,
                "origin": item.origin.value,
                "description": item.description,
                "selected_ticket": item.selected_ticket,
            }
            for item in block.aggregation.items
        ]
    return payload
