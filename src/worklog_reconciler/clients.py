"""HTTP clients for the activity source (ActivityWatch) and the work-log system (Tempo)."""

from __future__ import annotations

import hashlib
import logging
from collections import OrderedDict
from datetime import datetime, timedelta, tzinfo
from typing import Any, Dict, Optional

import requests

from .config import ServiceSettings
from .errors import ExternalFetchFailed, ExternalWriteFailed
from .feeds import activity_blocks_from_records, committed_entry_from_record
from .models import ActivityBlock, CommittedEntry, WorklogWriteRequest

logger = logging.getLogger(__name__)

WINDOW_BUCKET_PREFIX = "aw-watcher-window_"

_WRITE_STATUS_MESSAGES = {
    400: "Invalid data - check the ticket and the time",
    401: "Tempo token expired - refresh it in the settings",
    403: "No permission to log time in this project",
    404: "The ticket does not exist",
    409: "Conflict - this time is already logged",
    429: "Too many requests - wait a moment",
}


def _error_message(response: requests.Response) -> Optional[str]:
    content_type = response.headers.get("content-type", "")
    if "application/json" not in content_type:
        logger.debug("Non-JSON error response: %s", response.text[:200])
        return None
    try:
        payload = response.json()
    except ValueError:
        return None
    errors = payload.get("errors") if isinstance(payload, dict) else None
    if errors and isinstance(errors, list) and isinstance(errors[0], dict):
        return errors[0].get("message")
    return None


def _activity_id(day: str, app: str, title: str) -> str:
    digest = hashlib.sha1(f"{day}|{app}|{title}".encode("utf-8")).hexdigest()
    return f"aw-{digest[:16]}"


class ActivityWatchClient:
    """Reads window events from a local ActivityWatch server."""

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: ServiceSettings) -> "ActivityWatchClient":
        return cls(settings.activitywatch_url, timeout=settings.timeout_seconds)

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ExternalFetchFailed(f"ActivityWatch unreachable: {exc}") from exc
        if not response.ok:
            raise ExternalFetchFailed(
                f"ActivityWatch request failed for {path}", status=response.status_code
            )
        return response.json()

    def window_buckets(self) -> list[str]:
        buckets = self._get("/api/0/buckets/")
        return sorted(b for b in buckets if b.startswith(WINDOW_BUCKET_PREFIX))

    def fetch_activity(self, date: str, *, tz: Optional[tzinfo] = None) -> list[Dict[str, Any]]:
        """Return the day's window activity grouped by app and title.

        Each record carries the first time the activity was seen and the sum
        of its event durations. Ids are stable for a given day, app and title.
        """
        day = datetime.strptime(date, "%Y-%m-%d")
        start = day.replace(tzinfo=tz) if tz else day.astimezone()
        end = start + timedelta(days=1)

        grouped: OrderedDict[tuple[str, str], Dict[str, Any]] = OrderedDict()
        for bucket in self.window_buckets():
            events = self._get(
                f"/api/0/buckets/{bucket}/events",
                params={"start": start.isoformat(), "end": end.isoformat(), "limit": -1},
            )
            for event in events:
                data = event.get("data") or {}
                app = data.get("app") or "Unknown"
                title = data.get("title") or ""
                seen = datetime.fromisoformat(event["timestamp"].replace("Z", "+00:00"))
                duration = float(event.get("duration") or 0.0)
                record = grouped.get((app, title))
                if record is None:
                    grouped[(app, title)] = {
                        "id": _activity_id(date, app, title),
                        "startTimestamp": seen,
                        "durationSeconds": duration,
                        "appName": app,
                        "title": title,
                    }
                else:
                    record["startTimestamp"] = min(record["startTimestamp"], seen)
                    record["durationSeconds"] += duration
        records = [r for r in grouped.values() if r["durationSeconds"] >= 1]
        logger.debug("Fetched %d activities for %s", len(records), date)
        return sorted(records, key=lambda r: r["startTimestamp"])

    def fetch_blocks(self, date: str, *, tz: Optional[tzinfo] = None) -> list[ActivityBlock]:
        return activity_blocks_from_records(self.fetch_activity(date, tz=tz), tz=tz)


class TempoClient:
    """Reads and writes worklogs through the Tempo REST API."""

    def __init__(
        self,
        token: Optional[str],
        *,
        base_url: str = "https://api.tempo.io/4",
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ) -> None:
        if not token:
            raise ValueError("TEMPO_API_TOKEN not set")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )

    @classmethod
    def from_settings(cls, settings: ServiceSettings) -> "TempoClient":
        return cls(
            settings.tempo_token,
            base_url=settings.tempo_url,
            timeout=settings.timeout_seconds,
        )

    def fetch_entries(self, date: str) -> list[CommittedEntry]:
        url = f"{self.base_url}/worklogs"
        params = {"from": date, "to": date, "limit": 1000}
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ExternalFetchFailed(f"Tempo unreachable: {exc}") from exc
        if not response.ok:
            message = _error_message(response) or f"Tempo API error: {response.status_code}"
            raise ExternalFetchFailed(message, status=response.status_code)
        results = response.json().get("results") or []
        return [committed_entry_from_record(item) for item in results]

    def create_worklog(
        self,
        request: WorklogWriteRequest,
        *,
        issue_id: int,
        author_account_id: Optional[str] = None,
    ) -> CommittedEntry:
        """Submit one worklog; failures are raised, never retried."""
        body: Dict[str, Any] = {
            "issueId": issue_id,
            "timeSpentSeconds": request.duration_seconds,
            "startDate": request.date,
            "startTime": request.start_time,
            "description": request.description or "Logged via worklog-reconciler",
            "remainingEstimateSeconds": 0,
        }
        if author_account_id:
            body["authorAccountId"] = author_account_id

        try:
            response = self.session.post(
                f"{self.base_url}/worklogs", json=body, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise ExternalWriteFailed(f"Tempo unreachable: {exc}") from exc
        if not response.ok:
            message = (
                _error_message(response)
                or _WRITE_STATUS_MESSAGES.get(response.status_code)
                or f"Tempo API error: {response.status_code}"
            )
            logger.error(
                "Failed to log %ss to %s: %s",
                request.duration_seconds,
                request.ticket_key,
                message,
            )
            raise ExternalWriteFailed(message, status=response.status_code)

        entry = committed_entry_from_record(response.json())
        logger.info(
            "Logged %d seconds to %s as worklog %s",
            request.duration_seconds,
            request.ticket_key,
            entry.id,
        )
        return entry
