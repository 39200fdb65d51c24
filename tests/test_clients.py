"""
Tests for the ActivityWatch and Tempo HTTP clients, using mocked sessions.
"""

from datetime import timezone
from unittest.mock import Mock

import pytest
import requests

from worklog_reconciler.clients import ActivityWatchClient, TempoClient
from worklog_reconciler.errors import ExternalFetchFailed, ExternalWriteFailed
from worklog_reconciler.models import WorklogWriteRequest

TEMPO_WORKLOG = {
    "tempoWorklogId": 42,
    "issue": {"id": 10001, "key": "ABC-7"},
    "startTime": "09:00:00",
    "timeSpentSeconds": 1800,
    "description": "Review",
}


def _response(payload=None, *, status=200, content_type="application/json"):
    response = Mock()
    response.ok = status < 400
    response.status_code = status
    response.headers = {"content-type": content_type}
    response.text = ""
    response.json.return_value = payload
    return response


def _events_session(events):
    session = Mock()

    def get(url, params=None, timeout=None):
        if url.endswith("/api/0/buckets/"):
            return _response({"aw-watcher-window_host": {}, "aw-watcher-afk_host": {}})
        return _response(events)

    session.get.side_effect = get
    return session


class TestActivityWatchClient:
    EVENTS = [
        {"timestamp": "2024-05-01T09:00:00Z", "duration": 90, "data": {"app": "Code", "title": "a.py"}},
        {"timestamp": "2024-05-01T08:30:00+00:00", "duration": 30, "data": {"app": "Code", "title": "a.py"}},
        {"timestamp": "2024-05-01T10:00:00Z", "duration": 0.5, "data": {"app": "Slack", "title": "x"}},
    ]

    def test_events_are_grouped_by_app_and_title(self):
        client = ActivityWatchClient("http://aw", session=_events_session(self.EVENTS))
        [record] = client.fetch_activity("2024-05-01", tz=timezone.utc)
        assert record["durationSeconds"] == 120
        assert record["startTimestamp"].hour == 8
        assert record["id"].startswith("aw-")

    def test_only_window_buckets_are_read(self):
        session = _events_session(self.EVENTS)
        ActivityWatchClient("http://aw/", session=session).fetch_activity("2024-05-01", tz=timezone.utc)
        urls = [call.args[0] for call in session.get.call_args_list]
        assert urls == [
            "http://aw/api/0/buckets/",
            "http://aw/api/0/buckets/aw-watcher-window_host/events",
        ]

    def test_ids_are_stable(self):
        first = ActivityWatchClient("http://aw", session=_events_session(self.EVENTS))
        second = ActivityWatchClient("http://aw", session=_events_session(self.EVENTS))
        assert (
            first.fetch_activity("2024-05-01", tz=timezone.utc)[0]["id"]
            == second.fetch_activity("2024-05-01", tz=timezone.utc)[0]["id"]
        )

    def test_blocks(self):
        client = ActivityWatchClient("http://aw", session=_events_session(self.EVENTS))
        [block] = client.fetch_blocks("2024-05-01", tz=timezone.utc)
        assert (block.start_time, block.end_time, block.source_app) == ("08:30", "08:32", "Code")

    def test_unreachable_server(self):
        session = Mock()
        session.get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(ExternalFetchFailed):
            ActivityWatchClient("http://aw", session=session).window_buckets()

    def test_error_status(self):
        session = Mock()
        session.get.return_value = _response(status=500)
        with pytest.raises(ExternalFetchFailed) as excinfo:
            ActivityWatchClient("http://aw", session=session).window_buckets()
        assert excinfo.value.status == 500


@pytest.fixture
def tempo_session():
    session = Mock()
    session.headers = {}
    return session


class TestTempoClient:
    REQUEST = WorklogWriteRequest("ABC-7", "2024-05-01", "09:00:00", 1800, "Review")

    def test_token_is_required(self):
        with pytest.raises(ValueError):
            TempoClient(None)

    def test_auth_header(self, tempo_session):
        TempoClient("secret", session=tempo_session)
        assert tempo_session.headers["Authorization"] == "Bearer secret"

    def test_fetch_entries(self, tempo_session):
        tempo_session.get.return_value = _response({"results": [TEMPO_WORKLOG]})
        client = TempoClient("secret", base_url="https://tempo/4/", session=tempo_session)
        [entry] = client.fetch_entries("2024-05-01")
        assert (entry.id, entry.ticket_key, entry.start_label, entry.end_label) == (
            42, "ABC-7", "09:00", "09:30"
        )
        args, kwargs = tempo_session.get.call_args
        assert args[0] == "https://tempo/4/worklogs"
        assert kwargs["params"]["from"] == kwargs["params"]["to"] == "2024-05-01"

    def test_fetch_error_uses_api_message(self, tempo_session):
        tempo_session.get.return_value = _response(
            {"errors": [{"message": "Token expired"}]}, status=401
        )
        with pytest.raises(ExternalFetchFailed) as excinfo:
            TempoClient("secret", session=tempo_session).fetch_entries("2024-05-01")
        assert excinfo.value.message == "Token expired"
        assert excinfo.value.status == 401

    def test_create_worklog(self, tempo_session):
        tempo_session.post.return_value = _response(TEMPO_WORKLOG)
        client = TempoClient("secret", session=tempo_session)
        entry = client.create_worklog(self.REQUEST, issue_id=10001, author_account_id="acc-1")
        assert entry.id == 42
        body = tempo_session.post.call_args.kwargs["json"]
        assert body["issueId"] == 10001
        assert body["timeSpentSeconds"] == 1800
        assert body["startDate"] == "2024-05-01"
        assert body["authorAccountId"] == "acc-1"

    def test_create_failure_maps_status(self, tempo_session):
        tempo_session.post.return_value = _response(status=409, content_type="text/html")
        with pytest.raises(ExternalWriteFailed) as excinfo:
            TempoClient("secret", session=tempo_session).create_worklog(self.REQUEST, issue_id=1)
        assert excinfo.value.message == "Conflict - this time is already logged"

    def test_create_unreachable(self, tempo_session):
        tempo_session.post.side_effect = requests.Timeout("slow")
        with pytest.raises(ExternalWriteFailed):
            TempoClient("secret", session=tempo_session).create_worklog(self.REQUEST, issue_id=1)
