"""
Tests for the FastAPI application.
"""

import pytest
from fastapi.testclient import TestClient

from worklog_reconciler.config import ServiceSettings
from worklog_reconciler.errors import ExternalFetchFailed
from worklog_reconciler.webapp import block_to_payload, create_app

DATE = "2024-05-01"


@pytest.fixture
def client_for(tmp_path):
    def _build(source):
        app = create_app(
            worklog_source=source,
            db_path=tmp_path / "history.sqlite3",
            service_settings=ServiceSettings(),
        )
        return TestClient(app)

    return _build


@pytest.fixture
def client(client_for, fake_source):
    return client_for(fake_source)


def _block(block_id, start, end, seconds, **extra):
    payload = {
        "id": block_id,
        "start_time": start,
        "end_time": end,
        "duration_seconds": seconds,
        "title": f"activity {block_id}",
        "source_app": "Code",
    }
    payload.update(extra)
    return payload


class TestStatusAndWorklogs:
    def test_status(self, client):
        body = client.get("/api/status").json()
        assert body["worklog_source_configured"] is True
        assert body["logged_threshold_percent"] == 80

    def test_worklogs_are_sorted_with_ranges(self, client, fake_source, make_entry):
        fake_source.entries = [make_entry(2, "13:00:00", 30), make_entry(1, "09:00:00", 60)]
        body = client.get("/api/worklogs", params={"date": DATE}).json()
        assert [item["id"] for item in body["worklogs"]] == [1, 2]
        assert body["worklogs"][0]["end_time"] == "10:00"
        assert body["total_minutes"] == 90

    def test_invalid_date(self, client):
        assert client.get("/api/worklogs", params={"date": "01.05.2024"}).status_code == 400

    def test_fetch_failure_is_a_bad_gateway(self, client, fake_source):
        fake_source.fail = ExternalFetchFailed("Tempo is down", status=503)
        response = client.get("/api/worklogs", params={"date": DATE})
        assert response.status_code == 502
        assert response.json()["detail"] == "Tempo is down"

    def test_missing_source(self, client_for):
        response = client_for(None).get("/api/worklogs", params={"date": DATE})
        assert response.status_code == 503


class TestCheckOverlap:
    def test_overlap_with_exclusion(self, client, fake_source, make_entry):
        fake_source.entries = [make_entry(7, "09:30", 60)]
        payload = {"date": DATE, "start_time": "10:00", "end_time": "11:00"}
        body = client.post("/api/check-overlap", json=payload).json()
        assert body["has_overlap"] is True
        assert body["conflicts"][0]["start_time"] == "09:30"

        payload["exclude_entry_id"] = "7"
        assert client.post("/api/check-overlap", json=payload).json() == {
            "has_overlap": False,
            "conflicts": [],
        }

    def test_bad_clock_time(self, client):
        payload = {"date": DATE, "start_time": "25:00", "end_time": "26:00"}
        assert client.post("/api/check-overlap", json=payload).status_code == 400


class TestClassify:
    def test_statuses(self, client, fake_source, make_entry):
        fake_source.entries = [make_entry(1, "09:30", 30)]
        payload = {
            "date": DATE,
            "blocks": [
                _block("a", "09:00", "10:00", 3600),
                _block("b", "12:00", "12:30", 1800),
            ],
        }
        results = client.post("/api/classify", json=payload).json()["results"]
        assert [(r["id"], r["status"], r["label"]) for r in results] == [
            ("a", "partial", "Partial (50%)"),
            ("b", "new", "To log"),
        ]
        assert fake_source.calls == [DATE]


class TestAggregation:
    def test_aggregate_and_restore(self, client):
        blocks = [
            _block("a", "09:00", "09:10", 600),
            _block("b", "09:10", "09:25", 900, selected_ticket="ABC-2"),
            _block("c", "09:30", "09:50", 1200),
        ]
        body = client.post("/api/aggregate", json={"blocks": blocks, "exclusions": ["old"]}).json()
        aggregated = body["block"]
        assert aggregated["duration_seconds"] == 2700
        assert (aggregated["start_time"], aggregated["end_time"]) == ("09:00", "09:50")
        assert aggregated["selected_ticket"] == "ABC-2"
        assert body["exclusions"] == ["a", "b", "c", "old"]

        restored = client.post(
            "/api/disaggregate", json={"block": aggregated, "exclusions": body["exclusions"]}
        ).json()
        assert [item["id"] for item in restored["blocks"]] == ["a", "b", "c"]
        assert restored["exclusions"] == ["old"]

    def test_single_block_is_rejected(self, client):
        response = client.post("/api/aggregate", json={"blocks": [_block("a", "09:00", "09:10", 600)]})
        assert response.status_code == 400

    def test_raw_block_cannot_be_disaggregated(self, client):
        response = client.post("/api/disaggregate", json={"block": _block("a", "09:00", "09:10", 600)})
        assert response.status_code == 400

    def test_aggregate_without_record_is_rejected(self, client):
        block = _block("x", "09:00", "09:10", 600, origin="aggregated")
        assert client.post("/api/disaggregate", json={"block": block}).status_code == 400

    def test_payload_matches_block(self, make_block):
        payload = block_to_payload(make_block("a", "09:00", 10, ticket="ABC-1"))
        assert payload["origin"] == "raw"
        assert "aggregated_from" not in payload


class TestLogAndSuggest:
    def test_log_records_history(self, client, fake_source):
        block = _block("a", "09:00", "09:30", 1790, selected_ticket="ABC-1", title="Fix login page")
        response = client.post(
            "/api/log",
            json={"date": DATE, "block": block, "issue_id": 10001, "ticket_name": "Login"},
        )
        assert response.status_code == 200
        [(request, issue_id)] = fake_source.created
        assert (request.duration_seconds, request.start_time, issue_id) == (1800, "09:00:00", 10001)

        suggestions = client.post("/api/suggestions", json={"title": "login page"}).json()
        assert suggestions["suggestions"][0]["ticket_key"] == "ABC-1"

    def test_overlap_blocks_the_write(self, client, fake_source, make_entry):
        fake_source.entries = [make_entry(5, "09:15", 30)]
        block = _block("a", "09:00", "09:30", 1800, selected_ticket="ABC-1")
        response = client.post("/api/log", json={"date": DATE, "block": block, "issue_id": 1})
        assert response.status_code == 409
        assert response.json()["detail"]["conflicts"][0]["id"] == 5
        assert fake_source.created == []

    def test_overlap_can_be_accepted(self, client, fake_source, make_entry):
        fake_source.entries = [make_entry(5, "09:15", 30)]
        block = _block("a", "09:00", "09:30", 1800, selected_ticket="ABC-1")
        response = client.post(
            "/api/log",
            json={"date": DATE, "block": block, "issue_id": 1, "allow_overlap": True},
        )
        assert response.status_code == 200
        assert [item["id"] for item in response.json()["warnings"]] == [5]

    def test_ticket_is_required(self, client):
        block = _block("a", "09:00", "09:30", 1800)
        response = client.post("/api/log", json={"date": DATE, "block": block, "issue_id": 1})
        assert response.status_code == 400

    def test_suggestions_on_empty_history(self, client):
        assert client.post("/api/suggestions", json={"title": "anything"}).json() == {
            "suggestions": []
        }

    def test_checked_interval_is_the_written_one(self, client, fake_source, make_entry):
        fake_source.entries = [make_entry(1, "09:00", 60)]
        block = _block("a", "09:00", "09:00", 3600, selected_ticket="ABC-1")
        response = client.post("/api/log", json={"date": DATE, "block": block, "issue_id": 1})
        assert response.status_code == 409
        assert fake_source.created == []

    def test_sub_minute_block_is_checked_as_one_minute(self, client, fake_source, make_entry):
        fake_source.entries = [make_entry(1, "09:00", 60)]
        block = _block("a", "09:00", "09:00", 30, selected_ticket="ABC-1")
        response = client.post("/api/log", json={"date": DATE, "block": block, "issue_id": 1})
        assert response.status_code == 409
        assert fake_source.created == []

    def test_write_that_cannot_fit_the_day_is_rejected(self, client, fake_source):
        block = _block("a", "23:59", "23:59", 600, selected_ticket="ABC-1")
        response = client.post("/api/log", json={"date": DATE, "block": block, "issue_id": 1})
        assert response.status_code == 400
        assert fake_source.created == []


def _feedback(is_positive, **extra):
    payload = {
        "activity_title": "Fix login page",
        "activity_app": "Code",
        "suggested_ticket": "ABC-1",
        "is_positive": is_positive,
        "source": "activity_history",
    }
    payload.update(extra)
    return payload


class TestSuggestionFeedback:
    @pytest.fixture
    def logged_client(self, client):
        block = _block("a", "09:00", "09:30", 1800, selected_ticket="ABC-1", title="Fix login page")
        client.post("/api/log", json={"date": DATE, "block": block, "issue_id": 1})
        return client

    def test_two_rejections_hide_the_ticket(self, logged_client):
        query = {"title": "Fix login page", "app": "Code"}
        ranked = logged_client.post("/api/suggestions", json=query).json()["suggestions"]
        assert [item["ticket_key"] for item in ranked] == ["ABC-1"]

        for _ in range(2):
            response = logged_client.post("/api/suggestions/feedback", json=_feedback(False))
            assert response.status_code == 200
            assert isinstance(response.json()["id"], int)

        assert logged_client.post("/api/suggestions", json=query).json() == {"suggestions": []}
        other_app = {"title": "Fix login page", "app": "Chrome"}
        ranked = logged_client.post("/api/suggestions", json=other_app).json()["suggestions"]
        assert [item["ticket_key"] for item in ranked] == ["ABC-1"]

    def test_one_rejection_keeps_the_ticket(self, logged_client):
        logged_client.post("/api/suggestions/feedback", json=_feedback(False))
        query = {"title": "Fix login page", "app": "Code"}
        ranked = logged_client.post("/api/suggestions", json=query).json()["suggestions"]
        assert [item["ticket_key"] for item in ranked] == ["ABC-1"]

    def test_stats(self, client):
        client.post("/api/suggestions/feedback", json=_feedback(True))
        client.post("/api/suggestions/feedback", json=_feedback(False, source="recent_usage"))
        stats = client.get("/api/suggestions/stats").json()
        assert (stats["total"], stats["positive"], stats["negative"]) == (2, 1, 1)
        assert stats["by_source"]["recent_usage"] == {"positive": 0, "negative": 1}

    def test_unknown_source_is_rejected(self, client):
        response = client.post("/api/suggestions/feedback", json=_feedback(False, source="guess"))
        assert response.status_code == 422
