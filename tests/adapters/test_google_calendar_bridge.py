"""
Unit tests for GoogleDriveCalendarBridgeAdapter.

Drive and Calendar services are MagicMocks shaped like the discovery
clients (``service.files().get(...).execute(...)``).
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from googleapiclient.errors import HttpError

from adapters.google_calendar_bridge import (
    GoogleDriveCalendarBridgeAdapter,
    extract_meeting_title,
    fuzzy_match,
    to_meeting_event,
)
from shared_utils.error_handler import ConfigurationError, ExternalServiceError


FILE_ID = "1AbC_def-2"


def _http_error(status: int = 404) -> HttpError:
    return HttpError(MagicMock(status=status, reason="error"), b"")


def _event(event_id="evt-1", summary="Weekly Sync", start="2025-06-02T10:00:00Z",
           end="2025-06-02T11:00:00Z", **extra):
    event = {
        "id": event_id,
        "summary": summary,
        "start": {"dateTime": start},
        "end": {"dateTime": end},
        "organizer": {"email": "alice@example.com"},
        "attendees": [
            {"email": "alice@example.com"},
            {"email": "bob@example.com"},
            {"email": "room-1@resource.calendar.google.com", "resource": True},
        ],
    }
    event.update(extra)
    return event


@pytest.fixture()
def drive() -> MagicMock:
    mock = MagicMock()
    mock.files.return_value.get.return_value.execute.return_value = {
        "id": FILE_ID,
        "name": "2025-06-02_Weekly Sync.txt",
        "createdTime": "2025-06-02T11:05:00.000Z",
        "mimeType": "text/plain",
    }
    return mock


@pytest.fixture()
def calendar() -> MagicMock:
    mock = MagicMock()
    mock.events.return_value.list.return_value.execute.return_value = {"items": []}
    return mock


@pytest.fixture()
def bridge(drive, calendar) -> GoogleDriveCalendarBridgeAdapter:
    return GoogleDriveCalendarBridgeAdapter(drive_service=drive, calendar_service=calendar)


def _set_events(calendar: MagicMock, events) -> None:
    calendar.events.return_value.list.return_value.execute.return_value = {"items": events}


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


class TestTitleHelpers:
    def test_extract_title_iso_prefix(self) -> None:
        assert extract_meeting_title("2025-06-02_Weekly Sync.txt") == "Weekly Sync"

    def test_extract_title_japanese_prefix(self) -> None:
        assert extract_meeting_title("2025年1月15日_定例会議.txt") == "定例会議"

    def test_extract_title_without_prefix(self) -> None:
        assert extract_meeting_title("Retro.docx") == "Retro"

    def test_fuzzy_match(self) -> None:
        assert fuzzy_match("Weekly  Sync", "weeklysync")
        assert fuzzy_match("Weekly Sync - Team A", "Weekly Sync")
        assert not fuzzy_match("Retro", "Planning")
        assert not fuzzy_match(None, "Planning")

    def test_to_meeting_event_skips_resources(self) -> None:
        event = to_meeting_event(_event(recurringEventId="series-1"))
        assert event.attendee_emails == ["alice@example.com", "bob@example.com"]
        assert event.start == datetime(2025, 6, 2, 10, tzinfo=timezone.utc)
        assert event.is_recurring


# ---------------------------------------------------------------------------
# find_meeting_with_participants
# ---------------------------------------------------------------------------


class TestFindMeeting:
    def test_match_by_attachment_file_id(self, bridge, calendar) -> None:
        _set_events(calendar, [
            _event("other", summary="Unrelated", start="2025-06-02T08:00:00Z", end="2025-06-02T08:30:00Z",
                   attachments=[{"fileId": FILE_ID}]),
            _event(),
        ])

        meeting = bridge.find_meeting_with_participants(FILE_ID)

        assert meeting.event.id == "other"
        assert meeting.file_info.id == FILE_ID

    def test_match_by_attachment_url(self, bridge, calendar) -> None:
        _set_events(calendar, [
            _event("by-url", summary="Unrelated",
                   attachments=[{"fileUrl": f"https://drive.google.com/file/d/{FILE_ID}/view"}]),
        ])

        assert bridge.find_meeting_with_participants(FILE_ID).event.id == "by-url"

    def test_match_by_time_and_title(self, bridge, calendar) -> None:
        _set_events(calendar, [
            _event("wrong-title", summary="Planning"),
            _event("right"),
        ])

        meeting = bridge.find_meeting_with_participants(FILE_ID)

        assert meeting.event.id == "right"
        assert meeting.participant_emails == ["alice@example.com", "bob@example.com"]

    def test_closest_end_wins(self, bridge, calendar) -> None:
        _set_events(calendar, [
            _event("early", start="2025-06-02T09:00:00Z", end="2025-06-02T10:30:00Z"),
            _event("late", start="2025-06-02T10:00:00Z", end="2025-06-02T11:00:00Z"),
        ])

        assert bridge.find_meeting_with_participants(FILE_ID).event.id == "late"

    def test_file_created_before_start_not_matched(self, bridge, calendar) -> None:
        _set_events(calendar, [
            _event(start="2025-06-02T12:00:00Z", end="2025-06-02T13:00:00Z"),
        ])

        assert bridge.find_meeting_with_participants(FILE_ID) is None

    def test_missing_end_assumes_one_hour(self, bridge, calendar) -> None:
        event = _event(start="2025-06-02T10:30:00Z")
        del event["end"]
        _set_events(calendar, [event])

        assert bridge.find_meeting_with_participants(FILE_ID) is not None

    def test_missing_file_returns_none(self, bridge, drive, calendar) -> None:
        drive.files.return_value.get.return_value.execute.side_effect = _http_error(404)

        assert bridge.find_meeting_with_participants(FILE_ID) is None
        calendar.events.assert_not_called()

    def test_calendar_failure_raises(self, bridge, calendar) -> None:
        calendar.events.return_value.list.return_value.execute.side_effect = _http_error(500)

        with pytest.raises(ExternalServiceError, match="Google Calendar unavailable"):
            bridge.find_meeting_with_participants(FILE_ID)

    def test_search_window_is_24_hours(self, bridge, calendar) -> None:
        bridge.find_meeting_with_participants(FILE_ID)

        kwargs = calendar.events.return_value.list.call_args.kwargs
        assert kwargs["timeMin"] == "2025-06-01T11:05:00+00:00"
        assert kwargs["timeMax"] == "2025-06-03T11:05:00+00:00"
        assert kwargs["singleEvents"] is True


class TestListEvents:
    def test_follows_pagination(self, bridge, calendar) -> None:
        calendar.events.return_value.list.return_value.execute.side_effect = [
            {"items": [{"id": "a"}], "nextPageToken": "p2"},
            {"items": [{"id": "b"}]},
        ]

        events = bridge.list_events(
            datetime(2025, 6, 1, tzinfo=timezone.utc), datetime(2025, 6, 2, tzinfo=timezone.utc)
        )

        assert [e["id"] for e in events] == ["a", "b"]
        tokens = [c.kwargs["pageToken"] for c in calendar.events.return_value.list.call_args_list]
        assert tokens == [None, "p2"]


class TestExtendedLookups:
    def test_batch_find_meetings_isolates_failures(self, bridge, calendar) -> None:
        calendar.events.return_value.list.return_value.execute.side_effect = [
            _http_error(500),
            {"items": [_event()]},
        ]

        results = bridge.batch_find_meetings(["f1", "f2"])

        assert "error" in results["f1"]
        assert results["f2"].event.id == "evt-1"

    def test_find_recurring_meeting_by_series(self, bridge, calendar) -> None:
        _set_events(calendar, [
            _event("single"),
            _event("instance", summary="Other", recurringEventId="series-1"),
        ])

        event = bridge.find_recurring_meeting(FILE_ID, series_id="series-1")

        assert event.id == "instance"

    def test_find_recurring_meeting_by_pattern(self, bridge, calendar) -> None:
        _set_events(calendar, [
            _event("yesterday", start="2025-06-01T10:00:00Z", end="2025-06-01T11:00:00Z",
                   recurringEventId="series-1"),
            _event("today", recurringEventId="series-1"),
        ])

        assert bridge.find_recurring_meeting(FILE_ID).id == "today"


class TestCredentials:
    def test_missing_credentials(self) -> None:
        with pytest.raises(ConfigurationError, match="required"):
            GoogleDriveCalendarBridgeAdapter()

    def test_invalid_inline_json(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid service account JSON"):
            GoogleDriveCalendarBridgeAdapter("{not json")

    def test_missing_key_file(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            GoogleDriveCalendarBridgeAdapter(str(tmp_path / "missing.json"))


def test_implements_calendar_bridge_port(bridge) -> None:
    from ports.calendar_bridge import CalendarBridgePort

    assert isinstance(bridge, CalendarBridgePort)
