"""
Google Drive + Calendar bridge adapter.

Implements CalendarBridgePort: looks up a transcript's Drive metadata, then
searches the calendar around the file's creation time for the event that
produced it.
"""

from __future__ import annotations

import json
import os
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from domain.models import FileInfo, MeetingEvent, MeetingInfo
from ports.calendar_bridge import CalendarBridgePort  # noqa: F401 (runtime_checkable)
from shared_utils.constants import Defaults, ExternalAPI, LogScope
from shared_utils.error_handler import ConfigurationError, ExternalServiceError
from shared_utils.logging_utils import get_scoped_logger, log_execution


logger = get_scoped_logger(LogScope.CALENDAR)

_FILE_FIELDS = "id,name,createdTime,mimeType"
# "2025年1月15日_" or "2025-01-15_" style prefixes added by the recorder
_DATE_PREFIX = re.compile(r"^(\d{4}年\d{1,2}月\d{1,2}日|\d{4}-\d{2}-\d{2})[_\s]")
_EXTENSION = re.compile(r"\.\w+$")


# ---------------------------------------------------------------------------
# Matching helpers (pure functions)
# ---------------------------------------------------------------------------

def _parse_time(value: Optional[str]) -> Optional[datetime]:
    """Parse RFC 3339 timestamps and all-day dates into aware datetimes."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _event_time(raw: Optional[Dict[str, Any]]) -> Optional[datetime]:
    if not raw:
        return None
    return _parse_time(raw.get("dateTime") or raw.get("date"))


def extract_meeting_title(file_name: str) -> str:
    """Strip the date prefix and extension the recorder adds to file names.

    >>> extract_meeting_title("2025年1月15日_新機能リリース進捗確認ミーティング.txt")
    '新機能リリース進捗確認ミーティング'
    """
    cleaned = _DATE_PREFIX.sub("", file_name)
    return _EXTENSION.sub("", cleaned)


def fuzzy_match(a: Optional[str], b: Optional[str]) -> bool:
    """Whitespace/case-insensitive containment in either direction."""
    if not a or not b:
        return False
    norm_a = re.sub(r"\s+", "", a.lower())
    norm_b = re.sub(r"\s+", "", b.lower())
    return norm_a in norm_b or norm_b in norm_a


def _find_by_attachment_id(events: List[Dict[str, Any]], file_id: str) -> Optional[Dict[str, Any]]:
    for event in events:
        if any(att.get("fileId") == file_id for att in event.get("attachments") or []):
            return event
    return None


def _find_by_attachment_url(events: List[Dict[str, Any]], file_id: str) -> Optional[Dict[str, Any]]:
    for event in events:
        for att in event.get("attachments") or []:
            if file_id in (att.get("fileUrl") or "") or file_id in (att.get("iconLink") or ""):
                return event
    return None


def _effective_end(event: Dict[str, Any]) -> Optional[datetime]:
    start = _event_time(event.get("start"))
    end = _event_time(event.get("end"))
    if end is None and start is not None:
        end = start + timedelta(hours=1)
    return end


def _find_by_time_and_name(
    events: List[Dict[str, Any]], file_created: datetime, file_name: str
) -> Optional[Dict[str, Any]]:
    title = extract_meeting_title(file_name)
    grace = timedelta(hours=Defaults.RECORDING_GRACE_HOURS)

    candidates = []
    for event in events:
        start_raw = (event.get("start") or {}).get("dateTime")
        if not start_raw:
            continue
        start = _parse_time(start_raw)
        end = _effective_end(event)
        if not (start <= file_created <= end + grace):
            continue
        if not fuzzy_match(event.get("summary"), title):
            continue
        candidates.append((abs((file_created - end).total_seconds()), event))

    if not candidates:
        return None
    return min(candidates, key=lambda pair: pair[0])[1]


def _find_by_recurring_pattern(
    events: List[Dict[str, Any]], file_created: datetime, file_name: str
) -> Optional[Dict[str, Any]]:
    title = extract_meeting_title(file_name)
    candidates = []
    for event in events:
        if not event.get("recurringEventId") or not fuzzy_match(event.get("summary"), title):
            continue
        start = _event_time(event.get("start"))
        if start is None:
            continue
        candidates.append((abs((file_created - start).total_seconds()), event))

    if not candidates:
        return None
    return min(candidates, key=lambda pair: pair[0])[1]


def to_meeting_event(event: Dict[str, Any]) -> MeetingEvent:
    """Convert a Calendar API event resource into a domain MeetingEvent.

    Resource attendees (meeting rooms, equipment) are not participants.
    """
    attendees = [
        a["email"]
        for a in event.get("attendees") or []
        if a.get("email") and not a.get("resource")
    ]
    return MeetingEvent(
        id=event["id"],
        title=event.get("summary") or "",
        start=_event_time(event.get("start")),
        end=_event_time(event.get("end")),
        organizer_email=(event.get("organizer") or {}).get("email"),
        attendee_emails=attendees,
        location=event.get("location"),
        description=event.get("description"),
        recurring_series_id=event.get("recurringEventId"),
    )


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

class GoogleDriveCalendarBridgeAdapter:
    """Google Workspace implementation of CalendarBridgePort.

    Match order: attachment fileId, attachment URL, then time window plus
    fuzzy title match.
    """

    def __init__(
        self,
        service_account_json: Optional[str] = None,
        calendar_id: str = "primary",
        drive_service: Optional[Any] = None,
        calendar_service: Optional[Any] = None,
    ) -> None:
        self._calendar_id = calendar_id
        if drive_service is None or calendar_service is None:
            credentials = self._load_credentials(service_account_json)
            drive_service = drive_service or build(
                "drive", "v3", credentials=credentials, cache_discovery=False
            )
            calendar_service = calendar_service or build(
                "calendar", "v3", credentials=credentials, cache_discovery=False
            )
        self._drive = drive_service
        self._calendar = calendar_service

    # ------------------------------------------------------------------
    # CalendarBridgePort implementation
    # ------------------------------------------------------------------

    @log_execution(scope=LogScope.CALENDAR)
    def find_meeting_with_participants(self, file_id: str) -> Optional[MeetingInfo]:
        """Find the meeting a transcript was recorded in, with participants."""
        file_info = self.get_file_info(file_id)
        if file_info is None:
            return None

        event = self._find_meeting_by_file_creation(file_id, file_info)
        if event is None:
            logger.info("meeting_not_matched", file_id=file_id, file_name=file_info.name)
            return None

        meeting = MeetingInfo.build(to_meeting_event(event), file_info)
        logger.info(
            "meeting_matched",
            file_id=file_id,
            event_id=meeting.event.id,
            participants=len(meeting.participant_emails),
        )
        return meeting

    # ------------------------------------------------------------------
    # Extended lookups
    # ------------------------------------------------------------------

    def batch_find_meetings(
        self, file_ids: List[str]
    ) -> Dict[str, Union[MeetingInfo, None, Dict[str, str]]]:
        """Locate meetings for many files; one failure does not stop the rest."""
        results: Dict[str, Union[MeetingInfo, None, Dict[str, str]]] = {}
        for file_id in file_ids:
            try:
                results[file_id] = self.find_meeting_with_participants(file_id)
            except ExternalServiceError as exc:
                results[file_id] = {"error": exc.message}
        return results

    def find_recurring_meeting(
        self, file_id: str, series_id: Optional[str] = None
    ) -> Optional[MeetingEvent]:
        """Wider (±48h) search that also understands recurring series."""
        file_info = self.get_file_info(file_id)
        if file_info is None:
            return None

        events = self._list_events_around(
            file_info.created_time, Defaults.RECURRING_SEARCH_WINDOW_HOURS
        )

        if series_id:
            for event in events:
                if event.get("recurringEventId") == series_id:
                    return to_meeting_event(event)

        event = (
            _find_by_attachment_id(events, file_id)
            or _find_by_attachment_url(events, file_id)
            or _find_by_recurring_pattern(events, file_info.created_time, file_info.name)
        )
        return to_meeting_event(event) if event else None

    # ------------------------------------------------------------------
    # Google API access
    # ------------------------------------------------------------------

    def get_file_info(self, file_id: str) -> Optional[FileInfo]:
        """Fetch Drive metadata; a missing/unreadable file is not an error."""
        try:
            raw = (
                self._drive.files()
                .get(fileId=file_id, fields=_FILE_FIELDS, supportsAllDrives=True)
                .execute(num_retries=Defaults.MAX_RETRIES)
            )
        except HttpError as exc:
            logger.warning("drive_file_lookup_failed", file_id=file_id, error=str(exc))
            return None

        return FileInfo(
            id=raw["id"],
            name=raw.get("name", ""),
            created_time=_parse_time(raw["createdTime"]),
            mime_type=raw.get("mimeType"),
        )

    def list_events(self, time_min: datetime, time_max: datetime) -> List[Dict[str, Any]]:
        """List single events in a window, following pagination."""
        events: List[Dict[str, Any]] = []
        page_token: Optional[str] = None
        try:
            while True:
                response = (
                    self._calendar.events()
                    .list(
                        calendarId=self._calendar_id,
                        timeMin=time_min.isoformat(),
                        timeMax=time_max.isoformat(),
                        singleEvents=True,
                        orderBy="startTime",
                        maxResults=Defaults.CALENDAR_PAGE_SIZE,
                        pageToken=page_token,
                    )
                    .execute(num_retries=Defaults.MAX_RETRIES)
                )
                events.extend(response.get("items", []))
                page_token = response.get("nextPageToken")
                if not page_token:
                    break
        except HttpError as exc:
            logger.error("calendar_list_events_failed", error=str(exc))
            raise ExternalServiceError(
                "Google Calendar", f"Failed to list events: {exc}"
            ) from exc

        logger.debug("calendar_events_listed", count=len(events))
        return events

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _list_events_around(self, moment: datetime, hours: int) -> List[Dict[str, Any]]:
        window = timedelta(hours=hours)
        return self.list_events(moment - window, moment + window)

    def _find_meeting_by_file_creation(
        self, file_id: str, file_info: FileInfo
    ) -> Optional[Dict[str, Any]]:
        events = self._list_events_around(
            file_info.created_time, Defaults.CALENDAR_SEARCH_WINDOW_HOURS
        )
        return (
            _find_by_attachment_id(events, file_id)
            or _find_by_attachment_url(events, file_id)
            or _find_by_time_and_name(events, file_info.created_time, file_info.name)
        )

    @staticmethod
    def _load_credentials(service_account_json: Optional[str]) -> service_account.Credentials:
        """Accept either inline JSON or a path to a key file."""
        if not service_account_json:
            raise ConfigurationError("Google service account JSON is required")

        scopes = [ExternalAPI.GOOGLE_DRIVE_SCOPE, ExternalAPI.GOOGLE_CALENDAR_SCOPE]
        if service_account_json.lstrip().startswith("{"):
            try:
                info = json.loads(service_account_json)
            except json.JSONDecodeError as exc:
                raise ConfigurationError(f"Invalid service account JSON: {exc}") from exc
            return service_account.Credentials.from_service_account_info(info, scopes=scopes)

        if not os.path.exists(service_account_json):
            raise ConfigurationError(
                "Service account key file not found",
                context={"path": service_account_json},
            )
        return service_account.Credentials.from_service_account_file(
            service_account_json, scopes=scopes
        )
