"""
Pure domain models for the meeting transcript processor.

These models contain NO Google / Slack / Notion / AWS dependencies. They
represent core business concepts that flow through ports and services.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr


# ---------------------------------------------------------------------------
# Calendar / Drive
# ---------------------------------------------------------------------------


class FileInfo(BaseModel):
    """Drive metadata of a transcript file."""

    id: str
    name: str
    created_time: datetime
    mime_type: Optional[str] = None


class MeetingEvent(BaseModel):
    """Calendar event a transcript was recorded from."""

    id: str
    title: str = ""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    organizer_email: Optional[str] = None
    attendee_emails: List[str] = []
    location: Optional[str] = None
    description: Optional[str] = None
    recurring_series_id: Optional[str] = None

    @property
    def is_recurring(self) -> bool:
        return self.recurring_series_id is not None

    @property
    def attendees_count(self) -> int:
        return len(self.attendee_emails)


def collect_participants(
    organizer_email: Optional[str], attendee_emails: Iterable[str]
) -> List[str]:
    """Union of organizer and attendees in discovery order.

    Duplicates are detected case-insensitively; the first spelling wins.
    """
    seen = set()
    participants: List[str] = []
    candidates = [organizer_email] if organizer_email else []
    candidates.extend(attendee_emails)
    for email in candidates:
        if not email:
            continue
        key = email.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        participants.append(email.strip())
    return participants


class MeetingInfo(BaseModel):
    """A transcript file correlated with its calendar event.

    Produced once per run by the calendar bridge and never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True)

    event: MeetingEvent
    participant_emails: List[str] = []
    file_info: FileInfo

    @classmethod
    def build(cls, event: MeetingEvent, file_info: FileInfo) -> "MeetingInfo":
        return cls(
            event=event,
            participant_emails=collect_participants(
                event.organizer_email, event.attendee_emails
            ),
            file_info=file_info,
        )


# ---------------------------------------------------------------------------
# Identity directories
# ---------------------------------------------------------------------------


class DirectoryUser(BaseModel):
    """A verified match of an email in one identity directory."""

    id: str
    display_name: str = ""
    email: Optional[str] = None


# email -> matched user. Unmatched emails are absent, never placeholders.
UserMapping = Dict[str, DirectoryUser]


class UserMappings(BaseModel):
    """Per-run identity resolution across Slack and Notion."""

    slack: Dict[str, DirectoryUser] = {}
    notion: Dict[str, DirectoryUser] = {}
    slack_mentions: List[str] = []


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------


class ProcessingStatus(str, Enum):
    """Transcript processing lifecycle."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class ProcessingResult(BaseModel):
    """Outcome of one ``process_transcript`` call.

    ``status`` and ``errors`` are the only failure signal; callers never
    receive an exception.
    """

    file_id: str
    status: ProcessingStatus = ProcessingStatus.QUEUED
    meeting: Optional[MeetingInfo] = None
    participants: List[str] = []
    user_mappings: UserMappings = Field(default_factory=UserMappings)
    errors: List[str] = []
    processing_time: float = 0.0  # seconds


class ActionItem(BaseModel):
    """A task extracted by the summarizer, eligible for owner auto-assignment.

    Summarizer output may carry extra keys (priority, deadline, ...); they are
    preserved untouched.
    """

    model_config = ConfigDict(extra="allow")

    task: str
    assignee_email: Optional[str] = None
    notion_user_id: Optional[str] = None
    auto_assigned: bool = False


class StatisticsSnapshot(BaseModel):
    """Read-only view of a processor's run statistics."""

    total_processed: int = 0
    successful: int = 0
    failed: int = 0
    success_rate: float = 0.0  # percent
    average_processing_time: float = 0.0  # seconds


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ProcessorConfig(BaseModel):
    """Construction-time options of a TranscriptProcessor."""

    google_calendar_enabled: bool = False
    user_mapping_enabled: bool = False
    parallel_processing: bool = True
    max_workers: int = Field(default=10, ge=1)
    google_service_account_json: Optional[SecretStr] = None
    slack_bot_token: Optional[SecretStr] = None
    notion_api_key: Optional[SecretStr] = None
