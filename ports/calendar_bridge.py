"""
Port interface for correlating transcript files with calendar events.

Implementations: GoogleDriveCalendarBridgeAdapter (adapters/)
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from domain.models import MeetingInfo


@runtime_checkable
class CalendarBridgePort(Protocol):
    """Abstract interface for locating the meeting behind a transcript."""

    def find_meeting_with_participants(self, file_id: str) -> Optional[MeetingInfo]:
        """Find the calendar event that produced a transcript file.

        Args:
            file_id: Drive file id of the transcript.

        Returns:
            MeetingInfo with participants if a matching event exists,
            None otherwise (a normal outcome, not an error).

        Raises:
            ExternalServiceError: On transport failure.
        """
        ...
