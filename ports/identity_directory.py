"""
Port interface for resolving participant emails to directory identities.

Implementations: SlackDirectoryAdapter, NotionDirectoryAdapter (adapters/)
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Protocol, Sequence, runtime_checkable

from domain.models import DirectoryUser


@runtime_checkable
class IdentityDirectoryPort(Protocol):
    """Abstract interface for one identity directory (Slack, Notion, ...)."""

    def batch_lookup(self, emails: Sequence[str]) -> Dict[str, DirectoryUser]:
        """Resolve many emails at once.

        Safe to call with an empty sequence. Emails without a verified match
        are omitted from the result rather than raising.

        Args:
            emails: Participant emails, in any order.

        Returns:
            Mapping of input email (original spelling) to matched user.

        Raises:
            ExternalServiceError: On authentication or transport failure
                affecting the whole directory.
        """
        ...


@runtime_checkable
class TaskAssigneeUpdaterPort(Protocol):
    """Directories that can also write task ownership back (Notion)."""

    def batch_update_task_assignees(
        self, assignments: Mapping[str, str]
    ) -> Dict[str, Dict[str, Any]]:
        """Assign each task page to the user behind an email.

        Args:
            assignments: page_id -> assignee email.

        Returns:
            page_id -> {"success": bool, "email" | "error": str}.
        """
        ...
