"""
Transcript processor — orchestrates the per-file meeting pipeline.

Flow:  file id → calendar bridge (meeting + participants)
             → Slack / Notion identity lookups (concurrently when enabled)
             → Slack mentions → ProcessingResult + run statistics.

Depends only on ports (protocol interfaces). Default adapters are built
lazily from ProcessorConfig credentials when a collaborator is not injected.
"""

from __future__ import annotations

import functools
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Union

from domain.models import (
    ActionItem,
    DirectoryUser,
    MeetingInfo,
    ProcessingResult,
    ProcessingStatus,
    ProcessorConfig,
    StatisticsSnapshot,
    UserMappings,
)
from ports.calendar_bridge import CalendarBridgePort
from ports.identity_directory import IdentityDirectoryPort, TaskAssigneeUpdaterPort
from ports.metrics_publisher import MetricsPublisherPort
from services.processing_statistics import ProcessingStatistics
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import ProcessorClosedError
from shared_utils.logging_utils import get_scoped_logger

logger = get_scoped_logger(LogScope.PROCESSOR)

# Marks worker threads running batch items accepted before cleanup()
_batch_context = threading.local()


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def build_slack_mentions(
    participants: Sequence[str], slack_users: Mapping[str, DirectoryUser]
) -> List[str]:
    """Mention tokens in participant order; unmatched participants are skipped."""
    return [
        f"<@{slack_users[email].id}>"
        for email in participants
        if email in slack_users and slack_users[email].id
    ]


def assign_action_owners(
    actions: Sequence[Union[ActionItem, Mapping[str, Any]]],
    user_mappings: Union[UserMappings, Mapping[str, Any]],
) -> List[ActionItem]:
    """Annotate actions whose assignee resolves in the Notion directory.

    Returns new ActionItem copies in the original order. Neither the actions
    nor the mappings passed in are modified.
    """
    if not isinstance(user_mappings, UserMappings):
        user_mappings = UserMappings.model_validate(dict(user_mappings))
    notion_users = user_mappings.notion

    updated: List[ActionItem] = []
    for action in actions:
        if isinstance(action, ActionItem):
            item = action.model_copy(deep=True)
        else:
            item = ActionItem.model_validate(dict(action))

        notion_user = notion_users.get(item.assignee_email) if item.assignee_email else None
        if notion_user is not None:
            item.notion_user_id = notion_user.id
            item.auto_assigned = True
        updated.append(item)
    return updated


# ---------------------------------------------------------------------------
# TranscriptProcessor
# ---------------------------------------------------------------------------

class TranscriptProcessor:
    """Correlates transcripts with meetings and maps participants to users.

    Collaborators are fixed at construction. A disabled feature leaves its
    collaborator as ``None`` so callers can see which subsystems are active.
    """

    def __init__(
        self,
        config: Optional[ProcessorConfig] = None,
        *,
        calendar_bridge: Optional[CalendarBridgePort] = None,
        slack_directory: Optional[IdentityDirectoryPort] = None,
        notion_directory: Optional[IdentityDirectoryPort] = None,
        metrics_publisher: Optional[MetricsPublisherPort] = None,
    ) -> None:
        self.config = config or ProcessorConfig()

        self.calendar_bridge: Optional[CalendarBridgePort] = None
        self.slack_directory: Optional[IdentityDirectoryPort] = None
        self.notion_directory: Optional[IdentityDirectoryPort] = None
        self.metrics_publisher = metrics_publisher

        if self.config.google_calendar_enabled:
            self.calendar_bridge = calendar_bridge or self._default_calendar_bridge()

        if self.config.user_mapping_enabled:
            self.slack_directory = slack_directory or self._default_slack_directory()
            self.notion_directory = notion_directory or self._default_notion_directory()

        self._statistics = ProcessingStatistics()

        self._batch_executor: Optional[ThreadPoolExecutor] = None
        self._lookup_executor: Optional[ThreadPoolExecutor] = None
        if self.config.parallel_processing:
            # Separate pools: batch workers block on lookups, so lookups must
            # never queue behind them.
            self._batch_executor = ThreadPoolExecutor(
                max_workers=self.config.max_workers,
                thread_name_prefix="transcript",
            )
            self._lookup_executor = ThreadPoolExecutor(
                max_workers=self.config.max_workers * 2,
                thread_name_prefix="directory",
            )

        self._state_lock = threading.Lock()
        self._pending: Set[Future] = set()
        self._closed = False

        logger.info(
            "processor_initialized",
            calendar=self.calendar_bridge is not None,
            user_mapping=self.slack_directory is not None,
            parallel=self.config.parallel_processing,
            max_workers=self.config.max_workers,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def process_transcript(self, file_id: str) -> ProcessingResult:
        """Run the pipeline for one transcript file.

        Never raises: every failure is reported through ``status`` and
        ``errors`` of the returned result. A missing meeting is recorded as
        an error but still completes.
        """
        started = time.perf_counter()
        result = ProcessingResult(file_id=file_id, status=ProcessingStatus.IN_PROGRESS)
        logger.info("transcript_processing_started", file_id=file_id)

        try:
            if self._closed and not getattr(_batch_context, "active", False):
                raise ProcessorClosedError()

            meeting = self._locate_meeting(file_id)
            if meeting is None:
                result.errors.append(f"Meeting not found for file ID: {file_id}")
            else:
                result.meeting = meeting
                result.participants = list(meeting.participant_emails)

            if self.config.user_mapping_enabled and result.participants:
                result.user_mappings = self.map_participants_to_users(result.participants)
                self._record_mapping_metrics(result)

            result.status = ProcessingStatus.COMPLETED

        except Exception as exc:
            result.status = ProcessingStatus.FAILED
            result.errors.append(str(exc) or type(exc).__name__)
            logger.error(
                "transcript_processing_failed",
                file_id=file_id,
                error_type=type(exc).__name__,
                error=str(exc),
                exc_info=True,
            )

        finally:
            duration = time.perf_counter() - started
            result.processing_time = duration
            self._statistics.record(result.status, duration)

        logger.info(
            "transcript_processed",
            file_id=file_id,
            status=result.status.value,
            participants=len(result.participants),
            slack_matched=len(result.user_mappings.slack),
            notion_matched=len(result.user_mappings.notion),
            errors=len(result.errors),
            duration_ms=round(duration * 1000, 1),
        )
        return result

    def batch_process_transcripts(self, file_ids: Sequence[str]) -> Dict[str, ProcessingResult]:
        """Process many files; one file's failure never affects the others.

        Duplicate ids are processed once (first occurrence wins).

        Raises:
            ProcessorClosedError: If ``cleanup()`` has already been called.
        """
        if self._closed:
            raise ProcessorClosedError()

        unique_ids = list(dict.fromkeys(file_ids))
        if len(unique_ids) != len(file_ids):
            logger.warning(
                "duplicate_file_ids",
                requested=len(file_ids),
                unique=len(unique_ids),
            )

        logger.info(
            "batch_started",
            files=len(unique_ids),
            parallel=self._batch_executor is not None,
        )

        results: Dict[str, ProcessingResult] = {}
        if self._batch_executor is None:
            for file_id in unique_ids:
                results[file_id] = self._run_isolated(
                    functools.partial(self.process_transcript, file_id), file_id
                )
        else:
            with self._state_lock:
                if self._closed:
                    raise ProcessorClosedError()
                futures = {
                    file_id: self._batch_executor.submit(self._batch_task, file_id)
                    for file_id in unique_ids
                }
                self._pending.update(futures.values())
            for future in futures.values():
                future.add_done_callback(self._forget)
            for file_id, future in futures.items():
                results[file_id] = self._run_isolated(future.result, file_id)

        logger.info(
            "batch_completed",
            files=len(results),
            failed=sum(
                1 for r in results.values()
                if getattr(r, "status", None) == ProcessingStatus.FAILED
            ),
        )
        return results

    def map_participants_to_users(self, participants: Sequence[str]) -> UserMappings:
        """Resolve participants in Slack and Notion; joins both before returning."""
        emails = tuple(participants)
        if self.slack_directory is None or self.notion_directory is None:
            return UserMappings()

        if self._lookup_executor is not None:
            slack_future = self._submit(self._lookup_executor, self.slack_directory.batch_lookup, emails)
            notion_future = self._submit(self._lookup_executor, self.notion_directory.batch_lookup, emails)
            wait([slack_future, notion_future])
            slack_users = slack_future.result() or {}
            notion_users = notion_future.result() or {}
        else:
            slack_users = self.slack_directory.batch_lookup(emails) or {}
            notion_users = self.notion_directory.batch_lookup(emails) or {}

        return UserMappings(
            slack=dict(slack_users),
            notion=dict(notion_users),
            slack_mentions=build_slack_mentions(emails, slack_users),
        )

    def assign_action_owners(
        self,
        actions: Sequence[Union[ActionItem, Mapping[str, Any]]],
        user_mappings: Union[UserMappings, Mapping[str, Any]],
    ) -> List[ActionItem]:
        """See :func:`assign_action_owners`."""
        return assign_action_owners(actions, user_mappings)

    def update_notion_task_assignees(self, assignments: Mapping[str, str]) -> Dict[str, Dict[str, Any]]:
        """Write auto-assigned owners back to Notion task pages (page_id -> email)."""
        if not isinstance(self.notion_directory, TaskAssigneeUpdaterPort):
            return {}
        return self.notion_directory.batch_update_task_assignees(assignments)

    def get_statistics(self) -> StatisticsSnapshot:
        return self._statistics.snapshot()

    def publish_metrics(self) -> StatisticsSnapshot:
        """Send the current statistics to the metrics sink, if any."""
        snapshot = self.get_statistics()
        if self.metrics_publisher is None:
            logger.info("metrics_snapshot", **snapshot.model_dump())
        else:
            self.metrics_publisher.publish_statistics(snapshot)
        return snapshot

    def cleanup(self, timeout: float = Defaults.SHUTDOWN_TIMEOUT) -> None:
        """Stop accepting work, drain outstanding tasks, then shut the pools down.

        Waits at most ``timeout`` seconds; anything still queued afterwards
        is cancelled. Safe to call more than once.
        """
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            pending = list(self._pending)

        if pending:
            _, not_done = wait(pending, timeout=timeout)
            if not_done:
                logger.warning("cleanup_timeout", outstanding=len(not_done), timeout=timeout)

        for executor in (self._batch_executor, self._lookup_executor):
            if executor is not None:
                executor.shutdown(wait=False, cancel_futures=True)

        logger.info("processor_cleaned_up", **self.get_statistics().model_dump())

    def __enter__(self) -> "TranscriptProcessor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cleanup()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _locate_meeting(self, file_id: str) -> Optional[MeetingInfo]:
        if self.calendar_bridge is None:
            return None
        return self.calendar_bridge.find_meeting_with_participants(file_id)

    def _batch_task(self, file_id: str) -> ProcessingResult:
        _batch_context.active = True
        try:
            return self.process_transcript(file_id)
        finally:
            _batch_context.active = False

    def _submit(self, executor: ThreadPoolExecutor, fn: Callable, *args: Any) -> Future:
        with self._state_lock:
            if self._closed and not getattr(_batch_context, "active", False):
                raise ProcessorClosedError()
            future = executor.submit(fn, *args)
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._state_lock:
            self._pending.discard(future)

    @staticmethod
    def _run_isolated(call: Callable[[], ProcessingResult], file_id: str) -> ProcessingResult:
        try:
            return call()
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.error("batch_item_crashed", file_id=file_id, error=message)
            return ProcessingResult(
                file_id=file_id,
                status=ProcessingStatus.FAILED,
                errors=[message],
            )

    def _record_mapping_metrics(self, result: ProcessingResult) -> None:
        if self.metrics_publisher is None:
            return
        self.metrics_publisher.record_participant_mapping(
            total_participants=len(result.participants),
            mapped_slack=len(result.user_mappings.slack),
            mapped_notion=len(result.user_mappings.notion),
        )

    # ------------------------------------------------------------------
    # Default collaborators
    # ------------------------------------------------------------------

    def _default_calendar_bridge(self) -> CalendarBridgePort:
        from adapters.google_calendar_bridge import GoogleDriveCalendarBridgeAdapter

        return GoogleDriveCalendarBridgeAdapter(_secret(self.config.google_service_account_json))

    def _default_slack_directory(self) -> IdentityDirectoryPort:
        from adapters.slack_directory import SlackDirectoryAdapter

        return SlackDirectoryAdapter(_secret(self.config.slack_bot_token))

    def _default_notion_directory(self) -> IdentityDirectoryPort:
        from adapters.notion_directory import NotionDirectoryAdapter

        return NotionDirectoryAdapter(_secret(self.config.notion_api_key))


def _secret(value) -> Optional[str]:
    return value.get_secret_value() if value is not None else None
