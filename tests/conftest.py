"""
Root conftest.py — shared fixtures for the entire test suite.

Guidelines:
    • No __init__.py in test sub-directories (avoids shadowing root packages).
    • pytest.ini_options lives in pyproject.toml with pythonpath=["."].
    • Markers: integration.
"""

from datetime import datetime, timezone
from typing import Dict
from unittest.mock import MagicMock

import pytest

from domain.models import (
    DirectoryUser,
    FileInfo,
    MeetingEvent,
    MeetingInfo,
    ProcessorConfig,
)


# ---------------------------------------------------------------------------
# Marker registration
# ---------------------------------------------------------------------------

def pytest_configure(config):
    config.addinivalue_line("markers", "integration: mark test as integration test")


# ---------------------------------------------------------------------------
# Settings kwargs for Settings(**BASE_SETTINGS_KWARGS)
# ---------------------------------------------------------------------------

BASE_SETTINGS_KWARGS: Dict[str, object] = {
    "environment": "development",
    "aws_region": "ap-northeast-1",
    "google_calendar_enabled": False,
    "user_mapping_enabled": False,
    "metrics_enabled": False,
}


@pytest.fixture()
def base_settings_kwargs() -> Dict[str, object]:
    """Provide explicit kwargs so a stray .env never leaks into tests."""
    return {**BASE_SETTINGS_KWARGS}


# ---------------------------------------------------------------------------
# Domain object factories
# ---------------------------------------------------------------------------

PARTICIPANTS = ["alice@example.com", "bob@example.com", "carol@example.com"]


@pytest.fixture()
def sample_meeting_info() -> MeetingInfo:
    """A weekly sync recorded by alice with bob and carol attending."""
    event = MeetingEvent(
        id="evt-1",
        title="Weekly Sync",
        start=datetime(2025, 6, 2, 10, 0, tzinfo=timezone.utc),
        end=datetime(2025, 6, 2, 11, 0, tzinfo=timezone.utc),
        organizer_email="alice@example.com",
        attendee_emails=["bob@example.com", "carol@example.com"],
    )
    file_info = FileInfo(
        id="file-1",
        name="2025-06-02_Weekly Sync.txt",
        created_time=datetime(2025, 6, 2, 11, 5, tzinfo=timezone.utc),
        mime_type="text/plain",
    )
    return MeetingInfo.build(event, file_info)


@pytest.fixture()
def slack_users() -> Dict[str, DirectoryUser]:
    return {
        "alice@example.com": DirectoryUser(id="U1", display_name="Alice", email="alice@example.com"),
        "bob@example.com": DirectoryUser(id="U2", display_name="Bob", email="bob@example.com"),
    }


@pytest.fixture()
def notion_users() -> Dict[str, DirectoryUser]:
    return {
        "alice@example.com": DirectoryUser(id="N1", display_name="Alice", email="alice@example.com"),
        "carol@example.com": DirectoryUser(id="N3", display_name="Carol", email="carol@example.com"),
    }


# ---------------------------------------------------------------------------
# Mock collaborator factories
# ---------------------------------------------------------------------------

@pytest.fixture()
def mock_calendar_bridge(sample_meeting_info) -> MagicMock:
    """Calendar bridge mock that finds the sample meeting for any file."""
    mock = MagicMock()
    mock.find_meeting_with_participants.return_value = sample_meeting_info
    return mock


@pytest.fixture()
def mock_slack_directory(slack_users) -> MagicMock:
    mock = MagicMock()
    mock.batch_lookup.side_effect = lambda emails: {
        e: slack_users[e] for e in emails if e in slack_users
    }
    return mock


@pytest.fixture()
def mock_notion_directory(notion_users) -> MagicMock:
    mock = MagicMock()
    mock.batch_lookup.side_effect = lambda emails: {
        e: notion_users[e] for e in emails if e in notion_users
    }
    mock.batch_update_task_assignees.return_value = {}
    return mock


@pytest.fixture()
def mock_metrics_publisher() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def full_config() -> ProcessorConfig:
    """All features on, small pool."""
    return ProcessorConfig(
        google_calendar_enabled=True,
        user_mapping_enabled=True,
        parallel_processing=True,
        max_workers=4,
    )
