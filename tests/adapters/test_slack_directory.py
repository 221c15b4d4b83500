"""
Unit tests for SlackDirectoryAdapter and its rate limiter.

The requests session is a MagicMock; ``time.sleep`` is patched wherever a
retry or throttle would otherwise wait.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from adapters.slack_directory import SlackDirectoryAdapter, SlidingWindowRateLimiter
from shared_utils.error_handler import ConfigurationError, ExternalServiceError


def _response(body=None, status_code=200, headers=None) -> MagicMock:
    response = MagicMock(status_code=status_code, headers=headers or {})
    response.json.return_value = body or {}
    return response


def _user_body(user_id: str, **profile) -> dict:
    return {"ok": True, "user": {"id": user_id, "name": f"name-{user_id}", "profile": profile}}


@pytest.fixture()
def session() -> MagicMock:
    mock = MagicMock()
    mock.headers = {}
    return mock


@pytest.fixture()
def adapter(session) -> SlackDirectoryAdapter:
    return SlackDirectoryAdapter("xoxb-test", session=session)


class TestConstruction:
    def test_requires_token(self) -> None:
        with pytest.raises(ConfigurationError, match="Slack bot token"):
            SlackDirectoryAdapter("")

    def test_sets_bearer_header(self, session) -> None:
        SlackDirectoryAdapter("xoxb-test", session=session)
        assert session.headers["Authorization"] == "Bearer xoxb-test"


class TestLookup:
    def test_found(self, adapter, session) -> None:
        session.get.return_value = _response(_user_body("U1", display_name="Alice"))

        user = adapter.lookup_user_by_email("alice@example.com")

        assert user.id == "U1"
        assert user.display_name == "Alice"
        assert user.email == "alice@example.com"
        assert session.get.call_args.kwargs["params"] == {"email": "alice@example.com"}

    def test_display_name_falls_back_to_name(self, adapter, session) -> None:
        session.get.return_value = _response(_user_body("U1"))
        assert adapter.lookup_user_by_email("a@example.com").display_name == "name-U1"

    def test_results_are_cached(self, adapter, session) -> None:
        session.get.return_value = _response(_user_body("U1"))

        adapter.lookup_user_by_email("a@example.com")
        adapter.lookup_user_by_email("a@example.com")

        assert session.get.call_count == 1

    def test_clear_cache(self, adapter, session) -> None:
        session.get.return_value = _response(_user_body("U1"))
        adapter.lookup_user_by_email("a@example.com")
        adapter.clear_cache()
        adapter.lookup_user_by_email("a@example.com")
        assert session.get.call_count == 2

    def test_user_not_found(self, adapter, session) -> None:
        session.get.return_value = _response({"ok": False, "error": "users_not_found"})
        assert adapter.lookup_user_by_email("nobody@example.com") is None

    def test_misses_are_not_cached(self, adapter, session) -> None:
        session.get.return_value = _response({"ok": False, "error": "users_not_found"})
        adapter.lookup_user_by_email("nobody@example.com")
        adapter.lookup_user_by_email("nobody@example.com")
        assert session.get.call_count == 2

    def test_auth_failure_raises(self, adapter, session) -> None:
        session.get.return_value = _response({"ok": False, "error": "invalid_auth"})
        with pytest.raises(ExternalServiceError, match="authentication failed"):
            adapter.lookup_user_by_email("a@example.com")

    def test_empty_email(self, adapter, session) -> None:
        assert adapter.lookup_user_by_email("") is None
        session.get.assert_not_called()


class TestRetries:
    @patch("time.sleep")
    def test_rate_limited_then_success(self, _sleep, adapter, session) -> None:
        session.get.side_effect = [
            _response(status_code=429, headers={"Retry-After": "1"}),
            _response(_user_body("U1")),
        ]

        assert adapter.lookup_user_by_email("a@example.com").id == "U1"
        assert session.get.call_count == 2

    @patch("time.sleep")
    def test_rate_limited_body_exhausts_retries(self, _sleep, adapter, session) -> None:
        session.get.return_value = _response({"ok": False, "error": "rate_limited"})

        assert adapter.lookup_user_by_email("a@example.com") is None
        assert session.get.call_count == 3

    @patch("time.sleep")
    def test_connection_error_returns_none(self, _sleep, adapter, session) -> None:
        session.get.side_effect = requests.ConnectionError("down")

        assert adapter.lookup_user_by_email("a@example.com") is None
        assert session.get.call_count == 3


class TestBatchAndMentions:
    def test_batch_lookup_omits_misses(self, adapter, session) -> None:
        session.get.side_effect = [
            _response(_user_body("U1")),
            _response({"ok": False, "error": "users_not_found"}),
        ]

        result = adapter.batch_lookup(["a@example.com", "b@example.com"])

        assert list(result) == ["a@example.com"]

    def test_batch_lookup_empty(self, adapter, session) -> None:
        assert adapter.batch_lookup([]) == {}
        session.get.assert_not_called()

    def test_generate_mention(self) -> None:
        assert SlackDirectoryAdapter.generate_mention("U1") == "<@U1>"
        assert SlackDirectoryAdapter.generate_mention(None) is None

    def test_generate_mentions_from_emails(self, adapter, session) -> None:
        session.get.side_effect = [
            _response(_user_body("U1")),
            _response({"ok": False, "error": "users_not_found"}),
            _response(_user_body("U3")),
        ]

        mentions = adapter.generate_mentions_from_emails(["a@x.com", "b@x.com", "c@x.com"])

        assert mentions == ["<@U1>", "<@U3>"]


class FakeClock:
    """Monotonic clock that only moves when someone sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestSlidingWindowRateLimiter:
    @pytest.fixture()
    def clock(self):
        fake = FakeClock()
        with patch("adapters.slack_directory.time", fake):
            yield fake

    def test_waits_when_window_full(self, clock) -> None:
        limiter = SlidingWindowRateLimiter(max_requests=2, window=60.0)

        limiter.throttle()
        limiter.throttle()
        assert clock.sleeps == []

        limiter.throttle()
        assert clock.sleeps == [60.0]

    def test_under_limit_never_waits(self, clock) -> None:
        limiter = SlidingWindowRateLimiter(max_requests=5, window=60.0)
        for _ in range(5):
            limiter.throttle()
        assert clock.sleeps == []

    def test_window_never_exceeds_limit(self, clock) -> None:
        limiter = SlidingWindowRateLimiter(max_requests=2, window=60.0)

        limiter.throttle()
        clock.now = 10.0
        limiter.throttle()
        clock.now = 20.0
        limiter.throttle()  # waits for the t=0 slot to expire
        limiter.throttle()  # the t=10 slot is still live

        assert clock.sleeps == [40.0, 10.0]
        assert clock.now == 70.0

def test_implements_identity_directory_port(adapter) -> None:
    from ports.identity_directory import IdentityDirectoryPort, TaskAssigneeUpdaterPort

    assert isinstance(adapter, IdentityDirectoryPort)
    assert not isinstance(adapter, TaskAssigneeUpdaterPort)
