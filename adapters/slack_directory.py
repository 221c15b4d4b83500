"""
Slack identity directory adapter.

Implements IdentityDirectoryPort on top of ``users.lookupByEmail`` with a
per-instance cache, a client-side rate limiter and tenacity retries for
HTTP 429 / transient network errors.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Sequence

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from domain.models import DirectoryUser
from ports.identity_directory import IdentityDirectoryPort  # noqa: F401 (runtime_checkable)
from shared_utils.constants import Defaults, ExternalAPI, LogScope
from shared_utils.error_handler import ConfigurationError, ExternalServiceError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.DIRECTORY)

# Errors that invalidate the whole directory rather than a single email
_AUTH_ERRORS = {"invalid_auth", "not_authed", "account_inactive_token", "token_revoked"}
# Expected per-email misses
_MISS_ERRORS = {"users_not_found", "account_inactive", "invalid_email"}


class SlackRateLimitedError(Exception):
    """Slack answered 429 / ``rate_limited``."""

    def __init__(self, retry_after: float):
        self.retry_after = retry_after
        super().__init__(f"rate limited, retry after {retry_after}s")


class SlidingWindowRateLimiter:
    """Blocks callers so that at most ``max_requests`` start per ``window`` seconds."""

    def __init__(self, max_requests: int = Defaults.SLACK_RATE_LIMIT_PER_MINUTE, window: float = 60.0):
        self._max_requests = max_requests
        self._window = window
        self._requests: Deque[float] = deque()
        self._lock = threading.Lock()

    def throttle(self) -> None:
        with self._lock:
            while True:
                now = time.monotonic()
                while self._requests and now - self._requests[0] >= self._window:
                    self._requests.popleft()
                if len(self._requests) < self._max_requests:
                    break
                wait = self._window - (now - self._requests[0])
                logger.info("slack_rate_limiter_waiting", seconds=round(wait, 2))
                time.sleep(wait)

            self._requests.append(now)


class SlackDirectoryAdapter:
    """Slack Web API implementation of IdentityDirectoryPort."""

    def __init__(
        self,
        bot_token: Optional[str],
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        base_url: str = ExternalAPI.SLACK_BASE_URL,
    ) -> None:
        if not bot_token:
            raise ConfigurationError("Slack bot token is required")
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._session.headers.update({"Authorization": f"Bearer {bot_token}"})
        self._rate_limiter = rate_limiter or SlidingWindowRateLimiter()
        self._cache: Dict[str, DirectoryUser] = {}
        self._cache_lock = threading.Lock()

    # ------------------------------------------------------------------
    # IdentityDirectoryPort implementation
    # ------------------------------------------------------------------

    def batch_lookup(self, emails: Sequence[str]) -> Dict[str, DirectoryUser]:
        """Resolve each email; misses are simply left out."""
        results: Dict[str, DirectoryUser] = {}
        for email in emails:
            user = self.lookup_user_by_email(email)
            if user is not None:
                results[email] = user

        logger.info("slack_batch_lookup", requested=len(emails), matched=len(results))
        return results

    # ------------------------------------------------------------------
    # Single lookups and mentions
    # ------------------------------------------------------------------

    def lookup_user_by_email(self, email: str) -> Optional[DirectoryUser]:
        """Look up one email. Raises only for directory-wide auth failures."""
        if not email:
            return None

        with self._cache_lock:
            cached = self._cache.get(email)
        if cached is not None:
            return cached

        try:
            data = self._call("users.lookupByEmail", {"email": email})
        except SlackRateLimitedError:
            logger.warning("slack_lookup_rate_limited", email=email)
            return None
        except requests.RequestException as exc:
            logger.warning("slack_lookup_transport_error", email=email, error=str(exc))
            return None

        if not data.get("ok"):
            self._handle_error(data.get("error", "unknown_error"), email)
            return None

        user = self._to_directory_user(data["user"], email)
        with self._cache_lock:
            self._cache[email] = user
        return user

    @staticmethod
    def generate_mention(user_id: Optional[str]) -> Optional[str]:
        """Slack mention syntax for a user id."""
        if not user_id:
            return None
        return f"<@{user_id}>"

    def generate_mentions_from_emails(self, emails: Sequence[str]) -> List[str]:
        mentions = []
        for email in emails:
            user = self.lookup_user_by_email(email)
            if user is not None:
                mentions.append(self.generate_mention(user.id))
        return mentions

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(Defaults.MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=1, max=30),
        retry=retry_if_exception_type(
            (SlackRateLimitedError, requests.ConnectionError, requests.Timeout)
        ),
        reraise=True,
    )
    def _call(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        self._rate_limiter.throttle()
        response = self._session.get(
            f"{self._base_url}/{method}",
            params=params,
            timeout=(ExternalAPI.HTTP_CONNECT_TIMEOUT, ExternalAPI.HTTP_READ_TIMEOUT),
        )

        if response.status_code == 429:
            retry_after = float(response.headers.get("Retry-After", 60))
            raise SlackRateLimitedError(retry_after)

        data = response.json()
        if data.get("error") == "rate_limited":
            raise SlackRateLimitedError(float(data.get("retry_after", 60)))
        return data

    @staticmethod
    def _handle_error(error: str, email: str) -> None:
        if error in _AUTH_ERRORS:
            logger.error("slack_auth_failed", error=error)
            raise ExternalServiceError("Slack", f"authentication failed ({error})")
        if error in _MISS_ERRORS:
            logger.debug("slack_user_not_found", email=email, error=error)
        else:
            logger.warning("slack_api_error", email=email, error=error)

    @staticmethod
    def _to_directory_user(user: Dict[str, Any], email: str) -> DirectoryUser:
        profile = user.get("profile") or {}
        display_name = (
            profile.get("display_name")
            or user.get("real_name")
            or profile.get("real_name")
            or user.get("name")
            or ""
        )
        return DirectoryUser(id=user["id"], display_name=display_name, email=email)
