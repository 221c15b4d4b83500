"""
Notion identity directory adapter.

Implements IdentityDirectoryPort by listing workspace users once (paginated),
indexing people by email and caching the index for a TTL. Also owns the
task-assignee update used when auto-assigning action items.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence

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
from shared_utils.error_handler import ConfigurationError, ExternalServiceError, ValidationError
from shared_utils.logging_utils import get_scoped_logger
from shared_utils.validation import InputValidator, validate_input


logger = get_scoped_logger(LogScope.DIRECTORY)


class NotionDirectoryAdapter:
    """Notion API implementation of IdentityDirectoryPort."""

    def __init__(
        self,
        api_key: Optional[str],
        session: Optional[requests.Session] = None,
        cache_ttl: float = Defaults.NOTION_CACHE_TTL_SECONDS,
        base_url: str = ExternalAPI.NOTION_BASE_URL,
        assignee_property: str = "assignee",
    ) -> None:
        if not api_key:
            raise ConfigurationError("Notion API key is required")
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {api_key}",
                "Notion-Version": ExternalAPI.NOTION_VERSION,
                "Content-Type": "application/json",
            }
        )
        self._cache_ttl = cache_ttl
        self._assignee_property = assignee_property
        self._index: Optional[Dict[str, DirectoryUser]] = None
        self._index_loaded_at = 0.0
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # IdentityDirectoryPort implementation
    # ------------------------------------------------------------------

    def batch_lookup(self, emails: Sequence[str]) -> Dict[str, DirectoryUser]:
        """Match emails case-insensitively; result keys keep the caller's spelling."""
        if not emails:
            return {}

        index = self.list_all_users()
        results = {
            email: index[email.lower()]
            for email in emails
            if email and email.lower() in index
        }
        logger.info("notion_batch_lookup", requested=len(emails), matched=len(results))
        return results

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def find_user_by_email(self, email: str) -> Optional[DirectoryUser]:
        if not email:
            return None
        return self.list_all_users().get(email.lower())

    def list_all_users(self) -> Dict[str, DirectoryUser]:
        """Workspace people indexed by lower-cased email (cached for the TTL)."""
        with self._lock:
            if self._index is not None and time.monotonic() - self._index_loaded_at < self._cache_ttl:
                return self._index

            users: List[Dict[str, Any]] = []
            cursor: Optional[str] = None
            while True:
                params: Dict[str, Any] = {"page_size": Defaults.NOTION_PAGE_SIZE}
                if cursor:
                    params["start_cursor"] = cursor
                page = self._request("GET", "/users", params=params)
                users.extend(page.get("results", []))
                if not page.get("has_more"):
                    break
                cursor = page.get("next_cursor")

            self._index = self._index_by_email(users)
            self._index_loaded_at = time.monotonic()
            logger.info("notion_users_indexed", total=len(users), with_email=len(self._index))
            return self._index

    def clear_cache(self) -> None:
        with self._lock:
            self._index = None
            self._index_loaded_at = 0.0

    # ------------------------------------------------------------------
    # Task assignment
    # ------------------------------------------------------------------

    @validate_input({"email": InputValidator.validate_email}, scope=LogScope.DIRECTORY)
    def update_task_assignee(self, page_id: str, email: str) -> bool:
        """Set the people property of a task page to the user behind ``email``."""
        user = self.find_user_by_email(email)
        if user is None:
            return False

        body = {
            "properties": {
                self._assignee_property: {"people": [{"id": user.id}]}
            }
        }
        response = self._request("PATCH", f"/pages/{page_id}", json=body)
        return response.get("object") == "page"

    def batch_update_task_assignees(self, assignments: Mapping[str, str]) -> Dict[str, Dict[str, Any]]:
        """Update many pages; each page's failure is reported, not raised."""
        results: Dict[str, Dict[str, Any]] = {}
        for page_id, email in assignments.items():
            try:
                results[page_id] = {
                    "success": self.update_task_assignee(page_id, email=email),
                    "email": email,
                }
            except (ExternalServiceError, ValidationError) as exc:
                results[page_id] = {"success": False, "error": exc.message}
        return results

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(Defaults.MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=1, max=30),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        reraise=True,
    )
    def _send(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        return self._session.request(
            method,
            f"{self._base_url}{path}",
            timeout=(ExternalAPI.HTTP_CONNECT_TIMEOUT, ExternalAPI.HTTP_READ_TIMEOUT),
            **kwargs,
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._send(method, path, **kwargs)
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("notion_request_failed", method=method, path=path, error=str(exc))
            raise ExternalServiceError("Notion", f"{method} {path} failed: {exc}") from exc

        if data.get("object") == "error":
            code = data.get("code", "unknown")
            logger.error("notion_api_error", path=path, code=code, message=data.get("message"))
            raise ExternalServiceError(
                "Notion", f"{code}: {data.get('message', '')}", context={"code": code}
            )
        return data

    @staticmethod
    def _index_by_email(users: List[Dict[str, Any]]) -> Dict[str, DirectoryUser]:
        indexed: Dict[str, DirectoryUser] = {}
        for user in users:
            email = (user.get("person") or {}).get("email")
            if not email:
                continue  # bots and guests without email
            indexed[email.lower()] = DirectoryUser(
                id=user["id"], display_name=user.get("name") or "", email=email
            )
        return indexed
