"""Google Tasks adapter.

This module talks to the Google Tasks REST API (v1) and maps its task
resources to :class:`RemoteTask`.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..credential_manager import (
    ACCESS_TOKEN,
    CLIENT_ID,
    CLIENT_SECRET,
    REFRESH_TOKEN,
    CredentialManager,
)
from ..sync.sync_adapter import (
    RemoteAuthError,
    RemoteError,
    RemoteNotFoundError,
    RemoteTaskStore,
    RemoteTransientError,
)
from ..sync.sync_models import RemoteTask, TaskPatch
from ..utils.datetime import date_to_rfc3339, parse_rfc3339, rfc3339_to_date


logger = logging.getLogger(__name__)

STATUS_NEEDS_ACTION = "needsAction"
STATUS_COMPLETED = "completed"


class GoogleTasksAPI:
    """Thin Google Tasks API client."""

    BASE_URL = "https://tasks.googleapis.com/tasks/v1"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    SCOPE = "https://www.googleapis.com/auth/tasks"
    PAGE_SIZE = 100

    def __init__(
        self,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize Google Tasks API client.

        Args:
            access_token: OAuth access token, if already known
            refresh_token: OAuth refresh token used to obtain access tokens
            client_id: OAuth client id, needed for refreshing
            client_secret: OAuth client secret, needed for refreshing
            client: HTTP client to use instead of a new one
        """
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.client_id = client_id
        self.client_secret = client_secret
        self.client = client or httpx.AsyncClient(timeout=30.0)
        self._refreshed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self):
        await self.client.aclose()

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token and self.client_id and self.client_secret)

    async def refresh_access_token(self) -> str:
        """Exchange the refresh token for a new access token.

        Raises:
            RemoteAuthError: If the token endpoint rejects the refresh token
        """
        if not self.can_refresh:
            raise RemoteAuthError("No refresh token or client credentials stored", operation="refresh")

        try:
            response = await self.client.post(
                self.TOKEN_URL,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": self.refresh_token,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
            )
        except httpx.TimeoutException:
            raise RemoteTransientError("Token refresh timed out", operation="refresh")
        except httpx.RequestError as e:
            raise RemoteTransientError(f"Token refresh failed: {e}", operation="refresh")

        if response.status_code in (400, 401, 403):
            raise RemoteAuthError(
                f"Token refresh rejected: {response.text}",
                status_code=response.status_code,
                operation="refresh",
            )
        self._raise_for_status(response, "refresh")

        self.access_token = response.json()["access_token"]
        self._refreshed = True
        logger.debug("Refreshed Google access token")
        return self.access_token

    async def _ensure_token(self):
        if self.access_token:
            return
        if self.can_refresh:
            await self.refresh_access_token()
            return
        raise RemoteAuthError("Not logged in: no Google access token stored", operation="auth")

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Make HTTP request to the Google Tasks API.

        An expired access token is refreshed once and the request retried.

        Args:
            method: HTTP method
            endpoint: API endpoint below the base URL
            params: Query parameters
            data: JSON body

        Returns:
            Response data

        Raises:
            RemoteAuthError: If authentication fails
            RemoteNotFoundError: If the resource does not exist
            RemoteTransientError: On timeouts, rate limits and server errors
            RemoteError: On any other error response
        """
        await self._ensure_token()
        operation = f"{method} {endpoint}"
        url = f"{self.BASE_URL}/{endpoint}"

        for attempt in range(2):
            headers = {"Authorization": f"Bearer {self.access_token}"}
            try:
                response = await self.client.request(
                    method, url, headers=headers, params=params, json=data
                )
            except httpx.TimeoutException:
                raise RemoteTransientError("Google Tasks request timed out", operation=operation)
            except httpx.RequestError as e:
                raise RemoteTransientError(f"Google Tasks request failed: {e}", operation=operation)

            if response.status_code == 401 and attempt == 0 and self.can_refresh and not self._refreshed:
                logger.debug("Access token rejected, refreshing")
                await self.refresh_access_token()
                continue
            break

        self._raise_for_status(response, operation)

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    @staticmethod
    def _raise_for_status(response: httpx.Response, operation: str):
        status = response.status_code
        if status < 400:
            return
        message = f"Google Tasks API error {status}: {response.text}"
        if status in (401, 403):
            raise RemoteAuthError(message, status_code=status, operation=operation)
        if status == 404:
            raise RemoteNotFoundError(message, status_code=status, operation=operation)
        if status == 429 or status >= 500:
            raise RemoteTransientError(message, status_code=status, operation=operation)
        raise RemoteError(message, status_code=status, operation=operation)

    # Task lists

    async def get_tasklists(self) -> List[Dict[str, Any]]:
        """Get all task lists of the user."""
        items = []
        page_token = None
        while True:
            params = {"maxResults": self.PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token
            page = await self._make_request("GET", "users/@me/lists", params=params)
            items.extend(page.get("items", []))
            page_token = page.get("nextPageToken")
            if not page_token:
                return items

    # Tasks

    async def get_tasks(self, tasklist: str) -> List[Dict[str, Any]]:
        """Get every task of a list, including completed, hidden and deleted ones."""
        items = []
        page_token = None
        while True:
            params = {
                "showCompleted": "true",
                "showHidden": "true",
                "showDeleted": "true",
                "maxResults": self.PAGE_SIZE,
            }
            if page_token:
                params["pageToken"] = page_token
            page = await self._make_request("GET", f"lists/{tasklist}/tasks", params=params)
            items.extend(page.get("items", []))
            page_token = page.get("nextPageToken")
            if not page_token:
                return items

    async def create_task(self, tasklist: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._make_request("POST", f"lists/{tasklist}/tasks", data=body)

    async def update_task(self, tasklist: str, task_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._make_request("PATCH", f"lists/{tasklist}/tasks/{task_id}", data=body)

    async def delete_task(self, tasklist: str, task_id: str) -> None:
        await self._make_request("DELETE", f"lists/{tasklist}/tasks/{task_id}")


class GoogleTasksAdapter(RemoteTaskStore):
    """Remote task store backed by Google Tasks."""

    name = "Google Tasks"

    def __init__(self, api: GoogleTasksAPI):
        self.api = api

    @classmethod
    def from_credentials(
        cls,
        credentials: Optional[CredentialManager] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "GoogleTasksAdapter":
        """Build an adapter from stored credentials.

        Raises:
            RemoteAuthError: If neither an access token nor a refresh token
                with client credentials is stored
        """
        credentials = credentials or CredentialManager()
        api = GoogleTasksAPI(
            access_token=credentials.get_credential(ACCESS_TOKEN),
            refresh_token=credentials.get_credential(REFRESH_TOKEN),
            client_id=credentials.get_credential(CLIENT_ID),
            client_secret=credentials.get_credential(CLIENT_SECRET),
            client=client,
        )
        if not api.access_token and not api.can_refresh:
            raise RemoteAuthError(
                "Not logged in. Store a token with 'neorg-task-sync auth set-token'.",
                operation="auth",
            )
        return cls(api)

    async def close(self) -> None:
        await self.api.aclose()

    async def list_tasks(self, tasklist: str) -> List[RemoteTask]:
        items = await self.api.get_tasks(tasklist)
        logger.debug(f"Got {len(items)} tasks from {tasklist}")
        return [self.map_external_to_task(item) for item in items]

    async def insert_task(self, tasklist, title, completed=False, due=None) -> RemoteTask:
        body: Dict[str, Any] = {
            "title": title,
            "status": STATUS_COMPLETED if completed else STATUS_NEEDS_ACTION,
        }
        if due is not None:
            body["due"] = date_to_rfc3339(due)
        return self.map_external_to_task(await self.api.create_task(tasklist, body))

    async def patch_task(self, tasklist: str, remote_id: str, patch: TaskPatch) -> RemoteTask:
        return self.map_external_to_task(
            await self.api.update_task(tasklist, remote_id, self.map_patch_to_external(patch))
        )

    async def delete_task(self, tasklist: str, remote_id: str) -> None:
        await self.api.delete_task(tasklist, remote_id)

    async def list_tasklists(self) -> Dict[str, str]:
        return {item["id"]: item.get("title", "") for item in await self.api.get_tasklists()}

    @staticmethod
    def map_patch_to_external(patch: TaskPatch) -> Dict[str, Any]:
        """Map a task patch to a Google Tasks PATCH body."""
        body: Dict[str, Any] = {}
        if patch.title is not None:
            body["title"] = patch.title
        if patch.completed is not None:
            if patch.completed:
                body["status"] = STATUS_COMPLETED
            else:
                body["status"] = STATUS_NEEDS_ACTION
                body["completed"] = None
        if patch.due is not None:
            body["due"] = date_to_rfc3339(patch.due)
        elif patch.clear_due:
            body["due"] = None
        return body

    @staticmethod
    def map_external_to_task(data: Dict[str, Any]) -> RemoteTask:
        """Map a Google Tasks resource to a RemoteTask.

        Raises:
            RemoteError: If the resource has no id
        """
        if not data.get("id"):
            raise RemoteError("Google Tasks returned a task without id")
        return RemoteTask(
            remote_id=data["id"],
            title=data.get("title", ""),
            completed=data.get("status") == STATUS_COMPLETED or bool(data.get("completed")),
            due=rfc3339_to_date(data.get("due")),
            updated_at=parse_rfc3339(data.get("updated")),
            deleted=bool(data.get("deleted", False)),
        )
