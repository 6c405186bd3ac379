"""Tests for the Google Tasks adapter."""

import json
from datetime import date, datetime, timezone
from unittest.mock import Mock

import httpx
import pytest

from neorg_task_sync.adapters.google_tasks_adapter import GoogleTasksAdapter, GoogleTasksAPI
from neorg_task_sync.credential_manager import ACCESS_TOKEN
from neorg_task_sync.sync.sync_adapter import (
    RemoteAuthError,
    RemoteError,
    RemoteNotFoundError,
    RemoteTransientError,
)
from neorg_task_sync.sync.sync_models import TaskPatch


def make_adapter(handler, access_token="token", **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleTasksAdapter(GoogleTasksAPI(access_token=access_token, client=client, **kwargs))


GOOGLE_TASK = {
    "kind": "tasks#task",
    "id": "abc",
    "title": "Buy milk",
    "status": "needsAction",
    "due": "2024-05-10T00:00:00.000Z",
    "updated": "2024-05-01T10:00:00.123Z",
}


class TestMapping:
    """Test conversion between Google resources and remote tasks."""

    def test_map_external_to_task(self):
        task = GoogleTasksAdapter.map_external_to_task(GOOGLE_TASK)
        assert task.remote_id == "abc"
        assert task.title == "Buy milk"
        assert not task.completed
        assert task.due == date(2024, 5, 10)
        assert task.updated_at == datetime(2024, 5, 1, 10, 0, 0, 123000, tzinfo=timezone.utc)
        assert not task.deleted

    def test_map_completed_and_deleted(self):
        task = GoogleTasksAdapter.map_external_to_task({
            "id": "abc",
            "status": "completed",
            "completed": "2024-05-02T08:00:00.000Z",
            "deleted": True,
        })
        assert task.completed
        assert task.deleted
        assert task.title == ""
        assert task.due is None

    def test_map_without_id(self):
        with pytest.raises(RemoteError):
            GoogleTasksAdapter.map_external_to_task({"title": "orphan"})

    def test_map_patch(self):
        body = GoogleTasksAdapter.map_patch_to_external(
            TaskPatch(title="New", completed=True, due=date(2024, 5, 10))
        )
        assert body == {"title": "New", "status": "completed", "due": "2024-05-10T00:00:00.000Z"}

    def test_map_patch_reopen_and_clear_due(self):
        body = GoogleTasksAdapter.map_patch_to_external(TaskPatch(completed=False, clear_due=True))
        assert body == {"status": "needsAction", "completed": None, "due": None}


@pytest.mark.asyncio
class TestGoogleTasksAdapter:
    """Test requests sent to the Google Tasks API."""

    async def test_list_tasks_pages(self):
        requests = []

        def handler(request):
            requests.append(request)
            assert request.headers["Authorization"] == "Bearer token"
            if "pageToken" not in request.url.params:
                return httpx.Response(200, json={"items": [GOOGLE_TASK], "nextPageToken": "p2"})
            return httpx.Response(200, json={"items": [dict(GOOGLE_TASK, id="def")]})

        async with make_adapter(handler) as adapter:
            tasks = await adapter.list_tasks("list1")

        assert [t.remote_id for t in tasks] == ["abc", "def"]
        assert requests[0].url.path == "/tasks/v1/lists/list1/tasks"
        params = requests[0].url.params
        assert params["showCompleted"] == "true"
        assert params["showDeleted"] == "true"
        assert params["showHidden"] == "true"
        assert requests[1].url.params["pageToken"] == "p2"

    async def test_insert_task(self):
        def handler(request):
            assert request.method == "POST"
            body = json.loads(request.content)
            assert body == {"title": "Buy milk", "status": "needsAction", "due": "2024-05-10T00:00:00.000Z"}
            return httpx.Response(200, json=GOOGLE_TASK)

        async with make_adapter(handler) as adapter:
            task = await adapter.insert_task("list1", "Buy milk", due=date(2024, 5, 10))

        assert task.remote_id == "abc"

    async def test_patch_task(self):
        def handler(request):
            assert request.method == "PATCH"
            assert request.url.path == "/tasks/v1/lists/list1/tasks/abc"
            assert json.loads(request.content) == {"status": "completed"}
            return httpx.Response(200, json=dict(GOOGLE_TASK, status="completed"))

        async with make_adapter(handler) as adapter:
            task = await adapter.patch_task("list1", "abc", TaskPatch(completed=True))

        assert task.completed

    async def test_delete_task(self):
        def handler(request):
            assert request.method == "DELETE"
            return httpx.Response(204)

        async with make_adapter(handler) as adapter:
            assert await adapter.delete_task("list1", "abc") is None

    async def test_list_tasklists(self):
        def handler(request):
            assert request.url.path == "/tasks/v1/users/@me/lists"
            return httpx.Response(200, json={"items": [{"id": "l1", "title": "My Tasks"}]})

        async with make_adapter(handler) as adapter:
            assert await adapter.list_tasklists() == {"l1": "My Tasks"}

    @pytest.mark.parametrize("status, error", [
        (401, RemoteAuthError),
        (403, RemoteAuthError),
        (404, RemoteNotFoundError),
        (429, RemoteTransientError),
        (503, RemoteTransientError),
    ])
    async def test_error_status(self, status, error):
        def handler(request):
            return httpx.Response(status, text="nope")

        async with make_adapter(handler) as adapter:
            with pytest.raises(error) as exc_info:
                await adapter.list_tasks("list1")

        assert exc_info.value.status_code == status

    async def test_other_client_error_is_not_retryable(self):
        def handler(request):
            return httpx.Response(400, text="bad request")

        async with make_adapter(handler) as adapter:
            with pytest.raises(RemoteError) as exc_info:
                await adapter.list_tasks("list1")

        assert not isinstance(exc_info.value, (RemoteAuthError, RemoteTransientError))

    async def test_network_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_adapter(handler) as adapter:
            with pytest.raises(RemoteTransientError):
                await adapter.list_tasks("list1")

    async def test_expired_token_refreshed(self):
        seen = []

        def handler(request):
            if request.url.host == "oauth2.googleapis.com":
                form = request.content.decode()
                assert "grant_type=refresh_token" in form
                return httpx.Response(200, json={"access_token": "fresh", "expires_in": 3600})
            seen.append(request.headers["Authorization"])
            if request.headers["Authorization"] == "Bearer stale":
                return httpx.Response(401, text="expired")
            return httpx.Response(200, json={"items": []})

        adapter = make_adapter(
            handler, access_token="stale", refresh_token="refresh", client_id="id", client_secret="secret"
        )
        async with adapter:
            assert await adapter.list_tasks("list1") == []

        assert seen == ["Bearer stale", "Bearer fresh"]
        assert adapter.api.access_token == "fresh"

    async def test_refresh_before_first_call(self):
        def handler(request):
            if request.url.host == "oauth2.googleapis.com":
                return httpx.Response(200, json={"access_token": "fresh"})
            assert request.headers["Authorization"] == "Bearer fresh"
            return httpx.Response(200, json={})

        adapter = make_adapter(
            handler, access_token=None, refresh_token="refresh", client_id="id", client_secret="secret"
        )
        async with adapter:
            assert await adapter.list_tasks("list1") == []

    async def test_rejected_refresh(self):
        def handler(request):
            return httpx.Response(400, json={"error": "invalid_grant"})

        adapter = make_adapter(
            handler, access_token=None, refresh_token="refresh", client_id="id", client_secret="secret"
        )
        async with adapter:
            with pytest.raises(RemoteAuthError):
                await adapter.list_tasks("list1")


class TestFromCredentials:
    """Test building the adapter from stored credentials."""

    def test_not_logged_in(self):
        credentials = Mock()
        credentials.get_credential.return_value = None
        with pytest.raises(RemoteAuthError):
            GoogleTasksAdapter.from_credentials(credentials)

    def test_access_token_only(self):
        credentials = Mock()
        credentials.get_credential.side_effect = lambda key: "token" if key == ACCESS_TOKEN else None
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        adapter = GoogleTasksAdapter.from_credentials(credentials, client=client)
        assert adapter.api.access_token == "token"
        assert not adapter.api.can_refresh
