"""Pytest configuration and shared fixtures."""

import asyncio
import inspect
import itertools
import os
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from neorg_task_sync.parser import SectionConfig
from neorg_task_sync.sync.sync_adapter import (
    RemoteAuthError,
    RemoteNotFoundError,
    RemoteTaskStore,
    RemoteTransientError,
)
from neorg_task_sync.sync.sync_models import RemoteTask, SyncConfig, TaskPatch


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """Execute async tests without external plugins."""
    testfunction = pyfuncitem.obj
    if inspect.iscoroutinefunction(testfunction):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            sig = inspect.signature(testfunction)
            call_kwargs = {name: pyfuncitem.funcargs[name] for name in sig.parameters}
            loop.run_until_complete(testfunction(**call_kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


# Fixed points in time: documents are written "yesterday" unless a test
# sets their mtime explicitly, remote tasks are updated "last week".
NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()
LAST_WEEK = NOW - timedelta(days=7)
YESTERDAY = NOW - timedelta(days=1)


class FakeTaskStore(RemoteTaskStore):
    """In-memory remote task list.

    Every mutation stamps ``updated_at`` with ``clock`` and is recorded in
    ``calls``. ``fail`` maps an operation name (``list``, ``insert``,
    ``patch``, ``delete``) to an exception raised by the next calls.
    """

    name = "fake"

    def __init__(self, clock: datetime = NOW):
        self.clock = clock
        self.tasks: Dict[str, RemoteTask] = {}
        self.calls: List[tuple] = []
        self.fail: Dict[str, Exception] = {}
        self.closed = False
        self._ids = itertools.count(1)

    def add(
        self,
        title: str,
        completed: bool = False,
        due: Optional[date] = None,
        updated_at: datetime = LAST_WEEK,
        deleted: bool = False,
        remote_id: Optional[str] = None,
    ) -> RemoteTask:
        """Seed a task without recording a call."""
        remote_id = remote_id or f"r{next(self._ids)}"
        task = RemoteTask(remote_id, title, completed, due, updated_at, deleted)
        self.tasks[remote_id] = task
        return task

    @property
    def mutations(self) -> List[tuple]:
        return [call for call in self.calls if call[0] != "list"]

    def _check(self, operation: str):
        error = self.fail.get(operation)
        if error is not None:
            raise error

    async def list_tasks(self, tasklist: str) -> List[RemoteTask]:
        self.calls.append(("list", tasklist))
        self._check("list")
        return [
            RemoteTask(t.remote_id, t.title, t.completed, t.due, t.updated_at, t.deleted)
            for t in self.tasks.values()
        ]

    async def insert_task(self, tasklist, title, completed=False, due=None) -> RemoteTask:
        self.calls.append(("insert", title))
        self._check("insert")
        return self.add(title, completed=completed, due=due, updated_at=self.clock)

    async def patch_task(self, tasklist: str, remote_id: str, patch: TaskPatch) -> RemoteTask:
        self.calls.append(("patch", remote_id, patch))
        self._check("patch")
        task = self.tasks.get(remote_id)
        if task is None:
            raise RemoteNotFoundError(f"no task {remote_id}", status_code=404)
        if patch.title is not None:
            task.title = patch.title
        if patch.completed is not None:
            task.completed = patch.completed
        if patch.due is not None:
            task.due = patch.due
        elif patch.clear_due:
            task.due = None
        task.updated_at = self.clock
        return task

    async def delete_task(self, tasklist: str, remote_id: str) -> None:
        self.calls.append(("delete", remote_id))
        self._check("delete")
        self.tasks[remote_id].deleted = True

    async def list_tasklists(self) -> Dict[str, str]:
        return {"list1": "My Tasks", "list2": "Work"}

    async def close(self) -> None:
        self.closed = True


def write_doc(path: Path, text: str, mtime: datetime = YESTERDAY) -> Path:
    """Write a document and set its modification time."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    set_mtime(path, mtime)
    return path


def set_mtime(path: Path, mtime: datetime):
    stamp = mtime.timestamp()
    os.utime(path, (stamp, stamp))


@pytest.fixture
def store():
    """Empty in-memory remote task list."""
    return FakeTaskStore()


@pytest.fixture
def sections():
    return SectionConfig(todo_section="TODOs", end_of_day_section="Today")


@pytest.fixture
def sync_config(sections):
    """Engine configuration without retries, so failures surface immediately."""
    return SyncConfig(tasklist="list1", sections=sections, max_retries=0)


@pytest.fixture
def auth_error():
    return RemoteAuthError("token expired", status_code=401)


@pytest.fixture
def transient_error():
    return RemoteTransientError("service unavailable", status_code=503)
