"""Synchronization subsystem package for neorg-task-sync."""

from .sync_adapter import (
    RemoteAuthError,
    RemoteError,
    RemoteNotFoundError,
    RemoteTaskStore,
    RemoteTransientError,
    RetryHandler,
)
from .sync_engine import SyncEngine, SyncPlan, SyncPlanner
from .sync_models import (
    FileStats,
    RemoteTask,
    SyncConfig,
    SyncOptions,
    SyncReport,
    SyncStatus,
    TaskPatch,
)

__all__ = [
    "RemoteAuthError",
    "RemoteError",
    "RemoteNotFoundError",
    "RemoteTaskStore",
    "RemoteTransientError",
    "RetryHandler",
    "SyncEngine",
    "SyncPlan",
    "SyncPlanner",
    "FileStats",
    "RemoteTask",
    "SyncConfig",
    "SyncOptions",
    "SyncReport",
    "SyncStatus",
    "TaskPatch",
]
