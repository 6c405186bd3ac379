"""Remote task store adapters.

This package contains concrete implementations of the RemoteTaskStore
interface for specific hosted task services.
"""

from .google_tasks_adapter import GoogleTasksAdapter, GoogleTasksAPI

__all__ = ["GoogleTasksAdapter", "GoogleTasksAPI"]
