"""Abstract base class for remote task stores.

This module defines the interface a remote task list must implement so the
sync engine can reconcile it with documents, and the errors it may raise.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from .sync_models import RemoteTask, TaskPatch


logger = logging.getLogger(__name__)

T = TypeVar("T")


class RemoteError(Exception):
    """Base exception for remote task store operations."""

    def __init__(self, message: str, status_code: Optional[int] = None, operation: str = ""):
        self.status_code = status_code
        self.operation = operation
        super().__init__(message)


class RemoteAuthError(RemoteError):
    """Credentials are missing, expired or rejected."""
    pass


class RemoteNotFoundError(RemoteError):
    """The task or task list does not exist."""
    pass


class RemoteTransientError(RemoteError):
    """Timeouts, connection failures, rate limiting and server errors."""
    pass


class RemoteTaskStore(ABC):
    """Capability surface of a remote task list.

    Implementations translate between the service's wire format and
    :class:`RemoteTask`. All methods raise :class:`RemoteError` subclasses.
    """

    name = "remote"

    @abstractmethod
    async def list_tasks(self, tasklist: str) -> List[RemoteTask]:
        """Fetch every task of a list, including completed and deleted ones.

        Args:
            tasklist: Task list identifier

        Returns:
            List of remote tasks

        Raises:
            RemoteAuthError: If authentication is invalid
            RemoteTransientError: If the request failed temporarily
        """
        pass

    @abstractmethod
    async def insert_task(
        self,
        tasklist: str,
        title: str,
        completed: bool = False,
        due: Optional[date] = None,
    ) -> RemoteTask:
        """Create a task.

        Returns:
            The created task, carrying its newly assigned ``remote_id``
        """
        pass

    @abstractmethod
    async def patch_task(self, tasklist: str, remote_id: str, patch: TaskPatch) -> RemoteTask:
        """Change some fields of a task.

        Returns:
            The updated task
        """
        pass

    @abstractmethod
    async def delete_task(self, tasklist: str, remote_id: str) -> None:
        """Delete a task."""
        pass

    async def list_tasklists(self) -> Dict[str, str]:
        """Fetch available task lists.

        Returns:
            Dictionary mapping task list IDs to titles
        """
        return {}

    async def close(self) -> None:
        """Release network resources."""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class RetryHandler:
    """Handles retry logic for failed remote calls."""

    def __init__(self, max_retries: int = 3, base_delay: float = 1.0):
        """Initialize retry handler.

        Args:
            max_retries: Maximum number of retry attempts
            base_delay: Delay before the first retry, doubled for every attempt
        """
        self.max_retries = max_retries
        self.base_delay = base_delay

    async def execute_with_retry(self, coro: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Execute a coroutine with exponential backoff retry.

        Only :class:`RemoteTransientError` is retried; everything else is
        raised immediately.

        Args:
            coro: Coroutine function to execute
            *args: Positional arguments for the coroutine
            **kwargs: Keyword arguments for the coroutine

        Returns:
            Result of the coroutine

        Raises:
            The last exception if all retries fail
        """
        for attempt in range(self.max_retries + 1):
            try:
                return await coro(*args, **kwargs)
            except RemoteTransientError as e:
                if attempt >= self.max_retries:
                    logger.error(f"All {self.max_retries + 1} attempts failed: {e}")
                    raise
                # Exponential backoff: 1, 2, 4, 8 seconds
                delay = self.base_delay * (2 ** attempt)
                logger.warning(f"Attempt {attempt + 1} failed, retrying in {delay}s: {e}")
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")
