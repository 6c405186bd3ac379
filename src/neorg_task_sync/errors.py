"""Document-side exceptions for neorg-task-sync.

Remote-side errors live next to the task store contract in
``neorg_task_sync.sync.sync_adapter``.
"""

from pathlib import Path
from typing import Optional, Union


class NeorgTaskSyncError(Exception):
    """Base exception for neorg-task-sync."""
    pass


class ParseFatal(NeorgTaskSyncError):
    """A document could not be read or decoded at all.

    Malformed lines never raise this; they are kept as opaque text.
    """

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{self.path}: {reason}")


class DocumentWriteError(NeorgTaskSyncError):
    """Writing an updated document back to disk failed."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{self.path}: {reason}")


class ConfigError(NeorgTaskSyncError):
    """Configuration file or environment override is invalid."""

    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class RenderInvariantViolation(AssertionError):
    """Two mutations target overlapping spans of the same document.

    This signals a bug in the diff step, so it derives from AssertionError
    and is never caught by the sync engine.
    """
    pass
