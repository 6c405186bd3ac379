"""Data models for synchronizing documents with a remote task store."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..parser import SectionConfig
from ..utils.datetime import now_utc, parse_rfc3339, to_rfc3339


class SyncStatus(Enum):
    """Overall outcome of a sync run."""
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"


@dataclass
class RemoteTask:
    """A task as stored in the remote task list."""

    remote_id: str
    title: str
    completed: bool = False
    due: Optional[date] = None
    updated_at: Optional[datetime] = None
    deleted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.remote_id,
            "title": self.title,
            "completed": self.completed,
            "due": self.due.isoformat() if self.due else None,
            "updated": to_rfc3339(self.updated_at) if self.updated_at else None,
            "deleted": self.deleted,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RemoteTask":
        """Create from the representation produced by :meth:`to_dict`."""
        return cls(
            remote_id=data["id"],
            title=data.get("title", ""),
            completed=data.get("completed", False),
            due=date.fromisoformat(data["due"]) if data.get("due") else None,
            updated_at=parse_rfc3339(data.get("updated")),
            deleted=data.get("deleted", False),
        )


@dataclass(frozen=True)
class SyncConfig:
    """Immutable configuration handed to the sync engine for one run."""

    tasklist: str
    sections: SectionConfig = field(default_factory=SectionConfig)
    clear_completed_tasks_older_than_days: Optional[int] = None
    max_concurrent_requests: int = 8
    max_retries: int = 3
    backup_dir: Optional[Path] = None


@dataclass(frozen=True)
class SyncOptions:
    """Per-invocation toggles of the ``sync`` command."""

    without_local: bool = False
    without_remote: bool = False
    without_push: bool = False
    without_pull: bool = False
    pull_to_first: bool = False
    without_sort: bool = False
    fix_missing: bool = False
    force: bool = False

    @property
    def pull_completed(self) -> bool:
        return not self.without_local

    @property
    def push_completed(self) -> bool:
        return not self.without_remote

    @property
    def pull_new(self) -> bool:
        return not self.without_local and not self.without_pull

    @property
    def push_new(self) -> bool:
        return not self.without_remote and not self.without_push


@dataclass
class FileStats:
    """What a sync run changed for one document."""

    path: Path
    pull_completed: int = 0
    push_completed: int = 0
    pull_new: int = 0
    push_new: int = 0
    newer_local: int = 0
    newer_remote: int = 0
    written: bool = False

    def any_change(self) -> bool:
        return (
            self.pull_completed
            + self.push_completed
            + self.pull_new
            + self.push_new
            + self.newer_local
            + self.newer_remote
        ) > 0


@dataclass
class FailedCall:
    """A remote call that did not succeed."""
    operation: str
    target: str
    error: str


@dataclass
class FailedFile:
    """A document that could not be parsed or written."""
    path: Path
    error: str


@dataclass
class SyncReport:
    """Result of a sync run."""

    status: SyncStatus = SyncStatus.SUCCESS
    files: List[FileStats] = field(default_factory=list)
    failed_files: List[FailedFile] = field(default_factory=list)
    failed_calls: List[FailedCall] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    cleared: int = 0
    remote_mutations: int = 0
    started_at: datetime = field(default_factory=now_utc)
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0.0

    @property
    def exit_code(self) -> int:
        return 1 if self.failed_files or self.failed_calls else 0

    @property
    def written_files(self) -> List[Path]:
        return [stats.path for stats in self.files if stats.written]

    def stats_for(self, path: Path) -> FileStats:
        for stats in self.files:
            if stats.path == path:
                return stats
        stats = FileStats(path=path)
        self.files.append(stats)
        return stats

    def add_failed_file(self, path: Path, error: str):
        """Record a document that was skipped."""
        self.failed_files.append(FailedFile(path, error))
        self.status = SyncStatus.PARTIAL

    def add_failed_call(self, operation: str, target: str, error: str):
        """Record a remote call that failed after retries."""
        self.failed_calls.append(FailedCall(operation, target, error))
        self.status = SyncStatus.PARTIAL

    def add_warning(self, warning: str):
        """Add a warning to the result."""
        self.warnings.append(warning)

    def complete(self):
        """Mark sync as completed and calculate duration."""
        self.completed_at = now_utc()
        self.duration_seconds = (self.completed_at - self.started_at).total_seconds()


@dataclass(frozen=True)
class TaskPatch:
    """Fields to change on a remote task; ``None`` leaves a field untouched.

    ``clear_due`` removes the due date, since ``due=None`` means unchanged.
    """

    title: Optional[str] = None
    completed: Optional[bool] = None
    due: Optional[date] = None
    clear_due: bool = False

    def is_empty(self) -> bool:
        return (
            self.title is None
            and self.completed is None
            and self.due is None
            and not self.clear_due
        )

    def merge(self, other: "TaskPatch") -> "TaskPatch":
        """Combine two patches for the same task; ``other`` wins on conflicts."""
        return TaskPatch(
            title=other.title if other.title is not None else self.title,
            completed=other.completed if other.completed is not None else self.completed,
            due=other.due if other.due is not None else self.due,
            clear_due=other.clear_due or (self.clear_due and other.due is None),
        )

    def describe(self) -> str:
        parts = []
        if self.title is not None:
            parts.append(f"title={self.title!r}")
        if self.completed is not None:
            parts.append(f"completed={self.completed}")
        if self.due is not None:
            parts.append(f"due={self.due.isoformat()}")
        if self.clear_due:
            parts.append("due=None")
        return ", ".join(parts)
