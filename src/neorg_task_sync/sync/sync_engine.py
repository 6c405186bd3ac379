"""Bidirectional synchronization between documents and a remote task list.

The engine works in three phases:

1. Parse every document and take a single snapshot of the remote list.
2. Plan: compare both sides and decide which remote calls and which local
   edits are needed. Planning is a pure function of the documents and the
   snapshot.
3. Execute: issue the remote calls concurrently, then render and write each
   document once, keeping only the local edits whose remote counterpart
   succeeded.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

from ..errors import DocumentWriteError, ParseFatal
from ..parser import Document, DocumentParser
from ..renderer import AnnotateIdentity, DocumentRenderer, Insert, Mutation, UpdateSpan
from ..storage import DocumentStorage
from ..todo import IdentityToken, TaskLine, TodoState
from ..utils.datetime import now_utc
from .sync_adapter import RemoteAuthError, RemoteError, RemoteTaskStore, RetryHandler
from .sync_models import (
    RemoteTask,
    SyncConfig,
    SyncOptions,
    SyncReport,
    SyncStatus,
    TaskPatch,
)


logger = logging.getLogger(__name__)


class RemoteOpType(Enum):
    """Kinds of remote mutations."""
    CREATE = "create"
    PATCH = "patch"
    DELETE = "delete"


@dataclass
class RemoteOp:
    """One planned call against the remote store."""
    op_type: RemoteOpType
    remote_id: Optional[str] = None
    title: str = ""
    completed: bool = False
    due: Optional[date] = None
    patch: Optional[TaskPatch] = None
    document: Optional[Document] = None
    task: Optional[TaskLine] = None
    # FileStats counters to bump when the call succeeds
    stats: List[str] = field(default_factory=list)

    result: Optional[RemoteTask] = None
    succeeded: bool = False

    def describe(self) -> str:
        if self.op_type is RemoteOpType.CREATE:
            return f"create '{self.title}'"
        if self.op_type is RemoteOpType.PATCH:
            return f"update {self.remote_id} ({self.patch.describe()})"
        return f"delete {self.remote_id}"


@dataclass
class LocalChange:
    """One planned edit to a document."""
    document: Document
    mutation: Mutation
    stat: str


@dataclass
class SyncPlan:
    """Plan for synchronizing documents with the remote list."""
    remote_creates: List[RemoteOp] = field(default_factory=list)
    remote_updates: List[RemoteOp] = field(default_factory=list)
    remote_deletes: List[RemoteOp] = field(default_factory=list)
    local_changes: List[LocalChange] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def remote_ops(self) -> List[RemoteOp]:
        return self.remote_creates + self.remote_updates + self.remote_deletes


def single_line(title: str) -> str:
    """Collapse a remote title into something that fits on one task line."""
    return " ".join(title.splitlines()).strip()


class SyncPlanner:
    """Decides what to change on each side.

    There is no persisted sync state: the document's modification time and
    the remote ``updated_at`` decide which side changed last.
    """

    def __init__(
        self,
        config: SyncConfig,
        options: SyncOptions,
        now: Optional[datetime] = None,
    ):
        self.config = config
        self.options = options
        self.now = now or now_utc()

    def plan(
        self,
        documents: Sequence[Document],
        snapshot: Sequence[RemoteTask],
        pull_target: Optional[Document] = None,
    ) -> SyncPlan:
        """Build the sync plan.

        Args:
            documents: Parsed documents, in target order
            snapshot: Remote tasks as listed at the start of the run
            pull_target: Document receiving newly pulled tasks, if any

        Returns:
            The plan; nothing has been executed yet
        """
        plan = SyncPlan()
        remote_by_id = {task.remote_id: task for task in snapshot}

        # Any identity anywhere, tracked or not, blocks pulling that task again
        known_ids: Set[str] = set()
        matched: List[Tuple[Document, TaskLine]] = []
        for document in documents:
            for task in document.tasks:
                if task.identity is None:
                    continue
                token = str(task.identity)
                if token in known_ids:
                    if task.is_tracked:
                        plan.warnings.append(
                            f"{document.name}: task '{task.text}' repeats identity {token}, skipping"
                        )
                    continue
                known_ids.add(token)
                if task.is_tracked:
                    matched.append((document, task))

        touched: Set[str] = set()
        for document, task in matched:
            remote = remote_by_id.get(str(task.identity))
            if remote is None or remote.deleted:
                if not task.completed:
                    plan.warnings.append(
                        f"{document.name}: task '{task.text}' unexpectedly deleted from the remote store"
                    )
                continue
            op = self._reconcile(plan, document, task, remote)
            if op is not None:
                plan.remote_updates.append(op)
                touched.add(remote.remote_id)

        for document in documents:
            for task in document.tracked_tasks():
                if task.identity is None and self._should_push(task):
                    plan.remote_creates.append(
                        RemoteOp(
                            RemoteOpType.CREATE,
                            title=task.text,
                            completed=task.completed,
                            due=task.due,
                            document=document,
                            task=task,
                            stats=["push_new"],
                        )
                    )

        if self.options.pull_new and pull_target is not None:
            self._plan_pulls(plan, snapshot, known_ids, pull_target)

        days = self.config.clear_completed_tasks_older_than_days
        if days is not None:
            cutoff = self.now - timedelta(days=days)
            for remote in snapshot:
                if (
                    remote.completed
                    and not remote.deleted
                    and remote.updated_at is not None
                    and remote.updated_at < cutoff
                    and remote.remote_id not in touched
                ):
                    plan.remote_deletes.append(
                        RemoteOp(RemoteOpType.DELETE, remote_id=remote.remote_id, title=remote.title)
                    )

        logger.debug(
            f"Planned {len(plan.remote_creates)} creates, {len(plan.remote_updates)} updates, "
            f"{len(plan.remote_deletes)} deletes, {len(plan.local_changes)} local edits"
        )
        return plan

    def _should_push(self, task: TaskLine) -> bool:
        if self.options.fix_missing:
            return True
        return self.options.push_new and not task.completed

    def _reconcile(
        self, plan: SyncPlan, document: Document, task: TaskLine, remote: RemoteTask
    ) -> Optional[RemoteOp]:
        """Compare a matched pair; return the remote update it needs, if any."""
        local_newer = (
            document.modified_at is not None
            and remote.updated_at is not None
            and document.modified_at > remote.updated_at
        )
        # Freshness is unknown when either side has no timestamp
        remote_newer = (
            document.modified_at is not None
            and remote.updated_at is not None
            and not local_newer
        )
        patch = TaskPatch()
        stats = []

        if remote.completed and not task.completed:
            if self.options.pull_completed:
                plan.local_changes.append(
                    LocalChange(document, UpdateSpan(task.state_span, TodoState.DONE.glyph), "pull_completed")
                )
        elif task.completed and not remote.completed:
            if self.options.push_completed:
                patch = patch.merge(TaskPatch(completed=True))
                stats.append("push_completed")

        remote_title = single_line(remote.title)
        if task.text != remote_title:
            if local_newer:
                if self.options.push_completed:
                    patch = patch.merge(TaskPatch(title=task.text))
                    stats.append("newer_local")
            elif remote_newer and self.options.pull_completed:
                plan.local_changes.append(
                    LocalChange(document, UpdateSpan(task.text_span, remote_title), "newer_remote")
                )
        elif task.due is not None and task.due != remote.due and local_newer:
            if self.options.push_completed:
                patch = patch.merge(TaskPatch(due=task.due))
                stats.append("newer_local")

        if patch.is_empty():
            return None
        return RemoteOp(
            RemoteOpType.PATCH,
            remote_id=remote.remote_id,
            title=remote.title,
            patch=patch,
            document=document,
            task=task,
            stats=stats,
        )

    def _plan_pulls(
        self,
        plan: SyncPlan,
        snapshot: Sequence[RemoteTask],
        known_ids: Set[str],
        pull_target: Document,
    ):
        section = self.config.sections.todo_section
        for remote in snapshot:
            if remote.deleted or remote.completed or remote.remote_id in known_ids:
                continue
            try:
                token = IdentityToken(remote.remote_id)
            except ValueError:
                plan.warnings.append(
                    f"remote task '{remote.title}' has an id that cannot be embedded: {remote.remote_id!r}"
                )
                continue
            known_ids.add(remote.remote_id)
            task = TaskLine(text=single_line(remote.title), identity=token, section=section)
            plan.local_changes.append(LocalChange(pull_target, Insert(section, task), "pull_new"))


class SyncEngine:
    """Runs a full sync of documents against a remote task list."""

    def __init__(
        self,
        store: RemoteTaskStore,
        config: SyncConfig,
        today: Optional[date] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.store = store
        self.config = config
        self.today = today
        self.clock = clock
        self.parser = DocumentParser(config.sections)
        self.renderer = DocumentRenderer(self.parser.grammar)
        self.retry_handler = RetryHandler(config.max_retries)

    async def run(
        self, targets: Sequence[Union[str, Path]], options: Optional[SyncOptions] = None
    ) -> SyncReport:
        """Sync the given files and folders.

        Per-file and per-call failures are collected in the report; the run
        continues past them.

        Args:
            targets: Files and folders to sync
            options: Direction toggles and flags

        Returns:
            Report of what changed and what failed

        Raises:
            RemoteAuthError: If the remote store rejects the credentials.
                Only the identities of tasks already created remotely are
                written to documents when this is raised.
        """
        options = options or SyncOptions()
        report = SyncReport()
        storage = DocumentStorage(
            ignore_filenames=self.config.sections.ignore_filenames,
            force=options.force or self.config.sections.force,
            backup_dir=self.config.backup_dir,
            extensions=self.parser.grammar.extensions,
        )

        files, failures = storage.expand_targets(targets, sort=not options.without_sort)
        for failure in failures:
            logger.warning(f"Skipping {failure}")
            report.add_failed_file(failure.path, failure.reason)

        if not files:
            logger.warning("No documents to sync")
            report.complete()
            return report

        documents = self._parse_all(files, report)
        pull_path = files[0] if options.pull_to_first else files[-1]
        pull_target = next((d for d in documents if d.path == pull_path), None)
        if pull_target is None and options.pull_new:
            message = f"{pull_path}: could not be parsed, not pulling new tasks"
            logger.warning(message)
            report.add_warning(message)

        try:
            snapshot = await self.retry_handler.execute_with_retry(
                self.store.list_tasks, self.config.tasklist
            )
        except RemoteAuthError:
            raise
        except RemoteError as e:
            logger.error(f"Could not list remote tasks: {e}")
            report.add_failed_call("list", self.config.tasklist, str(e))
            report.status = SyncStatus.ERROR
            report.complete()
            return report
        logger.debug(f"Remote snapshot: {len(snapshot)} tasks in {self.config.tasklist}")

        planner = SyncPlanner(self.config, options, now=self.clock())
        plan = planner.plan(documents, snapshot, pull_target)
        for warning in plan.warnings:
            logger.warning(warning)
            report.add_warning(warning)

        for document in documents:
            report.stats_for(document.path)

        try:
            await self._execute_remote(plan, report)
        except RemoteAuthError:
            self._apply_local(plan, documents, storage, report, identities_only=True)
            raise
        self._apply_local(plan, documents, storage, report)

        report.complete()
        return report

    def _parse_all(self, files: List[Path], report: SyncReport) -> List[Document]:
        documents = []
        for path in files:
            try:
                documents.append(self.parser.parse_file(path, today=self.today))
            except ParseFatal as e:
                logger.warning(f"Skipping {e}")
                report.add_failed_file(path, e.reason)
        return documents

    async def _execute_remote(self, plan: SyncPlan, report: SyncReport):
        """Issue all planned remote calls; wait for every one before returning."""
        ops = plan.remote_ops
        if not ops:
            return

        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrent_requests))

        async def perform(op: RemoteOp):
            async with semaphore:
                try:
                    op.result = await self.retry_handler.execute_with_retry(self._call, op)
                except RemoteAuthError:
                    raise
                except RemoteError as e:
                    logger.warning(f"Failed to {op.describe()}: {e}")
                    report.add_failed_call(op.op_type.value, op.remote_id or op.title, str(e))
                    return
                op.succeeded = True
                report.remote_mutations += 1
                logger.info(f"{self.store.name}: {op.describe()}")

        pending = [asyncio.ensure_future(perform(op)) for op in ops]
        try:
            await asyncio.gather(*pending)
        except RemoteAuthError:
            for future in pending:
                future.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            raise

    async def _call(self, op: RemoteOp) -> Optional[RemoteTask]:
        tasklist = self.config.tasklist
        if op.op_type is RemoteOpType.CREATE:
            return await self.store.insert_task(tasklist, op.title, op.completed, op.due)
        if op.op_type is RemoteOpType.PATCH:
            return await self.store.patch_task(tasklist, op.remote_id, op.patch)
        await self.store.delete_task(tasklist, op.remote_id)
        return None

    def _apply_local(
        self,
        plan: SyncPlan,
        documents: List[Document],
        storage: DocumentStorage,
        report: SyncReport,
        identities_only: bool = False,
    ):
        """Render and write every document that has edits.

        With ``identities_only``, only tasks created remotely get their
        identity annotation; every other planned edit is dropped.
        """
        mutations: Dict[int, List[Mutation]] = {id(d): [] for d in documents}

        for op in plan.remote_ops:
            if not op.succeeded:
                continue
            if op.op_type is RemoteOpType.DELETE:
                report.cleared += 1
                continue
            stats = report.stats_for(op.document.path)
            for counter in op.stats:
                setattr(stats, counter, getattr(stats, counter) + 1)
            if op.op_type is RemoteOpType.CREATE:
                token = IdentityToken(op.result.remote_id)
                mutations[id(op.document)].append(AnnotateIdentity.for_task(op.task, token))

        for change in [] if identities_only else plan.local_changes:
            stats = report.stats_for(change.document.path)
            setattr(stats, change.stat, getattr(stats, change.stat) + 1)
            mutations[id(change.document)].append(change.mutation)

        for document in documents:
            edits = mutations[id(document)]
            if not edits:
                continue
            text = self.renderer.render(document, edits)
            if text == document.text:
                continue
            try:
                storage.write(document.path, text)
            except DocumentWriteError as e:
                logger.error(f"Could not write {e}")
                report.add_failed_file(document.path, e.reason)
                continue
            report.stats_for(document.path).written = True

