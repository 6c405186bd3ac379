"""Document renderer: applies task mutations to a parsed document.

Only the spans named by mutations are rewritten. All other text, including
line endings and trailing whitespace, is copied from the original.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .errors import RenderInvariantViolation
from .parser import Document, DocumentGrammar, NorgGrammar
from .todo import IdentityToken, SourceSpan, TaskLine


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Insert:
    """Add a new task line to the named section."""
    section: str
    task: TaskLine


@dataclass(frozen=True)
class UpdateSpan:
    """Replace the text of a span."""
    span: SourceSpan
    new_text: str


@dataclass(frozen=True)
class AnnotateIdentity:
    """Attach an identity to a task line.

    ``span`` is either the task's existing annotation or the empty span
    right after its text.
    """
    span: SourceSpan
    token: IdentityToken

    @classmethod
    def for_task(cls, task: TaskLine, token: IdentityToken) -> "AnnotateIdentity":
        span = task.identity_span if task.identity_span is not None else task.annotation_point
        return cls(span, token)


Mutation = Union[Insert, UpdateSpan, AnnotateIdentity]


@dataclass
class _Edit:
    span: SourceSpan
    text: str
    # span edits sort before insert blocks at the same offset
    rank: int
    origin: Mutation


class DocumentRenderer:
    """Produces new document text from a document and its mutations."""

    def __init__(self, grammar: Optional[DocumentGrammar] = None):
        self.grammar = grammar or NorgGrammar()

    def render(self, document: Document, mutations: Sequence[Mutation]) -> str:
        """Apply mutations and return the new text.

        Raises:
            RenderInvariantViolation: If two mutations touch the same span
        """
        span_edits = [self._span_edit(m) for m in mutations if not isinstance(m, Insert)]
        span_edits.sort(key=lambda e: (e.span.start, e.span.end))
        self._check_disjoint(span_edits)

        inserts = [m for m in mutations if isinstance(m, Insert)]
        insert_edits = self._insert_edits(document, inserts)
        for insert in insert_edits:
            for edit in span_edits:
                if edit.span.start < insert.span.start < edit.span.end:
                    raise RenderInvariantViolation(
                        f"{document.name}: insert at {insert.span.start} falls inside "
                        f"edit of [{edit.span.start}, {edit.span.end})"
                    )

        edits = sorted(span_edits + insert_edits, key=lambda e: (e.span.start, e.rank))

        parts = []
        cursor = 0
        for edit in edits:
            parts.append(document.text[cursor:edit.span.start])
            parts.append(edit.text)
            cursor = edit.span.end
        parts.append(document.text[cursor:])
        return "".join(parts)

    def _span_edit(self, mutation: Mutation) -> _Edit:
        if isinstance(mutation, UpdateSpan):
            return _Edit(mutation.span, mutation.new_text, 0, mutation)
        if isinstance(mutation, AnnotateIdentity):
            return _Edit(mutation.span, f" {mutation.token.encode()}", 0, mutation)
        raise TypeError(f"Unknown mutation: {mutation!r}")

    @staticmethod
    def _check_disjoint(edits: List[_Edit]):
        for previous, current in zip(edits, edits[1:]):
            if previous.span.overlaps(current.span):
                raise RenderInvariantViolation(
                    f"Overlapping mutations: {previous.origin!r} and {current.origin!r}"
                )

    def _insert_edits(self, document: Document, inserts: List[Insert]) -> List[_Edit]:
        """Group inserts per section into one block of new lines each."""
        if not inserts:
            return []

        newline = document.newline
        grouped: Dict[str, List[TaskLine]] = {}
        for insert in inserts:
            grouped.setdefault(insert.section, []).append(insert.task)

        edits = []
        missing: List[Tuple[str, List[TaskLine]]] = []
        for title, tasks in grouped.items():
            section = document.find_section(title)
            if section is None:
                missing.append((title, tasks))
                continue

            anchor = section.last_task
            if anchor is not None:
                offset = anchor.source_span.end
                indent, bullet = anchor.indent, anchor.bullet
            else:
                offset = section.heading_span.end
                indent, bullet = "  ", "-"

            point = document.line_end(offset)
            lines = [self._format(task, indent, bullet) for task in tasks]
            if point == len(document.text) and not document.text.endswith("\n"):
                block = "".join(newline + line for line in lines)
            else:
                block = "".join(line + newline for line in lines)
            logger.debug(f"{document.name}: inserting {len(lines)} tasks into '{title}'")
            edits.append(_Edit(SourceSpan(point, point), block, 1, Insert(title, tasks[0])))

        if missing:
            edits.append(self._append_sections(document, missing))
        return edits

    def _append_sections(
        self, document: Document, missing: List[Tuple[str, List[TaskLine]]]
    ) -> _Edit:
        newline = document.newline
        parts = []
        if document.text and not document.text.endswith("\n"):
            parts.append(newline)
        for title, tasks in missing:
            logger.debug(f"{document.name}: creating section '{title}'")
            parts.append(self.grammar.format_heading(title) + newline)
            for task in tasks:
                parts.append(self._format(task, "  ", "-") + newline)

        end = len(document.text)
        title, tasks = missing[0]
        return _Edit(SourceSpan(end, end), "".join(parts), 2, Insert(title, tasks[0]))

    def _format(self, task: TaskLine, indent: str, bullet: str) -> str:
        line_task = TaskLine(
            text=task.text,
            completed=task.completed,
            identity=task.identity,
            indent=indent,
            bullet=bullet,
        )
        return self.grammar.format_task(line_task)
