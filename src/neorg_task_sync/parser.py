"""Document parser for norg files.

The parser only understands as much of the norg grammar as task sync needs:
headings (to attribute tasks to sections), delimiters that close headings,
ranged verbatim tags (so tasks in code blocks are ignored) and checkbox list
items. Every other line is opaque text that is carried through untouched.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from .storage import read_document
from .todo import IdentityToken, SourceSpan, TaskLine, TodoState


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SectionConfig:
    """Which headings carry synced tasks, and which files are scanned."""
    todo_section: str = "TODOs"
    end_of_day_section: Optional[str] = None
    ignore_filenames: Tuple[str, ...] = ()
    force: bool = False

    @property
    def tracked_titles(self) -> Tuple[str, ...]:
        if self.end_of_day_section:
            return (self.todo_section, self.end_of_day_section)
        return (self.todo_section,)


@dataclass
class Heading:
    """A heading line emitted by a grammar."""
    level: int
    title: str
    span: SourceSpan
    line_number: int


@dataclass
class Delimiter:
    """A line that closes open headings; ``levels=None`` closes all of them."""
    levels: Optional[int]
    span: SourceSpan


@dataclass
class Section:
    """A heading and the region of the document it governs."""
    title: str
    level: int
    heading_span: SourceSpan
    line_number: int
    end: int = 0
    parent: Optional["Section"] = None
    # Tasks whose innermost heading is this one
    tasks: List[TaskLine] = field(default_factory=list)

    @property
    def last_task(self) -> Optional[TaskLine]:
        return self.tasks[-1] if self.tasks else None


@dataclass
class Document:
    """A parsed document: original text plus the task lines found in it.

    Tasks are kept in source order. Everything between their ``source_span``
    ranges is opaque and reproduced verbatim by the renderer.
    """
    text: str
    tasks: List[TaskLine] = field(default_factory=list)
    sections: List[Section] = field(default_factory=list)
    path: Optional[Path] = None
    modified_at: Optional[datetime] = None

    @property
    def name(self) -> str:
        return str(self.path) if self.path else "<memory>"

    @property
    def newline(self) -> str:
        return "\r\n" if "\r\n" in self.text else "\n"

    def tracked_tasks(self) -> List[TaskLine]:
        """Tasks inside the todo or end-of-day section."""
        return [task for task in self.tasks if task.is_tracked]

    def identified_tasks(self) -> List[TaskLine]:
        return [task for task in self.tasks if task.is_tracked and task.is_identified]

    def find_section(self, title: str) -> Optional[Section]:
        for section in self.sections:
            if section.title == title:
                return section
        return None

    def line_end(self, offset: int) -> int:
        """Offset just past the line break of the line containing ``offset``."""
        newline = self.text.find("\n", offset)
        return len(self.text) if newline == -1 else newline + 1

    def opaque_spans(self) -> List[SourceSpan]:
        """Spans of the text not covered by any task line."""
        spans = []
        cursor = 0
        for task in self.tasks:
            spans.append(SourceSpan(cursor, task.source_span.start))
            cursor = task.source_span.end
        spans.append(SourceSpan(cursor, len(self.text)))
        return spans

    def segments(self) -> Iterator[Union[str, TaskLine]]:
        """Yield opaque text and task lines in source order."""
        opaque = self.opaque_spans()
        for index, span in enumerate(opaque):
            if not span.is_empty:
                yield self.text[span.start:span.end]
            if index < len(self.tasks):
                yield self.tasks[index]

    def reconstruct(self) -> str:
        """Reassemble the document from its segments."""
        parts = []
        for segment in self.segments():
            if isinstance(segment, TaskLine):
                span = segment.source_span
                parts.append(self.text[span.start:span.end])
            else:
                parts.append(segment)
        return "".join(parts)


class DocumentGrammar(ABC):
    """Narrow interface between the parser and a concrete markup language."""

    extensions: Tuple[str, ...] = ()

    @abstractmethod
    def iter_elements(self, text: str) -> Iterator[Union[Heading, Delimiter, TaskLine]]:
        """Yield headings, delimiters and task lines in source order.

        Task lines must carry their spans; ``section`` and ``due`` are
        assigned by the parser.
        """
        pass

    @abstractmethod
    def format_task(self, task: TaskLine) -> str:
        """Render a new task line, without line break."""
        pass

    @abstractmethod
    def format_heading(self, title: str, level: int = 1) -> str:
        """Render a new heading line, without line break."""
        pass

    def accepts(self, path: Path) -> bool:
        return path.suffix in self.extensions


def iter_lines(text: str) -> Iterator[Tuple[int, str]]:
    """Yield ``(start_offset, content)`` for every line, without line breaks."""
    start = 0
    length = len(text)
    while start < length:
        newline = text.find("\n", start)
        end = length if newline == -1 else newline
        content = text[start:end]
        if content.endswith("\r"):
            content = content[:-1]
        yield start, content
        if newline == -1:
            break
        start = newline + 1


class NorgGrammar(DocumentGrammar):
    """The subset of norg needed to find and patch tasks."""

    extensions = (".norg",)

    HEADING_RE = re.compile(r"^[ \t]*(?P<stars>\*+)[ \t]+(?P<title>\S.*?)[ \t]*$")
    WEAK_DELIMITER_RE = re.compile(r"^[ \t]*-{3,}[ \t]*$")
    STRONG_DELIMITER_RE = re.compile(r"^[ \t]*={3,}[ \t]*$")
    VERBATIM_START_RE = re.compile(r"^[ \t]*@(?!end\b)[A-Za-z_][\w.-]*")
    VERBATIM_END_RE = re.compile(r"^[ \t]*@end[ \t]*$")
    TASK_RE = re.compile(
        r"^(?P<indent>[ \t]*)(?P<bullet>-+)[ \t]+\((?P<state>[^)])\)[ \t]+(?P<body>\S.*?)[ \t]*$"
    )

    def iter_elements(self, text: str) -> Iterator[Union[Heading, Delimiter, TaskLine]]:
        in_verbatim = False
        for number, (start, content) in enumerate(iter_lines(text)):
            if in_verbatim:
                if self.VERBATIM_END_RE.match(content):
                    in_verbatim = False
                continue
            if self.VERBATIM_START_RE.match(content):
                in_verbatim = True
                continue

            span = SourceSpan(start, start + len(content))

            match = self.HEADING_RE.match(content)
            if match:
                yield Heading(
                    level=len(match.group("stars")),
                    title=match.group("title"),
                    span=span,
                    line_number=number,
                )
                continue

            if self.WEAK_DELIMITER_RE.match(content):
                yield Delimiter(levels=1, span=span)
                continue
            if self.STRONG_DELIMITER_RE.match(content):
                yield Delimiter(levels=None, span=span)
                continue

            task = self._match_task(content, start, number)
            if task is not None:
                yield task

    def _match_task(self, content: str, start: int, number: int) -> Optional[TaskLine]:
        match = self.TASK_RE.match(content)
        if not match:
            return None

        state = TodoState.from_glyph(match.group("state"))
        if state is None:
            # Pending, cancelled, on hold, ... are not synced
            return None

        body = match.group("body")
        body_start = start + match.start("body")
        identity = None
        identity_span = None
        text = body

        found = IdentityToken.find(body)
        if found is not None and found[2] == len(body):
            identity, token_start, token_end = found
            text = body[:token_start].rstrip()
            identity_span = SourceSpan(body_start + len(text), body_start + token_end)

        state_start = start + match.start("state")
        return TaskLine(
            text=text,
            completed=state is TodoState.DONE,
            identity=identity,
            source_span=SourceSpan(start, start + len(content)),
            state_span=SourceSpan(state_start, state_start + 1),
            text_span=SourceSpan(body_start, body_start + len(text)),
            identity_span=identity_span,
            line_number=number,
            indent=match.group("indent"),
            bullet=match.group("bullet"),
        )

    def format_task(self, task: TaskLine) -> str:
        line = f"{task.indent}{task.bullet} ({task.state.glyph}) {task.text}"
        if task.identity is not None:
            line += f" {task.identity.encode()}"
        return line

    def format_heading(self, title: str, level: int = 1) -> str:
        return f"{'*' * level} {title}"


class DocumentParser:
    """Turns document text into a :class:`Document` for a section configuration."""

    def __init__(self, config: SectionConfig, grammar: Optional[DocumentGrammar] = None):
        self.config = config
        self.grammar = grammar or NorgGrammar()

    def parse(
        self,
        text: str,
        path: Optional[Path] = None,
        modified_at: Optional[datetime] = None,
        today: Optional[date] = None,
    ) -> Document:
        """Parse document text.

        Never fails on content: lines the grammar does not recognize stay
        opaque.

        Args:
            text: Full document text
            path: File the text came from, if any
            modified_at: Last modification time of the file
            today: Day used as due date for end-of-day tasks

        Returns:
            Parsed document
        """
        today = today or date.today()
        tracked = self.config.tracked_titles
        document = Document(text=text, path=path, modified_at=modified_at)
        stack: List[Section] = []

        def close(until: int, count: Optional[int] = None):
            closing = len(stack) if count is None else min(count, len(stack))
            for _ in range(closing):
                stack.pop().end = until

        for element in self.grammar.iter_elements(text):
            if isinstance(element, Heading):
                while stack and stack[-1].level >= element.level:
                    stack.pop().end = element.span.start
                section = Section(
                    title=element.title,
                    level=element.level,
                    heading_span=element.span,
                    line_number=element.line_number,
                    parent=stack[-1] if stack else None,
                )
                document.sections.append(section)
                stack.append(section)
            elif isinstance(element, Delimiter):
                close(element.span.start, element.levels)
            else:
                owner = next((s for s in reversed(stack) if s.title in tracked), None)
                if owner is not None:
                    element.section = owner.title
                    if owner.title == self.config.end_of_day_section:
                        element.due = today
                if stack:
                    stack[-1].tasks.append(element)
                document.tasks.append(element)

        close(len(text))

        logger.debug(
            f"Parsed {document.name}: {len(document.tasks)} tasks, "
            f"{len(document.tracked_tasks())} tracked, {len(document.sections)} sections"
        )
        return document

    def parse_file(self, path: Union[str, Path], today: Optional[date] = None) -> Document:
        """Read and parse a document from disk.

        Raises:
            ParseFatal: If the file cannot be read or decoded
        """
        path = Path(path)
        text, modified_at = read_document(path)
        return self.parse(text, path=path, modified_at=modified_at, today=today)
