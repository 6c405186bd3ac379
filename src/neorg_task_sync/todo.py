"""Task line data model for neorg-task-sync.

A task line is one checkbox item inside a norg document. Its identity token
is the only thing that links it to a remote task across runs; the text and
completion state may be edited freely on either side.
"""

import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class TodoState(Enum):
    """Checkbox states recognized as tasks."""
    OPEN = " "
    DONE = "x"

    @classmethod
    def from_glyph(cls, glyph: str) -> Optional["TodoState"]:
        """Map a checkbox glyph to a state, or None for unrecognized glyphs."""
        for state in cls:
            if state.value == glyph:
                return state
        return None

    @property
    def glyph(self) -> str:
        return self.value


@dataclass(frozen=True, order=True)
class SourceSpan:
    """Half-open character range ``[start, end)`` inside a document's text."""
    start: int
    end: int

    def __post_init__(self):
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid span: [{self.start}, {self.end})")

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def overlaps(self, other: "SourceSpan") -> bool:
        """Check whether two spans touch the same text.

        Two empty spans at the same offset count as overlapping, since both
        would insert text at the same position.
        """
        if self.is_empty and other.is_empty:
            return self.start == other.start
        if self.is_empty:
            return other.start < self.start < other.end
        if other.is_empty:
            return self.start < other.start < self.end
        return self.start < other.end and other.start < self.end



@dataclass(frozen=True)
class IdentityToken:
    """Opaque identity embedded after a task's text as ``%#taskid <token>%``.

    The annotation is an inline comment, so it is invisible in rendered norg.
    Tokens are compared for equality only and never interpreted.
    """
    value: str

    TAG = "#taskid"
    PATTERN = re.compile(r"%#taskid\s+(?P<token>[^\s%]+)\s*%")

    def __post_init__(self):
        if not self.value or any(c.isspace() or c == "%" for c in self.value):
            raise ValueError(f"Invalid identity token: {self.value!r}")

    def __str__(self) -> str:
        return self.value

    def encode(self) -> str:
        """Render the annotation text (without leading separator)."""
        return f"%{self.TAG} {self.value}%"

    @classmethod
    def decode(cls, text: str) -> Optional["IdentityToken"]:
        """Extract the token from an annotation, or None if there is none."""
        found = cls.find(text)
        return found[0] if found else None

    @classmethod
    def find(cls, text: str) -> Optional[Tuple["IdentityToken", int, int]]:
        """Locate the last annotation in ``text``.

        Returns:
            Tuple of (token, start, end) where start/end delimit the
            annotation within ``text``, or None
        """
        last = None
        for match in cls.PATTERN.finditer(text):
            last = match
        if last is None:
            return None
        return cls(last.group("token")), last.start(), last.end()


@dataclass
class TaskLine:
    """One to-do item parsed from (or destined for) a document.

    ``source_span`` and the finer spans are only valid for the text they were
    parsed from; they are recomputed on every parse and never persisted.
    """

    text: str
    completed: bool = False
    identity: Optional[IdentityToken] = None
    due: Optional[date] = None
    section: Optional[str] = None

    # Positions inside the owning document
    source_span: Optional[SourceSpan] = None
    state_span: Optional[SourceSpan] = None
    text_span: Optional[SourceSpan] = None
    identity_span: Optional[SourceSpan] = None
    line_number: Optional[int] = None
    indent: str = "  "
    bullet: str = "-"

    @property
    def state(self) -> TodoState:
        return TodoState.DONE if self.completed else TodoState.OPEN

    @property
    def is_identified(self) -> bool:
        return self.identity is not None

    @property
    def is_tracked(self) -> bool:
        """Tasks outside the todo and end-of-day sections are never synced."""
        return self.section is not None

    @property
    def annotation_point(self) -> SourceSpan:
        """Empty span right after the text, where an identity is appended."""
        if self.text_span is None:
            raise ValueError(f"Task '{self.text}' has no source position")
        return SourceSpan(self.text_span.end, self.text_span.end)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "text": self.text,
            "completed": self.completed,
            "identity": str(self.identity) if self.identity else None,
            "due": self.due.isoformat() if self.due else None,
            "section": self.section,
            "line": self.line_number + 1 if self.line_number is not None else None,
        }
