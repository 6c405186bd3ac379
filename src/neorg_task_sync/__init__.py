"""neorg-task-sync - Sync to-do items in norg documents with a remote task list."""

__version__ = "0.1.0"

from .todo import IdentityToken, SourceSpan, TaskLine, TodoState
from .parser import Document, DocumentParser, NorgGrammar, SectionConfig
from .renderer import AnnotateIdentity, DocumentRenderer, Insert, UpdateSpan

__all__ = [
    "IdentityToken",
    "SourceSpan",
    "TaskLine",
    "TodoState",
    "Document",
    "DocumentParser",
    "NorgGrammar",
    "SectionConfig",
    "AnnotateIdentity",
    "DocumentRenderer",
    "Insert",
    "UpdateSpan",
    "__version__",
]
