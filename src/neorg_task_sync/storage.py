"""Document file storage for neorg-task-sync.

Documents are plain UTF-8 files. They are read whole and written whole: a new
version is written to a temporary file next to the original and moved into
place, so a document is never left partially rewritten.
"""

import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .errors import DocumentWriteError, ParseFatal
from .utils.datetime import from_timestamp


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

DEFAULT_EXTENSIONS = (".norg",)


def read_document(path: PathLike) -> Tuple[str, datetime]:
    """Read a document and its modification time.

    Args:
        path: Document file

    Returns:
        Tuple of (text, modified_at)

    Raises:
        ParseFatal: If the file cannot be read or is not valid UTF-8
    """
    path = Path(path)
    try:
        stat = path.stat()
        raw = path.read_bytes()
    except OSError as e:
        raise ParseFatal(path, f"cannot read file: {e.strerror or e}") from e

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseFatal(path, f"not valid UTF-8 at byte {e.start}") from e

    return text, from_timestamp(stat.st_mtime)


def backup_name(path: PathLike) -> str:
    """Name of the backup copy: the full path with ``/`` replaced by ``%``."""
    full = Path(path).resolve()
    return f"neorg_task_sync_{str(full).replace(os.sep, '%')}"


class DocumentStorage:
    """Locates, backs up and writes documents."""

    def __init__(
        self,
        ignore_filenames: Iterable[str] = (),
        force: bool = False,
        backup_dir: Optional[PathLike] = None,
        extensions: Sequence[str] = DEFAULT_EXTENSIONS,
    ):
        self.ignore_filenames = set(ignore_filenames)
        self.force = force
        self.backup_dir = Path(backup_dir).expanduser() if backup_dir else None
        self.extensions = tuple(extensions)

    def _accepts(self, path: Path) -> bool:
        return self.force or path.suffix in self.extensions

    def expand_targets(
        self, targets: Sequence[PathLike], sort: bool = True
    ) -> Tuple[List[Path], List[ParseFatal]]:
        """Expand files and folders into the list of documents to sync.

        Folders are walked recursively and contribute only accepted files
        that are not ignored. Files named explicitly are kept even if their
        name is ignored, but must have an accepted extension unless
        ``force`` is set.

        Args:
            targets: Files and folders, in command-line order
            sort: Sort by file name (then full path) instead of keeping order

        Returns:
            Tuple of (files, failures) where failures are targets that could
            not be used
        """
        files: List[Path] = []
        failures: List[ParseFatal] = []
        seen = set()

        def add(path: Path):
            key = path.resolve()
            if key not in seen:
                seen.add(key)
                files.append(path)

        for target in targets:
            path = Path(target)
            if path.is_dir():
                found = []
                for root, dirnames, filenames in os.walk(path):
                    dirnames.sort()
                    for filename in sorted(filenames):
                        candidate = Path(root) / filename
                        if filename in self.ignore_filenames:
                            logger.debug(f"Ignoring {candidate}")
                            continue
                        if candidate.is_file() and self._accepts(candidate):
                            found.append(candidate)
                for candidate in found:
                    add(candidate)
            elif path.is_file():
                if self._accepts(path):
                    add(path)
                else:
                    failures.append(
                        ParseFatal(path, "not a norg file (use --force-norg to sync anyway)")
                    )
            else:
                failures.append(ParseFatal(path, "no such file or directory"))

        if sort:
            files.sort(key=lambda p: (p.name, str(p)))

        return files, failures

    def backup(self, path: PathLike) -> Optional[Path]:
        """Copy a document into the backup directory before it is rewritten."""
        if self.backup_dir is None:
            return None

        path = Path(path)
        destination = self.backup_dir / backup_name(path)
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, destination)
        except OSError as e:
            raise DocumentWriteError(path, f"backup failed: {e}") from e

        logger.debug(f"Backed up {path} to {destination}")
        return destination

    def write(self, path: PathLike, text: str) -> None:
        """Replace a document's content atomically.

        Raises:
            DocumentWriteError: If the new content could not be written
        """
        path = Path(path)
        self.backup(path)

        fd = None
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
            )
            with os.fdopen(fd, "wb") as handle:
                fd = None
                handle.write(text.encode("utf-8"))
                handle.flush()
                os.fsync(handle.fileno())
            try:
                shutil.copymode(path, tmp_name)
            except OSError:
                logger.debug(f"Could not copy permissions of {path}")
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise DocumentWriteError(path, f"write failed: {e}") from e
        finally:
            if fd is not None:
                os.close(fd)
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        logger.info(f"Wrote {path}")
