"""
Edit Review Snapshots - Pre-change file content keyed by absolute path.

A snapshot is the "before" side of every diff. A path that was never
captured reads back as "", meaning there is no prior version.

Usage:
    from edit_review.snapshot import SnapshotStore

    store = SnapshotStore()
    store.capture_tree("/project", excluded_dirs={".git"}, text_extensions={".py"})
    before = store.get("/project/app.py")
"""

import logging
import os
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

from edit_review.exceptions import SnapshotError
from edit_review.fileio import read_text

logger = logging.getLogger(__name__)


def walk_files(root: Union[str, Path], excluded_dirs: Iterable[str] = ()) -> Iterator[Path]:
    """Yield every regular file under root, skipping excluded directory names.

    Walking a root that does not exist yields nothing. Entries are visited
    in sorted order so repeated walks are deterministic.
    """
    excluded = set(excluded_dirs)
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in excluded)
        for name in sorted(filenames):
            full = Path(dirpath) / name
            if full.is_file():
                yield full


class SnapshotStore:
    """Holds captured file content for the current review cycle.

    Args:
        encoding: Text encoding used when reading files
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._encoding = encoding
        self._snapshots: Dict[str, str] = {}

    def __contains__(self, path: object) -> bool:
        return str(path) in self._snapshots

    def __len__(self) -> int:
        return len(self._snapshots)

    @property
    def paths(self) -> List[str]:
        """Get all snapshotted paths."""
        return list(self._snapshots)

    def capture(self, paths: Iterable[Union[str, Path]]) -> int:
        """Capture the current content of specific files.

        A path that does not exist is recorded as "". Earlier entries for the
        same path are overwritten. Nothing is stored unless every path could
        be read.

        Args:
            paths: Absolute file paths

        Returns:
            Number of paths captured

        Raises:
            SnapshotError: If a file exists but cannot be read as text
        """
        captured: Dict[str, str] = {}
        for path in paths:
            key = str(path)
            try:
                content = read_text(key, self._encoding)
            except (OSError, UnicodeDecodeError) as e:
                raise SnapshotError(key, e)
            captured[key] = content if content is not None else ""

        self._snapshots.update(captured)
        return len(captured)

    def capture_tree(
        self,
        root: Union[str, Path],
        excluded_dirs: Iterable[str] = (),
        text_extensions: Optional[Iterable[str]] = None,
    ) -> int:
        """Recursively capture every text file under root.

        Files whose extension is not whitelisted are never read. Files that
        cannot be read or decoded are skipped with a warning rather than
        aborting the whole walk. A missing root captures nothing.

        Args:
            root: Directory to walk
            excluded_dirs: Directory names to skip at any depth
            text_extensions: Lower-case extensions to include (None for all).
                A bare dotfile such as .env matches on its whole name

        Returns:
            Number of files captured
        """
        extensions = {e.lower() for e in text_extensions} if text_extensions is not None else None
        count = 0
        for full in walk_files(root, excluded_dirs):
            if extensions is not None and not (
                full.suffix.lower() in extensions or full.name.lower() in extensions
            ):
                continue
            try:
                content = read_text(full, self._encoding)
            except UnicodeDecodeError:
                logger.debug(f"Skipping non-text file {full}")
                continue
            except OSError as e:
                logger.warning(f"Could not snapshot {full}: {e}")
                continue
            if content is None:
                continue
            self._snapshots[str(full)] = content
            count += 1

        logger.debug(f"Captured {count} files under {root}")
        return count

    def get(self, path: Union[str, Path]) -> str:
        """Get stored content, or "" if the path was never captured."""
        return self._snapshots.get(str(path), "")

    def set(self, path: Union[str, Path], content: str) -> None:
        """Replace the baseline for a path."""
        self._snapshots[str(path)] = content

    def clear(self) -> None:
        """Drop all captured content."""
        self._snapshots.clear()
