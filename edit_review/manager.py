"""
Edit Review Reconciliation Manager - Snapshots, diffs and accept/reject.

Owns the snapshot baseline and the diff records of the current review
cycle. Changes reach it two ways:

- In place: the agent edited the real files. begin_session() captures the
  baseline, compute_diffs() compares it with disk. Accepting keeps the
  disk content; rejecting restores the baseline (or deletes a new file).
- Staged: the agent wrote proposals to a staging directory mirroring the
  workspace. load_staged_changes() compares each staged file with its real
  counterpart. Accepting copies the proposal into place; rejecting
  discards the staged copy. The real file is never touched on reject.

Usage:
    from edit_review.config import ReviewConfig
    from edit_review.manager import ReconciliationManager

    manager = ReconciliationManager(ReviewConfig(workspace_root="/project"))
    manager.on_diffs_ready(lambda pending: print(len(pending), "to review"))

    manager.begin_session()          # snapshot the whole tree
    # ... agent edits files ...
    manager.compute_diffs()
    result = manager.reject_all()
    for path, error in result.failed.items():
        print(f"could not restore {path}: {error}")
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

from edit_review.config import ReviewConfig
from edit_review.diffing import DiffStatus, FileDiff, diff_contents
from edit_review.exceptions import FileOperationError, ReviewError
from edit_review.fileio import read_text, remove_file, write_text_atomic
from edit_review.snapshot import SnapshotStore, walk_files

logger = logging.getLogger(__name__)

DiffsReadyListener = Callable[[List[FileDiff]], None]
PathArg = Union[str, Path]


@dataclass
class BulkResult:
    """Per-file outcome of accept_all() / reject_all().

    Attributes:
        succeeded: Paths whose record reached its terminal state
        failed: Paths that stayed pending, mapped to the error message
    """

    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class DiffView:
    """Before/after pair for an external side-by-side comparison view."""

    file_path: str
    relative_path: str
    before: str
    after: str
    title: str


class ReconciliationManager:
    """
    Single owner of the snapshot baseline and the diff session.

    Operations are expected to run on one control thread, or be serialized
    by the caller; at most one accept/reject per path may be in flight.
    Callers only ever receive copies of diff records.

    Args:
        config: Workspace configuration
    """

    def __init__(self, config: ReviewConfig) -> None:
        self._config = config
        self._snapshots = SnapshotStore(encoding=config.encoding)
        self._diffs: Dict[str, FileDiff] = {}
        self._listeners: List[DiffsReadyListener] = []

    @property
    def config(self) -> ReviewConfig:
        return self._config

    @property
    def workspace_root(self) -> Path:
        return Path(self._config.workspace_root)

    @property
    def snapshot_paths(self) -> List[str]:
        """Get every path in the current baseline."""
        return self._snapshots.paths

    def snapshot_of(self, path: PathArg) -> str:
        """Get the baseline content for a path ("" if never captured)."""
        return self._snapshots.get(self._key(path))

    def on_diffs_ready(self, listener: DiffsReadyListener) -> None:
        """Register a callback fired when a diff pass produced records.

        The callback receives the current pending records. It fires at most
        once per compute_diffs() / load_staged_changes() call.
        """
        self._listeners.append(listener)

    # --- Session lifecycle ---

    def begin_session(self, paths: Optional[Iterable[PathArg]] = None) -> int:
        """Capture a new baseline, replacing the previous one.

        Args:
            paths: Specific files to capture. None captures the whole
                workspace tree (excluded directories and non-text files
                are skipped).

        Returns:
            Number of files captured

        Raises:
            SnapshotError: If an explicit path exists but cannot be read.
                The previous baseline is left in place.
        """
        fresh = SnapshotStore(encoding=self._config.encoding)
        if paths is None:
            count = fresh.capture_tree(
                self.workspace_root,
                excluded_dirs=self._config.excluded_dirs,
                text_extensions=self._config.text_extensions,
            )
        else:
            count = fresh.capture([self._key(p) for p in paths])

        self._snapshots = fresh
        if self._config.clear_pending_on_capture:
            self._diffs.clear()

        logger.info(f"Captured baseline of {count} files")
        return count

    def clear_session(self) -> None:
        """Drop every diff record and the whole baseline."""
        self._diffs.clear()
        self._snapshots.clear()

    # --- Diff computation ---

    def compute_diffs(self, paths: Optional[Iterable[PathArg]] = None) -> List[FileDiff]:
        """Compare the baseline with the current disk content.

        Paths whose content is unchanged, or that cannot be decoded as
        text, produce no record. Each produced record is pending and
        replaces any earlier record for the same path. Nothing is stored
        if any read fails.

        Args:
            paths: Paths to compare. None compares every baseline path.

        Returns:
            The records produced by this call

        Raises:
            FileOperationError: If a file exists but cannot be read
        """
        keys = self._unique_keys(paths) if paths is not None else self._snapshots.paths

        produced: List[FileDiff] = []
        for key in keys:
            try:
                current = read_text(key, self._config.encoding)
            except UnicodeDecodeError:
                logger.debug(f"Skipping non-text file {key}")
                continue
            except OSError as e:
                raise FileOperationError(key, "read", e)

            record = diff_contents(
                key,
                self._relative(key),
                self._snapshots.get(key),
                current if current is not None else "",
            )
            if record is None:
                continue
            produced.append(record)

        return self._commit(produced)

    def load_staged_changes(self, staging_root: Optional[PathArg] = None) -> List[FileDiff]:
        """Create records from proposals in a staging directory.

        Each staged file maps to the real file at the same relative path
        under the workspace. A missing real file counts as new content; a
        missing staging directory yields no records. Staged records are
        never deletions.

        Args:
            staging_root: Staging directory (defaults to the configured one)

        Returns:
            The records produced by this call

        Raises:
            FileOperationError: If a staged or real file cannot be read
        """
        root = Path(staging_root) if staging_root is not None else self._config.staging_dir

        produced: List[FileDiff] = []
        for staged in walk_files(root):
            relative = staged.relative_to(root)
            actual = self._key(self.workspace_root / relative)
            try:
                after = read_text(staged, self._config.encoding)
            except UnicodeDecodeError:
                logger.debug(f"Skipping non-text proposal {staged}")
                continue
            except OSError as e:
                raise FileOperationError(str(staged), "read", e)
            try:
                before = read_text(actual, self._config.encoding)
            except UnicodeDecodeError:
                logger.debug(f"Skipping proposal for non-text file {actual}")
                continue
            except OSError as e:
                raise FileOperationError(actual, "read", e)
            if after is None:
                continue

            record = diff_contents(
                actual,
                relative.as_posix(),
                before if before is not None else "",
                after,
                staged_path=str(staged),
            )
            if record is not None:
                produced.append(record)

        return self._commit(produced)

    def _commit(self, produced: List[FileDiff]) -> List[FileDiff]:
        for record in produced:
            self._diffs[record.file_path] = record

        logger.info(f"Diff pass produced {len(produced)} records")
        if produced:
            self._notify()
        return [replace(r) for r in produced]

    def _notify(self) -> None:
        pending = self.get_pending()
        for listener in list(self._listeners):
            try:
                listener(pending)
            except Exception:
                logger.warning("diffs-ready listener failed", exc_info=True)

    # --- Accept / reject ---

    def accept_file(self, path: PathArg) -> bool:
        """Accept the pending change for a path.

        In-place records need no disk work: the file already holds the
        after-state. Staged records are written into place and their
        staged copy removed. The baseline for the path becomes the
        accepted content.

        Returns:
            True if a pending record was accepted, False if there was
            nothing to do

        Raises:
            FileOperationError: If the proposal could not be written. The
                record stays pending.
        """
        record = self._diffs.get(self._key(path))
        if record is None or not record.is_pending:
            return False

        if record.staged_path is not None:
            try:
                write_text_atomic(record.file_path, record.after, self._config.encoding)
            except OSError as e:
                raise FileOperationError(record.file_path, "write", e)
            self._discard_staged(record, strict=False)

        record.status = DiffStatus.ACCEPTED
        self._snapshots.set(record.file_path, record.after)
        logger.info(f"Accepted {record.relative_path}")
        return True

    def reject_file(self, path: PathArg) -> bool:
        """Reject the pending change for a path.

        In-place records are rolled back on disk: a new file is deleted,
        anything else has its before-content written back. Staged records
        only lose their staged copy.

        Returns:
            True if a pending record was rejected, False if there was
            nothing to do

        Raises:
            FileOperationError: If the rollback failed. The record stays
                pending.
        """
        record = self._diffs.get(self._key(path))
        if record is None or not record.is_pending:
            return False

        if record.staged_path is not None:
            self._discard_staged(record, strict=True)
        elif record.is_new:
            try:
                remove_file(record.file_path)
            except OSError as e:
                raise FileOperationError(record.file_path, "delete", e)
        else:
            try:
                write_text_atomic(record.file_path, record.before, self._config.encoding)
            except OSError as e:
                raise FileOperationError(record.file_path, "write", e)

        record.status = DiffStatus.REJECTED
        logger.info(f"Rejected {record.relative_path}")
        return True

    def accept_all(self) -> BulkResult:
        """Accept every pending record. One failure does not stop the rest."""
        return self._apply_all(self.accept_file)

    def reject_all(self) -> BulkResult:
        """Reject every pending record. One failure does not stop the rest."""
        return self._apply_all(self.reject_file)

    def _apply_all(self, operation: Callable[[PathArg], bool]) -> BulkResult:
        result = BulkResult()
        for record in [r for r in self._diffs.values() if r.is_pending]:
            try:
                operation(record.file_path)
            except ReviewError as e:
                logger.warning(str(e))
                result.failed[record.file_path] = str(e)
            else:
                result.succeeded.append(record.file_path)
        return result

    def _discard_staged(self, record: FileDiff, strict: bool) -> None:
        staged = record.staged_path
        if staged is None:
            return
        try:
            remove_file(staged)
        except OSError as e:
            if strict:
                raise FileOperationError(staged, "delete", e)
            logger.warning(f"Could not remove staged copy {staged}: {e}")

    # --- Queries ---

    def get(self, path: PathArg) -> Optional[FileDiff]:
        """Get a copy of the record for a path, if any."""
        record = self._diffs.get(self._key(path))
        return replace(record) if record is not None else None

    def get_pending(self) -> List[FileDiff]:
        """Get copies of all pending records."""
        return [replace(r) for r in self._diffs.values() if r.is_pending]

    def get_all(self) -> List[FileDiff]:
        """Get copies of all records in the session."""
        return [replace(r) for r in self._diffs.values()]

    def has_pending(self) -> bool:
        return any(r.is_pending for r in self._diffs.values())

    def summary(self) -> Dict[str, int]:
        """Count records by status."""
        counts = {status.value: 0 for status in DiffStatus}
        for record in self._diffs.values():
            counts[record.status.value] += 1
        counts["total"] = len(self._diffs)
        return counts

    def request_diff_view(self, path: PathArg) -> Optional[DiffView]:
        """Get the before/after pair for an external comparison view."""
        record = self._diffs.get(self._key(path))
        if record is None:
            return None
        return DiffView(
            file_path=record.file_path,
            relative_path=record.relative_path,
            before=record.before,
            after=record.after,
            title=f"Agent changes: {record.relative_path}",
        )

    # --- Paths ---

    def _key(self, path: PathArg) -> str:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.workspace_root / candidate
        return os.path.normpath(str(candidate))

    def _unique_keys(self, paths: Iterable[PathArg]) -> List[str]:
        seen: Dict[str, None] = {}
        for path in paths:
            seen.setdefault(self._key(path), None)
        return list(seen)

    def _relative(self, key: str) -> str:
        return Path(os.path.relpath(key, self.workspace_root)).as_posix()
