"""
Edit Review Diffing - Unified diffs and per-file diff records.

Patches are generated with difflib in conventional unified format:

    --- a/src/app.py
    +++ b/src/app.py
    @@ -1,2 +1,2 @@
    -old line
    +new line
     unchanged line

No timestamps are embedded, so identical inputs always produce identical
patch text. A line without a trailing newline is followed by the usual
"\\ No newline at end of file" marker.

Usage:
    from edit_review.diffing import diff_contents

    record = diff_contents("/project/a.txt", "a.txt", "hello", "hello world")
    if record is not None:
        print(record.patch)
"""

import difflib
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Literal, Optional, Tuple

NO_NEWLINE_MARKER = "\\ No newline at end of file"
CONTEXT_LINES = 3
PATCH_HEADER_LINES = 2

PatchLineKind = Literal["hunk", "add", "remove", "context", "meta"]


class DiffStatus(str, Enum):
    """Review state of a diff record. Only PENDING can change."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass
class FileDiff:
    """One changed file in the current review cycle.

    Attributes:
        file_path: Absolute path of the real file
        relative_path: Workspace-relative path used in patch headers
        before: Content before the change ("" if the file did not exist)
        after: Content after the change ("" if the file was deleted)
        patch: Unified diff from before to after
        status: pending, accepted or rejected
        is_new: before is empty and after is not
        is_deleted: before is not empty and after is
        staged_path: For proposals loaded from a staging directory, the
            staged file holding `after`; None for in-place edits
    """

    file_path: str
    relative_path: str
    before: str
    after: str
    patch: str
    status: DiffStatus = DiffStatus.PENDING
    is_new: bool = False
    is_deleted: bool = False
    staged_path: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == DiffStatus.PENDING

    @property
    def is_staged(self) -> bool:
        return self.staged_path is not None

    @property
    def additions(self) -> int:
        """Count of added lines in the patch."""
        return sum(1 for kind, _ in parse_patch(self.patch) if kind == "add")

    @property
    def deletions(self) -> int:
        """Count of removed lines in the patch."""
        return sum(1 for kind, _ in parse_patch(self.patch) if kind == "remove")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase shape presentation layers expect."""
        return {
            "filePath": self.file_path,
            "relativePath": self.relative_path,
            "before": self.before,
            "after": self.after,
            "patch": self.patch,
            "status": self.status.value,
            "isNew": self.is_new,
            "isDeleted": self.is_deleted,
        }


def _split_lines(content: str) -> List[str]:
    # Lines end at "\n" only; "\r" and "\f" stay part of the line.
    parts = content.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def generate_patch(relative_path: str, before: str, after: str) -> str:
    """Generate a unified diff between two texts.

    Args:
        relative_path: Path used for the a/ and b/ file labels
        before: Original content
        after: Modified content

    Returns:
        Unified diff text ending in a newline, or "" if the texts are equal
    """
    if before == after:
        return ""

    out: List[str] = []
    for line in difflib.unified_diff(
        _split_lines(before),
        _split_lines(after),
        fromfile=f"a/{relative_path}",
        tofile=f"b/{relative_path}",
        n=CONTEXT_LINES,
        lineterm="\n",
    ):
        if line.endswith("\n"):
            out.append(line)
        else:
            out.append(line + "\n")
            out.append(NO_NEWLINE_MARKER + "\n")

    return "".join(out)


def classify(before: str, after: str) -> Dict[str, bool]:
    """Classify a change as new, deleted or an ordinary modification."""
    return {
        "is_new": before == "" and after != "",
        "is_deleted": before != "" and after == "",
    }


def diff_contents(
    file_path: str,
    relative_path: str,
    before: str,
    after: str,
    staged_path: Optional[str] = None,
) -> Optional[FileDiff]:
    """Build a pending diff record, or None if nothing changed.

    Args:
        file_path: Absolute path of the real file
        relative_path: Workspace-relative path for patch labels
        before: Content before the change
        after: Content after the change
        staged_path: Staged file the after-state came from, if any

    Returns:
        A FileDiff with status pending, or None when before == after
    """
    if before == after:
        return None

    flags = classify(before, after)
    if staged_path is not None:
        # Staged proposals never represent deletions.
        flags["is_deleted"] = False

    return FileDiff(
        file_path=file_path,
        relative_path=relative_path,
        before=before,
        after=after,
        patch=generate_patch(relative_path, before, after),
        status=DiffStatus.PENDING,
        staged_path=staged_path,
        **flags,
    )


def parse_patch(patch: str) -> Iterator[Tuple[PatchLineKind, str]]:
    """Classify the body lines of a unified diff for rendering.

    The two file header lines are skipped.

    Yields:
        (kind, text) pairs where kind is one of "hunk", "add", "remove",
        "context" or "meta" and text has its leading marker removed
        (except for hunk headers and meta lines, which are kept whole)
    """
    lines = patch.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    for line in lines[PATCH_HEADER_LINES:]:
        if line.startswith("@@"):
            yield ("hunk", line)
        elif line.startswith("+"):
            yield ("add", line[1:])
        elif line.startswith("-"):
            yield ("remove", line[1:])
        elif line.startswith(" "):
            yield ("context", line[1:])
        else:
            yield ("meta", line)
