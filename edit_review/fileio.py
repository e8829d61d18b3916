"""
Edit Review File I/O

Text reads that preserve line endings, atomic writes and tolerant deletes.
Every disk mutation made on behalf of a reviewer goes through here.
"""

import json
import os
import stat
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

PathLike = Union[str, Path]

_UMASK = os.umask(0)
os.umask(_UMASK)
DEFAULT_FILE_MODE = 0o666 & ~_UMASK


def read_text(path: PathLike, encoding: str = "utf-8") -> Optional[str]:
    """Read a text file exactly as stored.

    Newlines are not translated, so content written back with
    write_text_atomic() is byte-identical.

    Args:
        path: File to read
        encoding: Text encoding

    Returns:
        The file content, or None if the file does not exist

    Raises:
        UnicodeDecodeError: If the file is not valid text in this encoding
        OSError: For any other read failure
    """
    try:
        with open(path, "r", encoding=encoding, newline="") as f:
            return f.read()
    except (FileNotFoundError, NotADirectoryError, IsADirectoryError):
        return None


def write_text_atomic(path: PathLike, content: str, encoding: str = "utf-8") -> None:
    """Write content to a file atomically.

    The content goes to a temporary file in the same directory which then
    replaces the target, so a failure never leaves a partially written file.
    Parent directories are created as needed. An existing target keeps its
    permission bits; a new file gets the umask default mode.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent))
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        try:
            mode = stat.S_IMODE(os.stat(target).st_mode)
        except FileNotFoundError:
            mode = DEFAULT_FILE_MODE
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def write_json_atomic(path: PathLike, data: Dict[str, Any]) -> None:
    """Write JSON data to a file atomically."""
    write_text_atomic(path, json.dumps(data, indent=2))


def remove_file(path: PathLike) -> bool:
    """Delete a file.

    Returns:
        True if the file was removed, False if it was already gone
    """
    try:
        os.unlink(path)
    except FileNotFoundError:
        return False
    return True
