"""
Edit Review Presentation Bridge - Intent dispatch for review UIs.

A presentation layer (webview, TUI, editor panel) renders the diff
records and posts intents back as small message dicts:

    {"command": "acceptFile", "filePath": "/project/src/app.py"}
    {"command": "rejectAll"}
    {"command": "openDiff", "filePath": "/project/src/app.py"}
    {"command": "switchMode", "mode": "auto"}

ReviewController routes each one to the reconciliation manager (or the
mode provider) and returns the operation's result. It never touches file
content itself.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from edit_review.exceptions import InvalidIntentError
from edit_review.manager import ReconciliationManager
from edit_review.modes import Mode, SwitchableModeProvider

logger = logging.getLogger(__name__)

OpenFileHandler = Callable[[str], None]


class ReviewController:
    """Routes presentation intents into the reconciliation manager.

    Args:
        manager: The session's reconciliation manager
        modes: Mode provider used for switchMode (optional)
        open_file: Callback asked to open a file in an editor (optional)
    """

    COMMANDS = (
        "acceptFile",
        "rejectFile",
        "acceptAll",
        "rejectAll",
        "openDiff",
        "openFile",
        "switchMode",
    )

    def __init__(
        self,
        manager: ReconciliationManager,
        modes: Optional[SwitchableModeProvider] = None,
        open_file: Optional[OpenFileHandler] = None,
    ) -> None:
        self._manager = manager
        self._modes = modes
        self._open_file = open_file

    def handle(self, message: Dict[str, Any]) -> Any:
        """Dispatch one presentation message.

        Returns:
            acceptFile / rejectFile: bool, whether the record changed state
            acceptAll / rejectAll: BulkResult
            openDiff: DiffView, or None if the path has no record
            openFile: the path handed to the open_file callback
            switchMode: bool, whether the agent settings were synced

        Raises:
            InvalidIntentError: Unknown command or missing field
            FileOperationError: A single-file accept/reject failed on disk
        """
        command = message.get("command")
        if command not in self.COMMANDS:
            raise InvalidIntentError(f"Unknown review command: {command!r}")

        logger.debug(f"Review intent {command}")

        if command == "acceptAll":
            return self._manager.accept_all()
        if command == "rejectAll":
            return self._manager.reject_all()
        if command == "switchMode":
            return self._switch_mode(message)

        file_path = self._require(message, "filePath")
        if command == "acceptFile":
            return self._manager.accept_file(file_path)
        if command == "rejectFile":
            return self._manager.reject_file(file_path)
        if command == "openDiff":
            return self._manager.request_diff_view(file_path)

        if self._open_file is None:
            raise InvalidIntentError("No file opener is configured")
        self._open_file(file_path)
        return file_path

    def view_state(self) -> Dict[str, Any]:
        """Everything a renderer needs for one refresh."""
        diffs: List[Dict[str, Any]] = []
        for record in self._manager.get_all():
            entry = record.to_dict()
            entry["additions"] = record.additions
            entry["deletions"] = record.deletions
            diffs.append(entry)
        return {
            "mode": self._modes.get_mode().value if self._modes is not None else None,
            "summary": self._manager.summary(),
            "diffs": diffs,
        }

    def _switch_mode(self, message: Dict[str, Any]) -> bool:
        if self._modes is None:
            raise InvalidIntentError("Mode switching is not available")
        raw = self._require(message, "mode")
        try:
            mode = Mode(raw)
        except ValueError:
            raise InvalidIntentError(f"Unknown mode: {raw!r}")
        return self._modes.set_mode(mode)

    @staticmethod
    def _require(message: Dict[str, Any], key: str) -> Any:
        value = message.get(key)
        if not value:
            raise InvalidIntentError(f"Review command {message.get('command')!r} requires {key!r}")
        return value
