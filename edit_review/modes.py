"""
Edit Review Modes - Operating mode selection and persistence.

Modes:
    auto    -> the agent edits files immediately; changes are reviewed after
    propose -> the agent writes proposals to a staging directory; nothing
               touches the real files until accepted
    ask     -> the agent asks before each edit (gated outside this package);
               changes are reconciled the same way as auto

The ModeManager is the default Mode Provider. It persists the selected mode
to a small JSON state file and mirrors it into the external agent's
settings file so the agent itself behaves accordingly:

    auto    -> autoApproveEdits: true,  dryRun: false
    propose -> autoApproveEdits: false, dryRun: true
    ask     -> autoApproveEdits: false, dryRun: false

Usage:
    from edit_review.modes import Mode, ModeManager

    modes = ModeManager(state_file=Path(".claude/edit-review.json"),
                        agent_settings_path=Path.home() / ".claude/settings.json")
    modes.on_mode_change(lambda mode: print(f"now {mode.value}"))
    synced = modes.set_mode(Mode.AUTO)
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from edit_review.exceptions import ModeSyncError
from edit_review.fileio import write_json_atomic

logger = logging.getLogger(__name__)


class Mode(str, Enum):
    """How agent edits reach the real files."""

    AUTO = "auto"
    PROPOSE = "propose"
    ASK = "ask"


MODE_SETTINGS: Dict[Mode, Dict[str, bool]] = {
    Mode.AUTO: {"autoApproveEdits": True, "dryRun": False},
    Mode.PROPOSE: {"autoApproveEdits": False, "dryRun": True},
    Mode.ASK: {"autoApproveEdits": False, "dryRun": False},
}

ModeListener = Callable[[Mode], None]
SyncFailureListener = Callable[[Mode, ModeSyncError], None]


@runtime_checkable
class ModeProvider(Protocol):
    """Minimal interface the activity monitor needs from a mode source."""

    def get_mode(self) -> Mode:
        ...

    def on_mode_change(self, listener: ModeListener) -> None:
        ...


@runtime_checkable
class SwitchableModeProvider(ModeProvider, Protocol):
    """Mode provider that also accepts mode changes from the reviewer."""

    def set_mode(self, mode: Mode) -> bool:
        ...


class StaticModeProvider:
    """In-memory mode provider. Nothing is persisted or synced."""

    def __init__(self, mode: Mode = Mode.PROPOSE) -> None:
        self._mode = Mode(mode)
        self._listeners: List[ModeListener] = []

    def get_mode(self) -> Mode:
        return self._mode

    def set_mode(self, mode: Mode) -> bool:
        self._mode = Mode(mode)
        for listener in list(self._listeners):
            listener(self._mode)
        return True

    def on_mode_change(self, listener: ModeListener) -> None:
        self._listeners.append(listener)


class ModeManager:
    """
    Persisting Mode Provider.

    The in-memory mode always changes on set_mode(), even when the external
    settings file cannot be written. Sync failures are logged and delivered
    to on_sync_failure listeners so the user can be told that the agent may
    not honour the displayed mode.

    Args:
        state_file: JSON file the selected mode is persisted to
        agent_settings_path: External agent settings file to mirror into
        default_mode: Mode used when the state file holds nothing usable
    """

    def __init__(
        self,
        state_file: Optional[Path] = None,
        agent_settings_path: Optional[Path] = None,
        default_mode: Mode = Mode.PROPOSE,
    ) -> None:
        self._state_file = Path(state_file) if state_file else None
        self._agent_settings_path = Path(agent_settings_path) if agent_settings_path else None
        self._listeners: List[ModeListener] = []
        self._sync_failure_listeners: List[SyncFailureListener] = []
        self._last_sync_error: Optional[ModeSyncError] = None
        self._mode = self._load_persisted() or Mode(default_mode)
        self.sync_to_agent_settings()

    @property
    def current_mode(self) -> Mode:
        """Get the current mode."""
        return self._mode

    @property
    def last_sync_error(self) -> Optional[ModeSyncError]:
        """Get the most recent sync failure, or None if the last sync worked."""
        return self._last_sync_error

    def get_mode(self) -> Mode:
        return self._mode

    def on_mode_change(self, listener: ModeListener) -> None:
        """Register a callback fired after every mode change."""
        self._listeners.append(listener)

    def on_sync_failure(self, listener: SyncFailureListener) -> None:
        """Register a callback fired when the agent settings cannot be written."""
        self._sync_failure_listeners.append(listener)

    def set_mode(self, mode: Mode) -> bool:
        """Switch mode, persist it and mirror it to the agent settings.

        Args:
            mode: The new mode (a Mode or its string value)

        Returns:
            True if the agent settings were synced, False if syncing failed
        """
        self._mode = Mode(mode)
        logger.info(f"Edit mode set to {self._mode.value}")
        self._persist()
        synced = self.sync_to_agent_settings()
        for listener in list(self._listeners):
            listener(self._mode)
        return synced

    def sync_to_agent_settings(self) -> bool:
        """Write the current mode's flags into the agent settings file.

        Existing keys in the settings file are preserved. An unreadable or
        malformed settings file is replaced rather than merged.

        Returns:
            True on success, False if the file could not be written
        """
        if self._agent_settings_path is None:
            return True

        path = self._agent_settings_path
        settings: Dict[str, Any] = {}
        if path.exists():
            try:
                with open(path, encoding="utf-8") as f:
                    loaded = json.load(f)
                if isinstance(loaded, dict):
                    settings = loaded
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Ignoring unreadable agent settings {path}: {e}")

        settings.update(MODE_SETTINGS[self._mode])

        try:
            write_json_atomic(path, settings)
        except OSError as e:
            error = ModeSyncError(f"Could not sync mode to {path}: {e}")
            self._last_sync_error = error
            logger.warning(str(error))
            for listener in list(self._sync_failure_listeners):
                listener(self._mode, error)
            return False

        self._last_sync_error = None
        return True

    def _load_persisted(self) -> Optional[Mode]:
        if self._state_file is None or not self._state_file.exists():
            return None
        try:
            with open(self._state_file, encoding="utf-8") as f:
                data = json.load(f)
            return Mode(data["mode"])
        except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable mode state {self._state_file}: {e}")
            return None

    def _persist(self) -> None:
        if self._state_file is None:
            return
        try:
            write_json_atomic(self._state_file, {"mode": self._mode.value})
        except OSError as e:
            logger.warning(f"Could not persist mode to {self._state_file}: {e}")
