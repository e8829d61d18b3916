"""
Edit Review Activity Monitor - Detects agent runs and drives reconciliation.

The agent writes a small JSON marker while it works:

    {"status": "running", "session": "..."}   # while editing
    {"status": "idle", "session": "..."}      # when done

The monitor polls that marker and runs a two-state machine:

    IDLE   --marker "running"-->  ACTIVE   (on-start action for the mode)
    ACTIVE --marker "idle"----->  IDLE     (on-finish action for the mode)

On start:
    propose -> observe the staging directory
    auto    -> snapshot the workspace tree, observe the workspace
    ask     -> snapshot the workspace tree

On finish:
    propose -> stop observing, load staged proposals
    auto    -> stop observing, diff the paths observed to change
    ask     -> diff every snapshotted path

Usage:
    from edit_review.monitor import ActivityMonitor

    monitor = ActivityMonitor(manager, mode_provider)
    monitor.start()     # background polling thread
    ...
    monitor.stop()      # closes the observer and halts polling
"""

import json
import logging
import os
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional, Set, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from edit_review.exceptions import ActivityMarkerError
from edit_review.manager import ReconciliationManager
from edit_review.modes import Mode, ModeProvider

logger = logging.getLogger(__name__)

STATUS_RUNNING = "running"
STATUS_IDLE = "idle"

ErrorListener = Callable[[Exception], None]
ObserverFactory = Callable[[], Any]


class MonitorState(str, Enum):
    """Whether the agent is believed to be running."""

    IDLE = "idle"
    ACTIVE = "active"


def read_activity_status(path: Union[str, Path]) -> Optional[str]:
    """Read the status field of the activity marker.

    Args:
        path: Marker file

    Returns:
        "running", "idle", or None if the marker does not exist

    Raises:
        ActivityMarkerError: If the marker is unreadable, not JSON, or
            carries no recognised status
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ActivityMarkerError(f"Unreadable activity marker {path}: {e}")

    if not isinstance(data, dict):
        raise ActivityMarkerError(f"Activity marker {path} is not an object")
    status = data.get("status")
    if status not in (STATUS_RUNNING, STATUS_IDLE):
        raise ActivityMarkerError(f"Activity marker {path} has unknown status {status!r}")
    return status


class ChangedPaths:
    """Append-only-until-cleared set of paths, safe across threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._paths: Set[str] = set()

    def add(self, path: str) -> None:
        with self._lock:
            self._paths.add(path)

    def snapshot(self) -> List[str]:
        """Get a sorted copy of the current paths."""
        with self._lock:
            return sorted(self._paths)

    def clear(self) -> None:
        with self._lock:
            self._paths.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._paths


class ChangeRecorder(FileSystemEventHandler):
    """Watchdog handler that records added, changed and removed files.

    Args:
        changed: Set the paths are recorded into
        is_ignored: Predicate for paths that should not be recorded
    """

    def __init__(
        self,
        changed: ChangedPaths,
        is_ignored: Optional[Callable[[str], bool]] = None,
    ) -> None:
        super().__init__()
        self._changed = changed
        self._is_ignored = is_ignored

    def _record(self, raw_path: Any) -> None:
        path = os.path.normpath(os.fsdecode(raw_path))
        if self._is_ignored is not None and self._is_ignored(path):
            return
        self._changed.add(path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._record(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._record(event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._record(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._record(event.src_path)
            self._record(event.dest_path)


class ActivityMonitor:
    """
    Two-state machine driven by polling the activity marker.

    tick() performs one poll and at most one transition; start() runs
    tick() on a background thread every poll_interval seconds. The mode is
    read from the provider at every transition, never cached.

    Args:
        manager: Reconciliation manager the transitions act on
        modes: Source of the current mode
        observer_factory: Creates watchdog observers (defaults to Observer)
    """

    def __init__(
        self,
        manager: ReconciliationManager,
        modes: ModeProvider,
        observer_factory: Optional[ObserverFactory] = None,
    ) -> None:
        self._manager = manager
        self._modes = modes
        self._config = manager.config
        self._observer_factory = observer_factory or Observer
        self._observer: Optional[Any] = None
        self._changed = ChangedPaths()
        self._state = MonitorState.IDLE
        self._error_listeners: List[ErrorListener] = []
        self._last_marker_error: Optional[str] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def is_agent_active(self) -> bool:
        return self._state == MonitorState.ACTIVE

    @property
    def is_running(self) -> bool:
        """Check whether the polling thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_observing(self) -> bool:
        return self._observer is not None

    @property
    def changed_paths(self) -> List[str]:
        """Get the paths observed to change in the current active period."""
        return self._changed.snapshot()

    def on_error(self, listener: ErrorListener) -> None:
        """Register a callback for failures raised while polling."""
        self._error_listeners.append(listener)

    # --- Polling ---

    def start(self) -> None:
        """Start polling on a daemon thread. Does nothing if already running."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="edit-review-monitor",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Watching {self._config.activity_file}")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Halt polling and close any active filesystem observer.

        In-flight reconciliation work finishes before the thread exits.
        """
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        self._stop_observation()
        logger.info("Activity monitor stopped")

    def _run(self) -> None:
        while not self._stop_event.wait(self._config.poll_interval):
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Activity monitor tick failed: {e}", exc_info=True)
                for listener in list(self._error_listeners):
                    listener(e)

    def tick(self) -> Optional[MonitorState]:
        """Poll the marker once and apply any transition.

        Returns:
            The state entered, or None if no transition happened
        """
        try:
            status = read_activity_status(self._config.activity_file)
        except ActivityMarkerError as e:
            message = str(e)
            if message != self._last_marker_error:
                logger.warning(message)
                self._last_marker_error = message
            return None
        self._last_marker_error = None

        if status == STATUS_RUNNING and self._state == MonitorState.IDLE:
            self._on_agent_started()
            return MonitorState.ACTIVE
        if status == STATUS_IDLE and self._state == MonitorState.ACTIVE:
            self._on_agent_finished()
            return MonitorState.IDLE
        return None

    # --- Transition actions ---

    def _on_agent_started(self) -> None:
        self._changed.clear()
        mode = self._modes.get_mode()
        logger.info(f"Agent started in {mode.value} mode")

        if mode == Mode.PROPOSE:
            self._start_observation(self._config.staging_dir, ignore_untracked=False)
        elif mode == Mode.AUTO:
            self._manager.begin_session()
            self._start_observation(self._config.workspace_root, ignore_untracked=True)
        elif mode == Mode.ASK:
            self._manager.begin_session()

        self._state = MonitorState.ACTIVE

    def _on_agent_finished(self) -> None:
        self._state = MonitorState.IDLE
        self._stop_observation()
        mode = self._modes.get_mode()
        changed = self._changed.snapshot()
        logger.info(f"Agent finished in {mode.value} mode, {len(changed)} paths observed")

        if mode == Mode.PROPOSE:
            self._manager.load_staged_changes(self._config.staging_dir)
        elif mode == Mode.AUTO:
            self._manager.compute_diffs(changed)
        elif mode == Mode.ASK:
            self._manager.compute_diffs()

    # --- Filesystem observation ---

    def _start_observation(self, root: Union[str, Path], ignore_untracked: bool) -> None:
        self._stop_observation()
        if not os.path.isdir(root):
            logger.debug(f"Not observing {root}: directory does not exist")
            return

        handler = ChangeRecorder(
            self._changed,
            is_ignored=self._is_untracked if ignore_untracked else None,
        )
        observer = self._observer_factory()
        observer.schedule(handler, str(root), recursive=True)
        observer.start()
        self._observer = observer
        logger.debug(f"Observing {root}")

    def _is_untracked(self, path: str) -> bool:
        """Check whether a workspace path is outside what tree capture covers."""
        return self._config.is_excluded(path) or not self._config.is_text_file(path)

    def _stop_observation(self) -> None:
        observer = self._observer
        if observer is None:
            return
        self._observer = None
        observer.stop()
        observer.join()
        logger.debug("Filesystem observer stopped")
