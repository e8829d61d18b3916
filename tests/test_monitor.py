"""
Tests for the activity monitor state machine.
"""

import threading
import time

import pytest
from watchdog.events import (
    DirModifiedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from edit_review.exceptions import ActivityMarkerError
from edit_review.modes import Mode
from edit_review.monitor import (
    ActivityMonitor,
    ChangedPaths,
    ChangeRecorder,
    MonitorState,
    read_activity_status,
)


@pytest.fixture
def monitor(manager, modes, observers):
    monitor = ActivityMonitor(manager, modes, observer_factory=observers)
    yield monitor
    monitor.stop(timeout=2)


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestReadActivityStatus:
    """Tests for parsing the activity marker."""

    def test_missing_marker(self, config):
        assert read_activity_status(config.activity_file) is None

    @pytest.mark.parametrize("status", ["running", "idle"])
    def test_known_status(self, config, set_marker, status):
        set_marker(status)
        assert read_activity_status(config.activity_file) == status

    @pytest.mark.parametrize("content", ["not json", "[1, 2]", '{"status": "paused"}', "{}"])
    def test_malformed_marker(self, config, content):
        config.activity_file.parent.mkdir(parents=True, exist_ok=True)
        config.activity_file.write_text(content)
        with pytest.raises(ActivityMarkerError):
            read_activity_status(config.activity_file)


class TestChangeRecorder:
    """Tests for the watchdog event handler."""

    def test_records_file_events(self, tmp_path):
        changed = ChangedPaths()
        recorder = ChangeRecorder(changed)
        recorder.dispatch(FileCreatedEvent(str(tmp_path / "a.txt")))
        recorder.dispatch(FileModifiedEvent(str(tmp_path / "b.txt")))
        recorder.dispatch(FileDeletedEvent(str(tmp_path / "c.txt")))
        assert changed.snapshot() == [
            str(tmp_path / "a.txt"),
            str(tmp_path / "b.txt"),
            str(tmp_path / "c.txt"),
        ]

    def test_move_records_both_ends(self, tmp_path):
        changed = ChangedPaths()
        ChangeRecorder(changed).dispatch(
            FileMovedEvent(str(tmp_path / "old.txt"), str(tmp_path / "new.txt"))
        )
        assert str(tmp_path / "old.txt") in changed
        assert str(tmp_path / "new.txt") in changed

    def test_ignores_directories(self, tmp_path):
        changed = ChangedPaths()
        ChangeRecorder(changed).dispatch(DirModifiedEvent(str(tmp_path)))
        assert len(changed) == 0

    def test_ignore_predicate(self, tmp_path):
        changed = ChangedPaths()
        recorder = ChangeRecorder(changed, is_ignored=lambda path: path.endswith(".log"))
        recorder.dispatch(FileModifiedEvent(str(tmp_path / "debug.log")))
        recorder.dispatch(FileModifiedEvent(str(tmp_path / "keep.txt")))
        assert changed.snapshot() == [str(tmp_path / "keep.txt")]

    def test_duplicates_collapse(self, tmp_path):
        changed = ChangedPaths()
        recorder = ChangeRecorder(changed)
        for _ in range(3):
            recorder.dispatch(FileModifiedEvent(str(tmp_path / "a.txt")))
        assert len(changed) == 1


class TestTransitions:
    """Tests for tick()-driven transitions."""

    def test_idle_without_marker(self, monitor):
        assert monitor.tick() is None
        assert monitor.state == MonitorState.IDLE

    def test_running_then_idle(self, monitor, set_marker):
        set_marker("running")
        assert monitor.tick() == MonitorState.ACTIVE
        assert monitor.is_agent_active
        assert monitor.tick() is None

        set_marker("idle")
        assert monitor.tick() == MonitorState.IDLE
        assert not monitor.is_agent_active
        assert monitor.tick() is None

    def test_idle_marker_while_idle_does_nothing(self, monitor, set_marker, manager):
        calls = []
        manager.on_diffs_ready(calls.append)
        set_marker("idle")
        assert monitor.tick() is None
        assert calls == []

    def test_malformed_marker_keeps_state(self, monitor, config, set_marker):
        set_marker("running")
        monitor.tick()
        config.activity_file.write_text("{broken")
        assert monitor.tick() is None
        assert monitor.tick() is None
        assert monitor.state == MonitorState.ACTIVE

    def test_failed_start_stays_idle(self, monitor, manager, modes, set_marker, monkeypatch):
        def failing_begin(paths=None):
            raise RuntimeError("capture failed")

        monkeypatch.setattr(manager, "begin_session", failing_begin)
        modes.set_mode(Mode.ASK)
        set_marker("running")
        with pytest.raises(RuntimeError):
            monitor.tick()
        assert monitor.state == MonitorState.IDLE

        monkeypatch.undo()
        assert monitor.tick() == MonitorState.ACTIVE

    def test_removed_marker_keeps_state(self, monitor, config, set_marker):
        set_marker("running")
        monitor.tick()
        config.activity_file.unlink()
        assert monitor.tick() is None
        assert monitor.state == MonitorState.ACTIVE


class TestProposeMode:
    """Agent writes proposals into the staging directory."""

    def test_staged_proposals_become_records(self, monitor, manager, config, observers, set_marker):
        config.staging_dir.mkdir(parents=True)
        set_marker("running")
        monitor.tick()

        observer = observers.last
        assert observer.started
        assert observer.scheduled[0][1] == str(config.staging_dir)

        staged = config.staging_dir / "src" / "app.py"
        staged.parent.mkdir(parents=True)
        staged.write_text("def main():\n    return 42\n")
        observer.emit(FileCreatedEvent(str(staged)))

        set_marker("idle")
        monitor.tick()

        assert observer.stopped and observer.joined
        assert not monitor.is_observing
        pending = manager.get_pending()
        assert len(pending) == 1
        assert pending[0].file_path == str(config.workspace_root / "src" / "app.py")
        assert pending[0].staged_path == str(staged)

    def test_missing_staging_dir_is_not_observed(self, monitor, observers, set_marker):
        set_marker("running")
        monitor.tick()
        assert observers.created == []
        assert not monitor.is_observing

    def test_real_files_untouched(self, monitor, config, set_marker):
        app = config.workspace_root / "src" / "app.py"
        original = app.read_text()
        config.staging_dir.mkdir(parents=True)
        set_marker("running")
        monitor.tick()
        (config.staging_dir / "README.md").write_text("# Proposed\n")
        set_marker("idle")
        monitor.tick()
        assert app.read_text() == original
        assert (config.workspace_root / "README.md").read_text() == "# Project\n"


class TestAutoMode:
    """Agent edits files in place while the workspace is observed."""

    @pytest.fixture(autouse=True)
    def auto(self, modes):
        modes.set_mode(Mode.AUTO)

    def test_observed_changes_are_diffed(self, monitor, manager, config, observers, set_marker):
        set_marker("running")
        monitor.tick()
        assert len(manager.snapshot_paths) == 2
        observer = observers.last
        assert observer.scheduled[0][1] == str(config.workspace_root)

        app = config.workspace_root / "src" / "app.py"
        app.write_text("def main():\n    return 2\n")
        observer.emit(FileModifiedEvent(str(app)))

        set_marker("idle")
        monitor.tick()

        pending = manager.get_pending()
        assert [r.relative_path for r in pending] == ["src/app.py"]
        assert observer.stopped

    def test_unobserved_changes_are_not_diffed(self, monitor, manager, config, set_marker):
        set_marker("running")
        monitor.tick()
        (config.workspace_root / "README.md").write_text("silent edit\n")
        set_marker("idle")
        monitor.tick()
        assert manager.get_pending() == []

    def test_excluded_paths_are_ignored(self, monitor, config, observers, set_marker):
        set_marker("running")
        monitor.tick()
        observers.last.emit(
            FileModifiedEvent(str(config.workspace_root / "node_modules" / "pkg" / "index.js"))
        )
        observers.last.emit(FileModifiedEvent(str(config.activity_file)))
        assert monitor.changed_paths == []

    def test_non_text_files_are_not_diffed(self, monitor, manager, config, observers, set_marker):
        makefile = config.workspace_root / "Makefile"
        makefile.write_text("all:\n\tbuild\n")
        set_marker("running")
        monitor.tick()

        makefile.write_text("all:\n\ttest\n")
        observers.last.emit(FileModifiedEvent(str(makefile)))
        set_marker("idle")
        monitor.tick()

        assert manager.get_pending() == []
        manager.reject_all()
        assert makefile.read_text() == "all:\n\ttest\n"

    def test_dotenv_is_tracked(self, monitor, manager, config, observers, set_marker):
        dotenv = config.workspace_root / ".env"
        dotenv.write_text("TOKEN=a\n")
        set_marker("running")
        monitor.tick()
        assert str(dotenv) in manager.snapshot_paths

        dotenv.write_text("TOKEN=b\n")
        observers.last.emit(FileModifiedEvent(str(dotenv)))
        set_marker("idle")
        monitor.tick()

        record = manager.get(dotenv)
        assert record.before == "TOKEN=a\n"
        assert not record.is_new

    def test_create_delete_and_move(self, monitor, manager, config, observers, set_marker):
        root = config.workspace_root
        set_marker("running")
        monitor.tick()
        observer = observers.last

        (root / "notes.txt").write_text("new\n")
        observer.emit(FileCreatedEvent(str(root / "notes.txt")))
        (root / "src" / "app.py").unlink()
        observer.emit(FileDeletedEvent(str(root / "src" / "app.py")))
        (root / "README.md").rename(root / "README.txt")
        observer.emit(FileMovedEvent(str(root / "README.md"), str(root / "README.txt")))

        set_marker("idle")
        monitor.tick()

        records = {r.relative_path: r for r in manager.get_pending()}
        assert records["notes.txt"].is_new
        assert records["src/app.py"].is_deleted
        assert records["README.md"].is_deleted
        assert records["README.txt"].is_new

    def test_cycle_without_changes_sends_no_notification(self, monitor, manager, set_marker):
        calls = []
        manager.on_diffs_ready(calls.append)
        set_marker("running")
        monitor.tick()
        set_marker("idle")
        monitor.tick()
        assert calls == []

    def test_changed_paths_reset_each_cycle(self, monitor, config, observers, set_marker):
        set_marker("running")
        monitor.tick()
        observers.last.emit(FileModifiedEvent(str(config.workspace_root / "README.md")))
        set_marker("idle")
        monitor.tick()
        set_marker("running")
        monitor.tick()
        assert monitor.changed_paths == []


class TestAskMode:
    """Edits are gated elsewhere; every snapshotted file is compared."""

    def test_all_snapshotted_paths_are_diffed(self, monitor, manager, modes, config, observers, set_marker):
        modes.set_mode(Mode.ASK)
        set_marker("running")
        monitor.tick()
        assert observers.created == []

        (config.workspace_root / "README.md").write_text("# Edited\n")
        set_marker("idle")
        monitor.tick()

        assert [r.relative_path for r in manager.get_pending()] == ["README.md"]


class TestModeReadPerTransition:
    """The mode is looked up at each transition, not cached."""

    def test_finish_uses_current_mode(self, monitor, manager, modes, config, set_marker):
        modes.set_mode(Mode.AUTO)
        set_marker("running")
        monitor.tick()

        (config.workspace_root / "README.md").write_text("# Edited\n")
        modes.set_mode(Mode.ASK)
        set_marker("idle")
        monitor.tick()

        assert [r.relative_path for r in manager.get_pending()] == ["README.md"]

    def test_switch_to_auto_mid_run_diffs_only_observed(self, monitor, manager, modes, config, set_marker):
        modes.set_mode(Mode.ASK)
        set_marker("running")
        monitor.tick()

        (config.workspace_root / "README.md").write_text("# Edited\n")
        modes.set_mode(Mode.AUTO)
        set_marker("idle")
        monitor.tick()

        assert manager.get_pending() == []


class TestLifecycle:
    """Tests for the polling thread."""

    def test_stop_closes_observer(self, monitor, modes, observers, set_marker):
        modes.set_mode(Mode.AUTO)
        set_marker("running")
        monitor.tick()
        observer = observers.last
        monitor.stop()
        assert observer.stopped and observer.joined
        assert not monitor.is_observing

    def test_background_polling(self, monitor, set_marker):
        monitor.start()
        assert monitor.is_running
        set_marker("running")
        assert wait_for(lambda: monitor.state == MonitorState.ACTIVE)
        set_marker("idle")
        assert wait_for(lambda: monitor.state == MonitorState.IDLE)
        monitor.stop(timeout=2)
        assert not monitor.is_running

    def test_start_twice_keeps_one_thread(self, monitor):
        monitor.start()
        first = monitor._thread
        monitor.start()
        assert monitor._thread is first

    def test_tick_errors_reach_listeners(self, monitor, manager, modes, set_marker, monkeypatch):
        errors = []
        reported = threading.Event()

        def on_error(error):
            errors.append(error)
            reported.set()

        def failing_begin(paths=None):
            raise RuntimeError("snapshot exploded")

        monkeypatch.setattr(manager, "begin_session", failing_begin)
        modes.set_mode(Mode.ASK)
        monitor.on_error(on_error)
        set_marker("running")
        monitor.start()

        assert reported.wait(2)
        assert isinstance(errors[0], RuntimeError)
        assert monitor.is_running
