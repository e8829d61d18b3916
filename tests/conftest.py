"""
Pytest Configuration and Shared Fixtures

Provides fixtures for testing edit_review components.
"""

import json
from pathlib import Path
from typing import Any, List, Optional, Tuple

import pytest

from edit_review.config import ReviewConfig
from edit_review.manager import ReconciliationManager
from edit_review.modes import Mode, StaticModeProvider


class FakeObserver:
    """Stands in for a watchdog Observer; events are pushed by the test."""

    def __init__(self) -> None:
        self.scheduled: List[Tuple[Any, str, bool]] = []
        self.started = False
        self.stopped = False
        self.joined = False

    def schedule(self, handler: Any, path: str, recursive: bool = False) -> None:
        self.scheduled.append((handler, path, recursive))

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def join(self, timeout: Optional[float] = None) -> None:
        self.joined = True

    def emit(self, event: Any) -> None:
        for handler, _, _ in self.scheduled:
            handler.dispatch(event)


class ObserverRecorder:
    """Observer factory that remembers every observer it created."""

    def __init__(self) -> None:
        self.created: List[FakeObserver] = []

    def __call__(self) -> FakeObserver:
        observer = FakeObserver()
        self.created.append(observer)
        return observer

    @property
    def last(self) -> FakeObserver:
        return self.created[-1]


def write_marker(config: ReviewConfig, status: str) -> None:
    """Write the agent's activity marker."""
    config.activity_file.parent.mkdir(parents=True, exist_ok=True)
    config.activity_file.write_text(json.dumps({"status": status, "session": "s-1"}))


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create a small project tree."""
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text("def main():\n    return 1\n")
    (root / "README.md").write_text("# Project\n")
    (root / "node_modules" / "pkg").mkdir(parents=True)
    (root / "node_modules" / "pkg" / "index.js").write_text("module.exports = 1;\n")
    (root / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\xff")
    return root


@pytest.fixture
def config(workspace: Path, tmp_path: Path) -> ReviewConfig:
    """Configuration that never touches the real home directory."""
    return ReviewConfig(
        workspace_root=workspace,
        agent_settings_path=tmp_path / "home" / ".claude" / "settings.json",
        poll_interval=0.01,
    )


@pytest.fixture
def manager(config: ReviewConfig) -> ReconciliationManager:
    """Create a fresh reconciliation manager."""
    return ReconciliationManager(config)


@pytest.fixture
def modes() -> StaticModeProvider:
    """In-memory mode provider starting in propose mode."""
    return StaticModeProvider(Mode.PROPOSE)


@pytest.fixture
def observers() -> ObserverRecorder:
    """Fake watchdog observer factory."""
    return ObserverRecorder()


@pytest.fixture
def set_marker(config: ReviewConfig):
    """Callable that writes the activity marker with a given status."""

    def _set(status: str) -> None:
        write_marker(config, status)

    return _set
