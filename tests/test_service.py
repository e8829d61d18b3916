"""
Tests for the review service composition.
"""

import json
from unittest.mock import MagicMock

import pytest

from edit_review.modes import Mode, ModeManager, StaticModeProvider
from edit_review.service import ReviewService, create_review_service


@pytest.fixture
def service(config, observers):
    service = ReviewService(
        config,
        modes=StaticModeProvider(Mode.ASK),
        observer_factory=observers,
        show_review=MagicMock(),
    )
    yield service
    service.stop()


def run_agent(service, config, set_marker, edit):
    set_marker("running")
    service.monitor.tick()
    edit()
    set_marker("idle")
    service.monitor.tick()


class TestReviewService:
    """Tests for ReviewService wiring."""

    def test_shows_review_when_not_auto(self, service, config, set_marker):
        readme = config.workspace_root / "README.md"
        run_agent(service, config, set_marker, lambda: readme.write_text("x\n"))
        service._show_review.assert_called_once()
        pending = service._show_review.call_args[0][0]
        assert [r.relative_path for r in pending] == ["README.md"]

    def test_auto_mode_does_not_show_review(self, service, config, observers, set_marker):
        from watchdog.events import FileModifiedEvent

        service.modes.set_mode(Mode.AUTO)
        readme = config.workspace_root / "README.md"

        def edit():
            readme.write_text("x\n")
            observers.last.emit(FileModifiedEvent(str(readme)))

        run_agent(service, config, set_marker, edit)
        service._show_review.assert_not_called()
        assert service.manager.has_pending()

    def test_controller_shares_manager(self, service, config, set_marker):
        readme = config.workspace_root / "README.md"
        run_agent(service, config, set_marker, lambda: readme.write_text("x\n"))
        service.controller.handle({"command": "rejectAll"})
        assert readme.read_text() == "# Project\n"

    def test_context_manager_starts_and_stops(self, service):
        with service as running:
            assert running.monitor.is_running
        assert not service.monitor.is_running

    def test_default_mode_manager(self, config):
        service = ReviewService(config)
        assert isinstance(service.modes, ModeManager)
        assert service.modes.get_mode() == Mode.PROPOSE
        settings = json.loads(config.agent_settings_path.read_text())
        assert settings["dryRun"] is True


class TestCreateReviewService:
    """Tests for create_review_service()."""

    def test_builds_from_workspace(self, workspace, tmp_path, monkeypatch):
        monkeypatch.setenv("EDIT_REVIEW_AGENT_SETTINGS", str(tmp_path / "settings.json"))
        monkeypatch.setenv("EDIT_REVIEW_MODE", "ask")
        service = create_review_service(workspace)
        assert service.config.workspace_root == workspace.resolve()
        assert service.modes.get_mode() == Mode.ASK
        assert not service.monitor.is_running
