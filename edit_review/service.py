"""
Edit Review Service - One review session per workspace.

Builds and owns the mode provider, reconciliation manager, activity
monitor and presentation controller for a workspace, replacing any need
for process-wide state.

Usage:
    from edit_review import create_review_service

    def show(pending):
        for record in pending:
            print(record.relative_path, record.status.value)

    with create_review_service("/path/to/project", show_review=show) as service:
        ...  # the agent runs; diffs surface through show()
        service.controller.handle({"command": "acceptAll"})
"""

import logging
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from edit_review.config import ReviewConfig, get_config
from edit_review.diffing import FileDiff
from edit_review.manager import ReconciliationManager
from edit_review.modes import Mode, ModeManager, SwitchableModeProvider
from edit_review.monitor import ActivityMonitor, ObserverFactory
from edit_review.review import OpenFileHandler, ReviewController

logger = logging.getLogger(__name__)

ShowReviewHandler = Callable[[List[FileDiff]], None]


class ReviewService:
    """
    Composition root for a review workspace.

    When a diff pass produces records, show_review is called with the
    pending records unless the current mode is auto, where edits are
    expected to land without interrupting the user.

    Args:
        config: Workspace configuration
        modes: Mode provider (defaults to a ModeManager built from config)
        observer_factory: Watchdog observer factory for the monitor
        show_review: Callback asked to surface the review UI
        open_file: Callback asked to open a file in an editor
    """

    def __init__(
        self,
        config: ReviewConfig,
        modes: Optional[SwitchableModeProvider] = None,
        observer_factory: Optional[ObserverFactory] = None,
        show_review: Optional[ShowReviewHandler] = None,
        open_file: Optional[OpenFileHandler] = None,
    ) -> None:
        self._config = config
        self._modes = modes or ModeManager(
            state_file=config.state_file,
            agent_settings_path=config.agent_settings_path,
            default_mode=config.default_mode,
        )
        self._manager = ReconciliationManager(config)
        self._monitor = ActivityMonitor(self._manager, self._modes, observer_factory)
        self._controller = ReviewController(self._manager, self._modes, open_file)
        self._show_review = show_review
        self._manager.on_diffs_ready(self._on_diffs_ready)

    @property
    def config(self) -> ReviewConfig:
        return self._config

    @property
    def modes(self) -> SwitchableModeProvider:
        return self._modes

    @property
    def manager(self) -> ReconciliationManager:
        return self._manager

    @property
    def monitor(self) -> ActivityMonitor:
        return self._monitor

    @property
    def controller(self) -> ReviewController:
        return self._controller

    def start(self) -> None:
        """Start watching for agent activity."""
        self._monitor.start()
        logger.info(f"Edit review started for {self._config.workspace_root}")

    def stop(self) -> None:
        """Stop watching. Pending records stay available."""
        self._monitor.stop()

    def __enter__(self) -> "ReviewService":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()

    def _on_diffs_ready(self, pending: List[FileDiff]) -> None:
        if self._show_review is None:
            return
        if self._modes.get_mode() == Mode.AUTO:
            logger.debug(f"{len(pending)} changes pending review (auto mode, not surfaced)")
            return
        self._show_review(pending)


def create_review_service(
    workspace_root: Optional[Union[str, Path]] = None,
    config_file: Optional[Path] = None,
    **kwargs: Any,
) -> ReviewService:
    """
    Create a ReviewService for a workspace.

    Args:
        workspace_root: Project directory (defaults to cwd)
        config_file: Optional JSON configuration file
        **kwargs: Passed through to ReviewService

    Returns:
        A ReviewService, not yet started
    """
    root = Path(workspace_root) if workspace_root is not None else None
    config = get_config(workspace_root=root, config_file=config_file)
    return ReviewService(config, **kwargs)
