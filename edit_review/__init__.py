"""
Edit Review - Review gate between a file-editing agent and a human.

Snapshots a workspace before an agent runs, detects what it changed (in
place or as staged proposals), and lets a reviewer accept or reject each
changed file, rolling rejected edits back on disk.

Primary API:
    from edit_review import create_review_service

    service = create_review_service("/path/to/project", show_review=render)
    service.start()

    pending = service.manager.get_pending()
    service.manager.reject_file(pending[0].file_path)

Features:
- auto, propose and ask modes, mirrored into the agent's settings file
- Activity marker polling with watchdog-based change observation
- Stable unified diffs with new/deleted classification
- Atomic rollback on reject, per-file results for bulk operations
"""

# Configuration
from edit_review.config import ReviewConfig, get_config

# Diffing
from edit_review.diffing import (
    DiffStatus,
    FileDiff,
    diff_contents,
    generate_patch,
    parse_patch,
)

# Errors
from edit_review.exceptions import (
    ActivityMarkerError,
    ConfigError,
    FileOperationError,
    InvalidIntentError,
    ModeSyncError,
    ReviewError,
    SnapshotError,
)

# Reconciliation
from edit_review.manager import BulkResult, DiffView, ReconciliationManager

# Modes
from edit_review.modes import (
    Mode,
    ModeManager,
    ModeProvider,
    StaticModeProvider,
    SwitchableModeProvider,
)

# Monitoring
from edit_review.monitor import ActivityMonitor, ChangedPaths, MonitorState

# Presentation
from edit_review.review import ReviewController

# Service
from edit_review.service import ReviewService, create_review_service

# Snapshots
from edit_review.snapshot import SnapshotStore

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Configuration
    "ReviewConfig",
    "get_config",
    # Diffing
    "DiffStatus",
    "FileDiff",
    "diff_contents",
    "generate_patch",
    "parse_patch",
    # Errors
    "ActivityMarkerError",
    "ConfigError",
    "FileOperationError",
    "InvalidIntentError",
    "ModeSyncError",
    "ReviewError",
    "SnapshotError",
    # Reconciliation
    "BulkResult",
    "DiffView",
    "ReconciliationManager",
    # Modes
    "Mode",
    "ModeManager",
    "ModeProvider",
    "StaticModeProvider",
    "SwitchableModeProvider",
    # Monitoring
    "ActivityMonitor",
    "ChangedPaths",
    "MonitorState",
    # Presentation
    "ReviewController",
    # Service
    "ReviewService",
    "create_review_service",
    # Snapshots
    "SnapshotStore",
]
