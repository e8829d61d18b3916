"""
Edit Review Configuration

Paths, polling cadence, tree-walk filters and session policy for a review
workspace.

Usage:
    from edit_review.config import ReviewConfig

    config = ReviewConfig(workspace_root="/path/to/project")
    config.activity_file   # /path/to/project/.claude/activity.json
    config.staging_dir     # /path/to/project/.claude/proposed
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Optional, Union

from dotenv import load_dotenv

from edit_review.exceptions import ConfigError
from edit_review.modes import Mode


# Default paths
DEFAULT_AGENT_DIR = ".claude"
DEFAULT_ACTIVITY_FILE = "activity.json"
DEFAULT_STAGING_DIR = "proposed"
DEFAULT_STATE_FILE = "edit-review.json"
DEFAULT_AGENT_SETTINGS = Path.home() / ".claude" / "settings.json"

DEFAULT_POLL_INTERVAL = 0.5

DEFAULT_EXCLUDED_DIRS: FrozenSet[str] = frozenset({
    "node_modules",
    ".git",
    "dist",
    "out",
    ".claude",
})

DEFAULT_TEXT_EXTENSIONS: FrozenSet[str] = frozenset({
    ".ts", ".tsx", ".js", ".jsx", ".json", ".md", ".txt", ".css", ".scss",
    ".html", ".xml", ".yaml", ".yml", ".py", ".go", ".rs", ".java", ".c",
    ".cpp", ".h", ".sh", ".env", ".toml", ".ini", ".sql",
})

# Environment overrides
ENV_POLL_INTERVAL = "EDIT_REVIEW_POLL_INTERVAL"
ENV_MODE = "EDIT_REVIEW_MODE"
ENV_CLEAR_PENDING = "EDIT_REVIEW_CLEAR_PENDING"
ENV_AGENT_SETTINGS = "EDIT_REVIEW_AGENT_SETTINGS"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _normalize_extensions(extensions: Iterable[str]) -> FrozenSet[str]:
    normalized = set()
    for ext in extensions:
        ext = ext.strip().lower()
        if not ext:
            continue
        if not ext.startswith("."):
            ext = f".{ext}"
        normalized.add(ext)
    return frozenset(normalized)


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


@dataclass
class ReviewConfig:
    """Configuration for one review workspace.

    Attributes:
        workspace_root: Project directory the agent edits
        agent_dir_name: Directory (under the root) the agent writes its
            activity marker and staged proposals to
        activity_file_name: Marker file name inside the agent directory
        staging_dir_name: Staging directory name inside the agent directory
        poll_interval: Seconds between activity marker polls
        excluded_dirs: Directory names skipped by tree capture and observation
        text_extensions: File extensions considered text for tree capture
        clear_pending_on_capture: Drop leftover diff records when a new
            capture begins instead of keeping them until clear_session()
        agent_settings_path: The external agent's settings file
        state_file: Where the selected mode is persisted
        default_mode: Mode used when nothing has been persisted yet
        encoding: Text encoding for reading and writing files
    """

    workspace_root: Union[str, Path]
    agent_dir_name: str = DEFAULT_AGENT_DIR
    activity_file_name: str = DEFAULT_ACTIVITY_FILE
    staging_dir_name: str = DEFAULT_STAGING_DIR
    poll_interval: float = DEFAULT_POLL_INTERVAL
    excluded_dirs: FrozenSet[str] = DEFAULT_EXCLUDED_DIRS
    text_extensions: FrozenSet[str] = DEFAULT_TEXT_EXTENSIONS
    clear_pending_on_capture: bool = False
    agent_settings_path: Path = field(default_factory=lambda: DEFAULT_AGENT_SETTINGS)
    state_file: Optional[Path] = None
    default_mode: Mode = Mode.PROPOSE
    encoding: str = "utf-8"

    def __post_init__(self) -> None:
        """Normalize paths and validate values."""
        self.workspace_root = Path(self.workspace_root).expanduser().resolve()
        self.agent_settings_path = Path(self.agent_settings_path).expanduser()
        if self.state_file is None:
            self.state_file = self.agent_dir / DEFAULT_STATE_FILE
        else:
            self.state_file = Path(self.state_file).expanduser()

        self.excluded_dirs = frozenset(self.excluded_dirs)
        self.text_extensions = _normalize_extensions(self.text_extensions)

        try:
            self.default_mode = Mode(self.default_mode)
        except ValueError:
            raise ConfigError(f"Unknown mode: {self.default_mode!r}")

        if self.poll_interval <= 0:
            raise ConfigError(f"poll_interval must be positive, got {self.poll_interval}")

    @property
    def agent_dir(self) -> Path:
        """Get the agent's working directory inside the workspace."""
        return self.workspace_root / self.agent_dir_name

    @property
    def activity_file(self) -> Path:
        """Get the activity marker path."""
        return self.agent_dir / self.activity_file_name

    @property
    def staging_dir(self) -> Path:
        """Get the staging directory for proposed changes."""
        return self.agent_dir / self.staging_dir_name

    def is_text_file(self, path: Union[str, Path]) -> bool:
        """Check whether a path has a whitelisted text extension.

        A bare dotfile such as ``.env`` matches on its whole name.
        """
        candidate = Path(path)
        return (
            candidate.suffix.lower() in self.text_extensions
            or candidate.name.lower() in self.text_extensions
        )

    def is_excluded(self, path: Union[str, Path]) -> bool:
        """Check whether a path lies inside an excluded directory.

        Only the components below the workspace root are considered, so a
        workspace that itself lives under e.g. ``out/`` still works.
        """
        candidate = Path(path)
        try:
            parts = candidate.relative_to(self.workspace_root).parts
        except ValueError:
            parts = candidate.parts
        return any(part in self.excluded_dirs for part in parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary.

        A state file at its default location is stored as None so it keeps
        following the workspace root when the config is loaded elsewhere.
        """
        state_file = None
        if self.state_file != self.agent_dir / DEFAULT_STATE_FILE:
            state_file = str(self.state_file)
        return {
            "workspace_root": str(self.workspace_root),
            "agent_dir_name": self.agent_dir_name,
            "activity_file_name": self.activity_file_name,
            "staging_dir_name": self.staging_dir_name,
            "poll_interval": self.poll_interval,
            "excluded_dirs": sorted(self.excluded_dirs),
            "text_extensions": sorted(self.text_extensions),
            "clear_pending_on_capture": self.clear_pending_on_capture,
            "agent_settings_path": str(self.agent_settings_path),
            "state_file": state_file,
            "default_mode": self.default_mode.value,
            "encoding": self.encoding,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReviewConfig":
        """Create from dictionary."""
        if "workspace_root" not in data:
            raise ConfigError("workspace_root is required")

        kwargs: Dict[str, Any] = {"workspace_root": data["workspace_root"]}
        for key in (
            "agent_dir_name",
            "activity_file_name",
            "staging_dir_name",
            "poll_interval",
            "clear_pending_on_capture",
            "agent_settings_path",
            "state_file",
            "default_mode",
            "encoding",
        ):
            if data.get(key) is not None:
                kwargs[key] = data[key]
        if "excluded_dirs" in data:
            kwargs["excluded_dirs"] = frozenset(data["excluded_dirs"])
        if "text_extensions" in data:
            kwargs["text_extensions"] = frozenset(data["text_extensions"])
        return cls(**kwargs)

    @classmethod
    def load(
        cls,
        config_file: Path,
        workspace_root: Optional[Path] = None,
    ) -> "ReviewConfig":
        """Load configuration from a JSON file.

        Args:
            config_file: JSON file to read
            workspace_root: Overrides the root stored in the file
        """
        try:
            with open(config_file, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid config file {config_file}: {e}")
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {config_file} must contain an object")
        if workspace_root is not None:
            data["workspace_root"] = workspace_root
        return cls.from_dict(data)

    def save(self, config_file: Path) -> None:
        """Save configuration to a JSON file."""
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    def apply_env(self, environ: Optional[Dict[str, str]] = None) -> "ReviewConfig":
        """Apply EDIT_REVIEW_* environment overrides in place.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            self, for chaining

        Raises:
            ConfigError: If an override has an invalid value
        """
        env = os.environ if environ is None else environ

        interval = env.get(ENV_POLL_INTERVAL)
        if interval:
            try:
                self.poll_interval = float(interval)
            except ValueError:
                raise ConfigError(f"{ENV_POLL_INTERVAL} must be a number, got {interval!r}")
            if self.poll_interval <= 0:
                raise ConfigError(f"{ENV_POLL_INTERVAL} must be positive, got {interval!r}")

        mode = env.get(ENV_MODE)
        if mode:
            try:
                self.default_mode = Mode(mode.strip().lower())
            except ValueError:
                raise ConfigError(f"{ENV_MODE} must be one of auto, propose, ask, got {mode!r}")

        clear_pending = env.get(ENV_CLEAR_PENDING)
        if clear_pending is not None:
            self.clear_pending_on_capture = _parse_bool(ENV_CLEAR_PENDING, clear_pending)

        settings_path = env.get(ENV_AGENT_SETTINGS)
        if settings_path:
            self.agent_settings_path = Path(settings_path).expanduser()

        return self


def get_config(
    workspace_root: Optional[Path] = None,
    config_file: Optional[Path] = None,
) -> ReviewConfig:
    """
    Build configuration for a workspace.

    Loads a .env file from the workspace (if present), then the JSON config
    file (if given and present), then applies environment overrides.

    Args:
        workspace_root: Project directory (defaults to cwd)
        config_file: Optional JSON configuration file

    Returns:
        Configured ReviewConfig instance
    """
    if workspace_root is None:
        workspace_root = Path.cwd()

    env_path = Path(workspace_root) / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    if config_file is not None and config_file.exists():
        config = ReviewConfig.load(config_file, workspace_root=workspace_root)
    else:
        config = ReviewConfig(workspace_root=workspace_root)

    return config.apply_env()
