"""Configuration management for the coding time tracker."""

import json
import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .utils import get_config_directory, get_data_directory, get_log_directory

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "inactivity_timeout": 300,  # seconds
    "focus_timeout": 60,  # seconds
    "save_interval": 5,  # seconds
    "branch_poll_interval": 5,  # seconds
    "health_eye_rest_interval": 20,  # minutes
    "health_stretch_interval": 45,  # minutes
    "health_break_threshold": 120,  # minutes
    "health_enable_notifications": True,
    "health_modal_notifications": True,
    "enable_logging": False,
    "log_level": "INFO",
    "editor_apps": ["Code", "Visual Studio Code"],
    "workspace": "",
    "workspace_folders": [],
    "workspace_name": "",
}

INTERVAL_KEYS = (
    "inactivity_timeout",
    "focus_timeout",
    "save_interval",
    "branch_poll_interval",
    "health_eye_rest_interval",
    "health_stretch_interval",
    "health_break_threshold",
)

BOOLEAN_KEYS = (
    "health_enable_notifications",
    "health_modal_notifications",
    "enable_logging",
)

LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass(frozen=True)
class TrackerSettings:
    """Interval values read by the activity tracker, all in seconds."""

    inactivity_timeout: float = 300
    focus_timeout: float = 60
    save_interval: float = 5
    branch_poll_interval: float = 5


@dataclass(frozen=True)
class HealthSettings:
    """Health reminder settings, intervals in minutes."""

    eye_rest_interval: float = 20
    stretch_interval: float = 45
    break_threshold: float = 120
    enable_notifications: bool = True
    modal_notifications: bool = True


def validate_interval(key: str, value: Any) -> float:
    """Return value as a positive number, or the documented default."""
    default = DEFAULT_CONFIG[key]
    if isinstance(value, bool):
        logger.warning("Invalid value for %s: %r, using %s", key, value, default)
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid value for %s: %r, using %s", key, value, default)
        return default
    if not math.isfinite(number) or number <= 0:
        logger.warning("Invalid value for %s: %r, using %s", key, value, default)
        return default
    return number


Listener = Callable[["Config"], None]


class Config:
    """Configuration manager for the coding time tracker."""

    def __init__(self, config_dir: Optional[str] = None):
        """Initialize configuration manager.

        Args:
            config_dir: Custom configuration directory path
        """
        if config_dir:
            self.config_dir = Path(config_dir)
        else:
            self.config_dir = get_config_directory()

        self.config_file = self.config_dir / "settings.json"
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self._listeners: List[Listener] = []
        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file or create default."""
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    config = json.load(f)
                if not isinstance(config, dict):
                    raise ValueError("settings file must contain an object")
                # Merge with defaults to ensure all keys exist
                merged_config = DEFAULT_CONFIG.copy()
                merged_config.update(config)
                return merged_config
            except (json.JSONDecodeError, IOError, ValueError) as e:
                logger.warning(
                    "Could not load config file: %s. Using default configuration.", e
                )

        return DEFAULT_CONFIG.copy()

    def save(self) -> None:
        """Save current configuration to file."""
        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(self._config, f, indent=2, ensure_ascii=False)
        except IOError as e:
            logger.warning("Could not save config file: %s", e)

    def on_change(self, listener: Listener) -> None:
        """Register a listener called after every configuration change."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value
        """
        return self._config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set configuration value and notify listeners."""
        self._config[key] = value
        self._notify()

    def update(self, config_dict: Dict[str, Any]) -> None:
        """Update multiple configuration values.

        Args:
            config_dict: Dictionary of configuration updates
        """
        self._config.update(config_dict)
        self._notify()

    def reset_to_defaults(self) -> None:
        """Reset configuration to default values."""
        self._config = DEFAULT_CONFIG.copy()
        self._notify()

    def reload(self) -> None:
        """Re-read the settings file, keeping registered listeners."""
        self._config = self._load_config()
        self._notify()

    def get_all(self) -> Dict[str, Any]:
        """Get all configuration values.

        Returns:
            Complete configuration dictionary
        """
        return self._config.copy()

    def interval(self, key: str) -> float:
        return validate_interval(key, self._config.get(key, DEFAULT_CONFIG[key]))

    def tracker_settings(self) -> TrackerSettings:
        return TrackerSettings(
            inactivity_timeout=self.interval("inactivity_timeout"),
            focus_timeout=self.interval("focus_timeout"),
            save_interval=self.interval("save_interval"),
            branch_poll_interval=self.interval("branch_poll_interval"),
        )

    def health_settings(self) -> HealthSettings:
        return HealthSettings(
            eye_rest_interval=self.interval("health_eye_rest_interval"),
            stretch_interval=self.interval("health_stretch_interval"),
            break_threshold=self.interval("health_break_threshold"),
            enable_notifications=bool(self.get("health_enable_notifications", True)),
            modal_notifications=bool(self.get("health_modal_notifications", True)),
        )

    # Convenience properties for common settings
    @property
    def inactivity_timeout(self) -> float:
        """Get inactivity timeout in seconds."""
        return self.interval("inactivity_timeout")

    @inactivity_timeout.setter
    def inactivity_timeout(self, value: float) -> None:
        self.set("inactivity_timeout", value)

    @property
    def focus_timeout(self) -> float:
        """Get focus timeout in seconds."""
        return self.interval("focus_timeout")

    @focus_timeout.setter
    def focus_timeout(self, value: float) -> None:
        self.set("focus_timeout", value)

    @property
    def enable_logging(self) -> bool:
        """Whether the diagnostic event log is written."""
        return bool(self.get("enable_logging", False))

    @property
    def log_level(self) -> str:
        level = str(self.get("log_level", "INFO")).strip().upper()
        return level if level in LOG_LEVELS else "INFO"

    @property
    def editor_apps(self) -> List[str]:
        apps = self.get("editor_apps")
        if isinstance(apps, str):
            apps = [part.strip() for part in apps.split(",") if part.strip()]
        if not apps:
            return list(DEFAULT_CONFIG["editor_apps"])
        return list(apps)

    @property
    def workspace_folders(self) -> List[str]:
        """Editor workspace roots; empty means a single static directory."""
        folders = self.get("workspace_folders") or []
        if isinstance(folders, str):
            folders = folders.split(",")
        return [str(folder).strip() for folder in folders if str(folder).strip()]

    @property
    def data_dir(self) -> Path:
        """Get data directory path."""
        data_dir = self.get("data_dir")
        if data_dir:
            return Path(data_dir)
        return get_data_directory()

    @property
    def log_dir(self) -> Path:
        log_dir = self.get("log_dir")
        if log_dir:
            return Path(log_dir)
        return get_log_directory()


def load_config_from_env() -> Dict[str, Any]:
    """Load configuration from environment variables.

    Returns:
        Configuration dictionary from environment
    """
    env_config: Dict[str, Any] = {}

    # Map environment variables to config keys
    env_mappings = {
        "CODING_TRACKER_DATA_DIR": "data_dir",
        "CODING_TRACKER_LOG_DIR": "log_dir",
        "CODING_TRACKER_LOG_LEVEL": "log_level",
        "CODING_TRACKER_WORKSPACE": "workspace",
        "CODING_TRACKER_EDITOR_APPS": "editor_apps",
        "CODING_TRACKER_WORKSPACE_FOLDERS": "workspace_folders",
        "CODING_TRACKER_WORKSPACE_NAME": "workspace_name",
        "CODING_TRACKER_INACTIVITY_TIMEOUT": "inactivity_timeout",
        "CODING_TRACKER_FOCUS_TIMEOUT": "focus_timeout",
        "CODING_TRACKER_SAVE_INTERVAL": "save_interval",
        "CODING_TRACKER_BRANCH_POLL_INTERVAL": "branch_poll_interval",
        "CODING_TRACKER_ENABLE_LOGGING": "enable_logging",
        "CODING_TRACKER_HEALTH_NOTIFICATIONS": "health_enable_notifications",
    }

    for env_var, config_key in env_mappings.items():
        value = os.getenv(env_var)
        if value is None:
            continue
        if config_key in INTERVAL_KEYS:
            try:
                env_config[config_key] = float(value)
            except ValueError:
                logger.warning("Invalid number for %s: %s", env_var, value)
        elif config_key in BOOLEAN_KEYS:
            env_config[config_key] = value.lower() in ("true", "1", "yes", "on")
        else:
            env_config[config_key] = value

    return env_config


def load_config(config_dir: Optional[str] = None) -> Config:
    """Build a Config from the settings file with environment overrides applied."""
    config = Config(config_dir=config_dir)
    env_config = load_config_from_env()
    if env_config:
        config.update(env_config)
    return config
