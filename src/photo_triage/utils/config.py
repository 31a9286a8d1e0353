"""Configuration management for photo-triage."""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class Config:
    """Manages user configuration and settings."""

    DEFAULT_CONFIG_DIR = Path.home() / ".photo-triage"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.json"

    DEFAULT_SETTINGS = {
        "library": {
            "roots": [],
            "consent": None,  # None until the user answers the access prompt
            "recursive": True,
        },
        "detection": {
            "creation_window_seconds": 300,
            "require_same_dimensions": True,
        },
        "estimation": {"jpeg_factor": 0.25},
        "scan": {
            "thumbnail_size": [18, 18],
            "allow_network": False,
        },
        "safety": {"use_recycle_bin": True},
        "protected_folders": [
            "Family Photos",
            "Wedding",
            "Important",
        ],
        "index_path": None,
    }

    def __init__(self, config_file: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to config file (default: ~/.photo-triage/config.json)
        """
        self.config_file = Path(config_file) if config_file else self.DEFAULT_CONFIG_FILE
        self.settings: Dict[str, Any] = {}
        self.load()

    @property
    def config_dir(self) -> Path:
        return self.config_file.parent

    def load(self) -> None:
        """Load configuration from file or create with defaults."""
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    self.settings = json.load(f)
                logger.debug(f"Loaded configuration from {self.config_file}")
            except json.JSONDecodeError as e:
                logger.warning(f"Invalid config file: {e}. Using defaults.")
                self.settings = copy.deepcopy(self.DEFAULT_SETTINGS)
        else:
            logger.info("No config file found. Creating with defaults.")
            self.settings = copy.deepcopy(self.DEFAULT_SETTINGS)
            self.save()

    def save(self) -> None:
        """Save configuration to file."""
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(self.settings, f, indent=2)
        logger.debug(f"Saved configuration to {self.config_file}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            key: Configuration key (supports dot notation, e.g., 'safety.use_recycle_bin')
            default: Default value if key not found

        Returns:
            Configuration value or default. Keys missing from the file fall
            back to the built-in defaults.
        """
        for source in (self.settings, self.DEFAULT_SETTINGS):
            value = _lookup(source, key)
            if value is not None:
                return value
        return default

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value.

        Args:
            key: Configuration key (supports dot notation)
            value: Value to set
        """
        keys = key.split(".")
        target = self.settings
        for k in keys[:-1]:
            if k not in target or not isinstance(target[k], dict):
                target[k] = {}
            target = target[k]
        target[keys[-1]] = value
        self.save()

    def add_protected_folder(self, folder: str) -> None:
        """Add a folder name to the protected folders list."""
        protected = list(self.get("protected_folders", []))
        if folder not in protected:
            protected.append(folder)
            self.set("protected_folders", protected)
            logger.info(f"Added protected folder: {folder}")

    def remove_protected_folder(self, folder: str) -> None:
        """Remove a folder name from the protected folders list."""
        protected = list(self.get("protected_folders", []))
        if folder in protected:
            protected.remove(folder)
            self.set("protected_folders", protected)
            logger.info(f"Removed protected folder: {folder}")

    def is_path_protected(self, path: Path) -> bool:
        """
        Check if a path lies inside a protected folder.

        A folder matches when one of the path's parent folder names equals a
        protected name, ignoring case.
        """
        protected = {name.lower() for name in self.get("protected_folders", [])}
        return any(part.lower() in protected for part in Path(path).parent.parts)

    def library_roots(self) -> List[Path]:
        return [Path(root).expanduser() for root in self.get("library.roots", [])]

    def get_index_path(self) -> Path:
        """Get the fingerprint index file path."""
        override = self.get("index_path")
        if override:
            return Path(override).expanduser()
        return self.config_dir / "photo_fingerprints.json"

    def get_staging_dir(self) -> Path:
        """Get the staging directory path."""
        return self.config_dir / "staging"


def _lookup(source: Dict[str, Any], key: str) -> Any:
    value: Any = source
    for k in key.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(k)
        if value is None:
            return None
    return value
