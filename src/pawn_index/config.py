# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Configuration loading and validation for the source index."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".pawn_index.yml"


class ConfigurationError(Exception):
    """Raised when configuration validation fails critically."""

    pass


class Config:
    """Configuration for the source index.

    Loads configuration from .pawn_index.yml with validation and defaults.
    Invalid values are logged and replaced by their defaults.
    """

    DEFAULTS: Dict[str, Any] = {
        "builtin_include_root": "",
        "include_directories": [],
        "file_extensions": [".sp", ".inc"],
        "ignore_patterns": [],
        "implicit_includes": ["sourcemod"],
        "max_file_size_bytes": 10 * 1024 * 1024,
        "trace_includes": False,
    }

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, uses
                .pawn_index.yml in the current directory.
        """
        if config_path is None:
            config_path = Path.cwd() / CONFIG_FILE_NAME

        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._load_config()

    @classmethod
    def for_workspace(cls, root: Path) -> "Config":
        """Load the configuration file of a workspace root."""
        return cls(Path(root) / CONFIG_FILE_NAME)

    def _load_config(self) -> None:
        """Load and validate configuration from file."""
        self._config = self._defaults()
        if not self.config_path.exists():
            logger.info(f"Configuration file not found at {self.config_path}, using defaults")
            return

        try:
            with open(self.config_path, encoding="utf-8") as f:
                loaded_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.warning(f"Error parsing configuration file {self.config_path}: {e}, using defaults")
            return
        except OSError as e:
            logger.warning(f"Error reading configuration file {self.config_path}: {e}, using defaults")
            return

        if loaded_config is None:
            logger.warning("Configuration file is empty, using defaults")
            return

        if not isinstance(loaded_config, dict):
            logger.warning(
                f"Configuration file must contain a YAML dictionary, "
                f"got {type(loaded_config)}, using defaults"
            )
            return

        self._validate_and_merge(loaded_config)

    def _defaults(self) -> Dict[str, Any]:
        # Lists are copied so callers cannot mutate DEFAULTS
        return {key: list(value) if isinstance(value, list) else value for key, value in self.DEFAULTS.items()}

    def _validate_and_merge(self, loaded_config: Dict[str, Any]) -> None:
        """Validate loaded configuration and merge with defaults.

        Invalid parameters are logged as warnings and defaults are used.
        """
        for key, value in loaded_config.items():
            if key not in self.DEFAULTS:
                logger.warning(f"Unknown configuration parameter '{key}', ignoring")
                continue

            if not self._validate_parameter(key, value):
                logger.warning(f"Invalid value for '{key}': {value}, using default {self.DEFAULTS[key]}")
                continue

            self._config[key] = value

    def _validate_parameter(self, key: str, value: Any) -> bool:
        """Validate a configuration parameter.

        Returns:
            True if valid, False if invalid
        """
        expected_type = type(self.DEFAULTS[key])
        if not isinstance(value, expected_type):
            return False

        if key == "max_file_size_bytes":
            return not isinstance(value, bool) and value > 0
        elif key in ("include_directories", "ignore_patterns", "implicit_includes"):
            return all(isinstance(entry, str) for entry in value)
        elif key == "file_extensions":
            return bool(value) and all(isinstance(ext, str) and ext.startswith(".") for ext in value)

        return True

    def with_overrides(self, **overrides: Any) -> "Config":
        """Return this configuration with validated values replaced.

        Raises:
            ConfigurationError: If an override names an unknown key or has an
                invalid value.
        """
        for key, value in overrides.items():
            if key not in self.DEFAULTS:
                raise ConfigurationError(f"Unknown configuration parameter '{key}'")
            if not self._validate_parameter(key, value):
                raise ConfigurationError(f"Invalid value for '{key}': {value}")
            self._config[key] = value
        return self

    @property
    def builtin_include_root(self) -> Optional[Path]:
        """Root of the built-in include tree, or None when not configured."""
        value = self._config["builtin_include_root"]
        assert isinstance(value, str)
        return Path(value).expanduser() if value else None

    @property
    def include_directories(self) -> List[Path]:
        """Extra directories searched when resolving includes."""
        value = self._config["include_directories"]
        assert isinstance(value, list)
        return [Path(entry).expanduser() for entry in value]

    @property
    def file_extensions(self) -> List[str]:
        """Source file extensions picked up by discovery and the watcher."""
        value = self._config["file_extensions"]
        assert isinstance(value, list)
        return value

    @property
    def ignore_patterns(self) -> List[str]:
        """Glob patterns of paths to ignore."""
        value = self._config["ignore_patterns"]
        assert isinstance(value, list)
        return value

    @property
    def implicit_includes(self) -> List[str]:
        """Includes added to every workspace file when they resolve."""
        value = self._config["implicit_includes"]
        assert isinstance(value, list)
        return value

    @property
    def max_file_size_bytes(self) -> int:
        """Files larger than this are not read."""
        value = self._config["max_file_size_bytes"]
        assert isinstance(value, int)
        return value

    @property
    def trace_includes(self) -> bool:
        """Whether include resolution logs every step at INFO."""
        value = self._config["trace_includes"]
        assert isinstance(value, bool)
        return value
