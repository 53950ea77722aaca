"""
Configuration management for Protokoll.

This module handles process-level settings read from environment variables,
using python-dotenv for explicit, project-scoped .env loading. No implicit
loading occurs at import time, and no module-level configuration instance
exists: callers build a Config and pass the options it produces.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .types import DiscoveryOptions

DEFAULT_CONFIG_DIR_NAME = ".protokoll"
DEFAULT_CONFIG_FILE_NAME = "config.yaml"
DEFAULT_MAX_LEVELS = 10
DEFAULT_ENV_FILENAME = ".env"


class ConfigError(Exception):
    """Raised when configuration is invalid or cannot be read."""

    pass


@lru_cache(maxsize=32)
def load_config(env_path: Optional[str] = None, override: bool = False) -> None:
    """Explicitly load environment variables from the given .env file path."""
    if env_path:
        load_dotenv(dotenv_path=env_path, override=override)


class Config:
    """Process-level settings for Protokoll."""

    @property
    def config_dir_name(self) -> str:
        """Name of the marker directory searched for while walking up (default: .protokoll)."""
        return os.getenv("PROTOKOLL_CONFIG_DIR", DEFAULT_CONFIG_DIR_NAME)

    @property
    def config_file_name(self) -> str:
        """Name of the YAML config file inside each marker directory (default: config.yaml)."""
        return os.getenv("PROTOKOLL_CONFIG_FILE", DEFAULT_CONFIG_FILE_NAME)

    @property
    def max_levels(self) -> int:
        """How many directories discovery walks up (default: 10)."""
        raw = os.getenv("PROTOKOLL_MAX_LEVELS", str(DEFAULT_MAX_LEVELS))
        try:
            value = int(raw)
        except ValueError:
            raise ConfigError(f"PROTOKOLL_MAX_LEVELS must be an integer, got '{raw}'")
        if value < 1:
            raise ConfigError(f"PROTOKOLL_MAX_LEVELS must be at least 1, got {value}")
        return value

    @property
    def context_directory(self) -> Optional[str]:
        """Optional starting directory for discovery instead of the CWD."""
        return os.getenv("PROTOKOLL_CONTEXT_DIR") or None

    @property
    def debug(self) -> bool:
        """Whether timing logs are enabled."""
        return os.getenv("PROTOKOLL_DEBUG", "0").lower() in ("1", "true", "yes", "on")

    def discovery_options(self, starting_dir: Optional[str] = None) -> DiscoveryOptions:
        """
        Build discovery options from the environment.

        Args:
            starting_dir: Explicit starting directory; wins over PROTOKOLL_CONTEXT_DIR

        Returns:
            DiscoveryOptions to hand to ContextInstance.build
        """
        return DiscoveryOptions(
            config_dir_name=self.config_dir_name,
            config_file_name=self.config_file_name,
            max_levels=self.max_levels,
            starting_dir=starting_dir or self.context_directory,
        )


# --- Project-scoped environment helpers ---


def detect_project_root(start_dir: Optional[str] = None, marker: str = DEFAULT_CONFIG_DIR_NAME) -> Optional[Path]:
    """Detect the nearest directory holding a marker directory, upwards from start_dir (or CWD)."""
    start = Path(start_dir).resolve() if start_dir else Path.cwd()
    for current in [start] + list(start.parents):
        if (current / marker).is_dir():
            return current
    return None


def get_project_env_path(project_root: str, marker: str = DEFAULT_CONFIG_DIR_NAME, filename: str = DEFAULT_ENV_FILENAME) -> Path:
    """Compute the path to the project-scoped environment file inside the marker directory."""
    return Path(project_root) / marker / filename


def load_project_env(start_dir: Optional[str] = None, filename: str = DEFAULT_ENV_FILENAME, override: bool = False) -> Optional[str]:
    """
    Load a project-scoped environment file, if available.

    Load order (first match wins):
    1) Explicit env file path via PROTOKOLL_ENV_FILE
    2) <nearest project root>/.protokoll/<filename> (default: .env)

    Returns the path loaded, or None if nothing was loaded.
    """
    explicit = os.getenv("PROTOKOLL_ENV_FILE")
    if explicit:
        if not Path(explicit).is_file():
            raise ConfigError(f"PROTOKOLL_ENV_FILE points to a missing file: {explicit}")
        load_config(explicit, override=override)
        return explicit

    project_root = detect_project_root(start_dir)
    if project_root is None:
        return None

    env_path = get_project_env_path(str(project_root), filename=filename)
    if env_path.is_file():
        load_config(str(env_path), override=override)
        return str(env_path)

    return None
