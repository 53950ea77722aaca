"""
Hierarchical configuration discovery.

Walks up the directory tree from a starting directory collecting .protokoll
marker directories, then deep-merges their config files so that directories
closer to the starting point win over their ancestors:

    /home/user/projects/work/projectA/.protokoll/config.yaml   <- highest precedence
    /home/user/projects/work/.protokoll/config.yaml
    /home/user/.protokoll/config.yaml                           <- user defaults
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .config import ConfigError
from .timing import timer
from .types import DiscoveredDir, DiscoveryOptions, HierarchicalConfig

logger = logging.getLogger(__name__)

CONTEXT_SUBDIR_NAME = "context"


def discover_config_directories(config_dir_name: str, max_levels: int = 10, starting_dir: Optional[str] = None) -> List[DiscoveredDir]:
    """
    Walk upwards looking for a marker directory at every level.

    Args:
        config_dir_name: Name of the marker directory (e.g. ".protokoll")
        max_levels: Maximum number of directories to inspect
        starting_dir: Directory to start from (default: CWD)

    Returns:
        Discovered directories, nearest first. Empty when nothing was found.
    """
    discovered: List[DiscoveredDir] = []
    current = Path(os.path.abspath(starting_dir or os.getcwd()))
    visited = set()
    level = 0

    while level < max_levels:
        # Symlinked ancestors can point back at a directory already seen
        real_path = os.path.realpath(current)
        if real_path in visited:
            break
        visited.add(real_path)

        candidate = current / config_dir_name
        if candidate.is_dir():
            discovered.append(DiscoveredDir(path=str(candidate), level=level))

        parent = current.parent
        if parent == current:
            break

        current = parent
        level += 1

    logger.debug(f"Discovered {len(discovered)} '{config_dir_name}' directories from {starting_dir or os.getcwd()}")
    return discovered


def deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge source into a copy of target; source wins.

    Mappings present on both sides are merged recursively. Anything else
    (scalars, lists, type mismatches) is replaced wholesale by the source
    value. Lists are never concatenated.
    """
    result = dict(target)
    for key, source_value in source.items():
        target_value = result.get(key)
        if isinstance(source_value, dict):
            base = target_value if isinstance(target_value, dict) else {}
            result[key] = deep_merge(base, source_value)
        elif isinstance(source_value, list):
            result[key] = list(source_value)
        else:
            result[key] = source_value
    return result


def read_config_file(config_path: Path) -> Optional[Dict[str, Any]]:
    """
    Read one YAML config file.

    Returns:
        The parsed mapping, or None when the file is absent or empty.

    Raises:
        ConfigError: If the file exists but cannot be read or parsed
    """
    if not config_path.is_file():
        return None

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            parsed = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read config file '{config_path}': {e}") from e

    if parsed is None:
        return None
    if not isinstance(parsed, dict):
        raise ConfigError(f"Config file '{config_path}' must contain a mapping, got {type(parsed).__name__}")
    return parsed


def merge_discovered(discovered_dirs: List[DiscoveredDir], config_file_name: str) -> HierarchicalConfig:
    """
    Merge config files from already-discovered directories.

    Args:
        discovered_dirs: Output of discover_config_directories
        config_file_name: Config file name inside each directory

    Returns:
        HierarchicalConfig with the merged config and context dirs, nearest first
    """
    merged: Dict[str, Any] = {}
    context_dirs: List[str] = []

    # Ancestors first so that nearer directories are merged last
    for directory in sorted(discovered_dirs, key=lambda d: d.level, reverse=True):
        parsed = read_config_file(Path(directory.path) / config_file_name)
        if parsed is not None:
            merged = deep_merge(merged, parsed)
            logger.debug(f"Merged config from {directory.path} (level {directory.level})")

        context_dir = Path(directory.path) / CONTEXT_SUBDIR_NAME
        if context_dir.is_dir():
            context_dirs.append(str(context_dir))

    context_dirs.reverse()
    return HierarchicalConfig(config=merged, discovered_dirs=list(discovered_dirs), context_dirs=context_dirs)


@timer
def load_hierarchical_config(options: DiscoveryOptions) -> HierarchicalConfig:
    """Discover marker directories and merge their configuration."""
    discovered = discover_config_directories(options.config_dir_name, options.max_levels, options.starting_dir)
    if not discovered:
        return HierarchicalConfig()
    return merge_discovered(discovered, options.config_file_name)
