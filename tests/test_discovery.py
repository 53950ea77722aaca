"""
Tests for hierarchical discovery and configuration merging.
"""

import os
from pathlib import Path

import pytest

from protokoll.core.config import ConfigError
from protokoll.core.discovery import deep_merge, discover_config_directories, load_hierarchical_config, merge_discovered
from protokoll.core.types import DiscoveredDir, DiscoveryOptions


def write_file(path: Path, content: str) -> None:
    """Helper to write a text file with UTF-8 encoding."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture
def nested_tree(tmp_path: Path) -> Path:
    """tmp/a/b/c with marker directories at c (level 0) and a (level 2)."""
    start = tmp_path / "a" / "b" / "c"
    (start / ".protokoll").mkdir(parents=True)
    (tmp_path / "a" / ".protokoll").mkdir()
    return start


class TestDiscoverConfigDirectories:
    """Test the upward directory walk."""

    def test_finds_markers_nearest_first(self, nested_tree: Path):
        """Markers are reported with their level, nearest first."""
        found = discover_config_directories(".protokoll", max_levels=3, starting_dir=str(nested_tree))

        assert [d.level for d in found] == [0, 2]
        assert found[0].path == str(nested_tree / ".protokoll")
        assert found[1].path == str(nested_tree.parent.parent / ".protokoll")

    def test_no_markers_returns_empty_list(self, tmp_path: Path):
        """Nothing found is not an error."""
        start = tmp_path / "x" / "y"
        start.mkdir(parents=True)

        assert discover_config_directories(".protokoll", max_levels=2, starting_dir=str(start)) == []

    def test_respects_max_levels(self, nested_tree: Path):
        """Directories beyond max_levels are not inspected."""
        found = discover_config_directories(".protokoll", max_levels=2, starting_dir=str(nested_tree))

        assert [d.level for d in found] == [0]

    def test_marker_must_be_directory(self, tmp_path: Path):
        """A file named like the marker is ignored."""
        write_file(tmp_path / ".protokoll", "not a directory")

        assert discover_config_directories(".protokoll", max_levels=1, starting_dir=str(tmp_path)) == []

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks not supported")
    def test_symlink_back_to_visited_directory_stops_walk(self, tmp_path: Path):
        """A symlink resolving to an already visited directory ends the walk silently."""
        real = tmp_path / "real"
        (real / ".protokoll").mkdir(parents=True)
        link = real / "link"
        link.symlink_to(real, target_is_directory=True)

        found = discover_config_directories(".protokoll", max_levels=5, starting_dir=str(link))

        assert len(found) == 1
        assert found[0].level == 0


class TestDeepMerge:
    """Test the deep merge rule."""

    def test_nested_objects_merge_and_nearer_wins(self):
        """Non-conflicting keys survive from both sides."""
        ancestor = {"a": 1, "b": {"x": 1}}
        nearer = {"b": {"y": 2}, "c": 3}

        assert deep_merge(ancestor, nearer) == {"a": 1, "b": {"x": 1, "y": 2}, "c": 3}

    def test_lists_are_replaced_not_concatenated(self):
        """Arrays override wholesale."""
        merged = deep_merge({"tags": ["a", "b"]}, {"tags": ["c"]})

        assert merged == {"tags": ["c"]}

    def test_type_mismatch_takes_source(self):
        """A scalar replaces a mapping and vice versa."""
        assert deep_merge({"k": {"x": 1}}, {"k": 5}) == {"k": 5}
        assert deep_merge({"k": 5}, {"k": {"x": 1}}) == {"k": {"x": 1}}

    def test_inputs_are_not_mutated(self):
        """Merging returns a new mapping."""
        target = {"b": {"x": 1}}
        source = {"b": {"y": 2}}

        deep_merge(target, source)

        assert target == {"b": {"x": 1}}
        assert source == {"b": {"y": 2}}


class TestLoadHierarchicalConfig:
    """Test discovery plus merge."""

    def test_nearer_config_takes_precedence(self, nested_tree: Path):
        """The example from the merge contract."""
        write_file(nested_tree.parent.parent / ".protokoll" / "config.yaml", "a: 1\nb:\n  x: 1\n")
        write_file(nested_tree / ".protokoll" / "config.yaml", "b:\n  y: 2\nc: 3\n")

        result = load_hierarchical_config(DiscoveryOptions(starting_dir=str(nested_tree), max_levels=3))

        assert result.config == {"a": 1, "b": {"x": 1, "y": 2}, "c": 3}
        assert len(result.discovered_dirs) == 2

    def test_context_dirs_are_nearest_first(self, nested_tree: Path):
        """Only existing context/ subdirectories are collected."""
        (nested_tree / ".protokoll" / "context").mkdir()
        (nested_tree.parent.parent / ".protokoll" / "context").mkdir()

        result = load_hierarchical_config(DiscoveryOptions(starting_dir=str(nested_tree), max_levels=3))

        assert result.context_dirs == [
            str(nested_tree / ".protokoll" / "context"),
            str(nested_tree.parent.parent / ".protokoll" / "context"),
        ]

    def test_missing_config_files_are_skipped(self, nested_tree: Path):
        """Directories without config.yaml contribute nothing."""
        write_file(nested_tree / ".protokoll" / "config.yaml", "version: 1\n")

        result = load_hierarchical_config(DiscoveryOptions(starting_dir=str(nested_tree), max_levels=3))

        assert result.config == {"version": 1}

    def test_empty_config_file_is_skipped(self, tmp_path: Path):
        """An empty YAML document is treated as absent."""
        write_file(tmp_path / ".protokoll" / "config.yaml", "")

        result = merge_discovered([DiscoveredDir(path=str(tmp_path / ".protokoll"), level=0)], "config.yaml")

        assert result.config == {}

    def test_malformed_config_raises_with_path(self, tmp_path: Path):
        """Parse errors propagate and name the file."""
        config_path = tmp_path / ".protokoll" / "config.yaml"
        write_file(config_path, "key: [unclosed\n")

        with pytest.raises(ConfigError, match="config.yaml"):
            load_hierarchical_config(DiscoveryOptions(starting_dir=str(tmp_path), max_levels=1))

    def test_nothing_discovered(self, tmp_path: Path):
        """No marker anywhere yields an empty result."""
        result = load_hierarchical_config(DiscoveryOptions(starting_dir=str(tmp_path), max_levels=1))

        assert result.config == {}
        assert result.discovered_dirs == []
        assert result.context_dirs == []
