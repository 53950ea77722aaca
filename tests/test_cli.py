"""
Tests for the command-line interface.
"""

from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from protokoll.core.config import load_config
from protokoll.main import app

runner = CliRunner()


def write_file(path: Path, content: str) -> None:
    """Helper to write a text file with UTF-8 encoding."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A working directory with an empty .protokoll marker; discovery stays inside it."""
    (tmp_path / ".protokoll").mkdir()
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PROTOKOLL_MAX_LEVELS", "1")
    for name in ("PROTOKOLL_ENV_FILE", "PROTOKOLL_CONFIG_DIR", "PROTOKOLL_CONFIG_FILE", "PROTOKOLL_CONTEXT_DIR", "PROTOKOLL_DEBUG"):
        monkeypatch.delenv(name, raising=False)
    load_config.cache_clear()
    return tmp_path


def test_status_without_marker(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PROTOKOLL_MAX_LEVELS", "1")
    monkeypatch.delenv("PROTOKOLL_ENV_FILE", raising=False)

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "No .protokoll directory found" in result.stdout


def test_status_counts_entities(workspace: Path):
    write_file(workspace / ".protokoll" / "context" / "people" / "jane.yaml", "id: jane\nname: Jane\n")

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "Discovered Directories" in result.stdout
    assert "People" in result.stdout


def test_add_then_show_with_typo(workspace: Path):
    """Entities added from the CLI can be looked up with a misspelled name."""
    added = runner.invoke(app, ["add", "person", "--name", "Jane Smith", "-s", "jane smit"])

    assert added.exit_code == 0
    assert "Added person 'jane-smith'" in added.stdout
    file_path = workspace / ".protokoll" / "context" / "people" / "jane-smith.yaml"
    data = yaml.safe_load(file_path.read_text(encoding="utf-8"))
    assert data["name"] == "Jane Smith"
    assert data["sounds_like"] == ["jane smit"]
    assert "created_at" in data

    shown = runner.invoke(app, ["show", "person", "jane smiht"])

    assert shown.exit_code == 0
    assert "jane-smith" in shown.stdout


def test_duplicate_add_fails(workspace: Path):
    runner.invoke(app, ["add", "term", "--name", "Kubernetes", "--id", "k8s"])

    result = runner.invoke(app, ["add", "term", "--name", "K8s", "--id", "k8s"])

    assert result.exit_code == 1
    assert "already exists" in result.stdout


def test_edit_keeps_existing_fields(workspace: Path):
    runner.invoke(app, ["add", "project", "--name", "Walmart", "--phrase", "walmart"])

    result = runner.invoke(app, ["add", "project", "--id", "walmart", "--name", "Walmart Inc", "--topic", "retail", "--edit"])

    assert result.exit_code == 0
    assert "Updated project 'walmart'" in result.stdout
    data = yaml.safe_load((workspace / ".protokoll" / "context" / "projects" / "walmart.yaml").read_text(encoding="utf-8"))
    assert data["name"] == "Walmart Inc"
    assert data["classification"]["explicit_phrases"] == ["walmart"]
    assert data["classification"]["topics"] == ["retail"]


def test_show_missing_entity(workspace: Path):
    result = runner.invoke(app, ["show", "project", "nothing-like-it"])

    assert result.exit_code == 1
    assert "Not found" in result.stdout


def test_unknown_entity_type(workspace: Path):
    result = runner.invoke(app, ["list", "robot"])

    assert result.exit_code == 1
    assert "Unknown entity type" in result.stdout


def test_list_and_search(workspace: Path):
    runner.invoke(app, ["add", "company", "--name", "Acme"])

    listed = runner.invoke(app, ["list", "company"])
    found = runner.invoke(app, ["search", "acm"])
    missing = runner.invoke(app, ["search", "zebra"])

    assert "acme" in listed.stdout
    assert "Found 1 results:" in found.stdout
    assert "No results found for 'zebra'" in missing.stdout


def test_remove(workspace: Path):
    runner.invoke(app, ["add", "ignored", "--name", "um"])

    result = runner.invoke(app, ["remove", "ignored", "um"])

    assert result.exit_code == 0
    assert not (workspace / ".protokoll" / "context" / "ignored" / "um.yaml").exists()


def test_config_prints_merged_yaml(workspace: Path):
    write_file(workspace / ".protokoll" / "config.yaml", "output_directory: /srv/notes\n")

    result = runner.invoke(app, ["config"])

    assert result.exit_code == 0
    assert "/srv/notes" in result.stdout


def test_route_explicit_phrase(workspace: Path):
    write_file(workspace / ".protokoll" / "config.yaml", "output_directory: /srv/notes\n")
    runner.invoke(app, ["add", "project", "--name", "Walmart", "--phrase", "walmart", "--destination", "/srv/walmart"])

    result = runner.invoke(app, ["route", "--text", "Walmart sync. Agreed on Q3.", "--date", "2025-03-04T09:07"])

    assert result.exit_code == 0
    assert "walmart" in result.stdout
    assert "0.90" in result.stdout
    assert "walmart-sync" in result.stdout


def test_route_requires_text_or_file(workspace: Path):
    result = runner.invoke(app, ["route"])

    assert result.exit_code == 1
    assert "Must specify either --text or --file" in result.stdout
