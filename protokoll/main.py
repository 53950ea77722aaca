"""
Main CLI interface for Protokoll.

This module provides the Typer-based command-line interface with commands for:
- Inspecting discovered .protokoll directories and the merged configuration
- Listing, searching, showing, adding, editing and removing context entities
- Routing a transcript to a project destination
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from .core.config import Config, ConfigError, load_project_env
from .core.context import ContextError, ContextInstance, slugify_term
from .core.finder import NotFoundError, find_entity_resilient
from .core.routing import RoutingEngine
from .core.storage import StorageError
from .core.types import Entity, EntityType, RoutingContext, entity_adapter

app = typer.Typer(
    name="protokoll",
    help="Protokoll - resolve people, projects and terms in transcripts and route them to the right place",
    no_args_is_help=True,
)

console = Console()

ENTITY_TYPES = {"person", "project", "company", "term", "ignored"}
TYPE_LABELS = {"person": "Person", "project": "Project", "company": "Company", "term": "Term", "ignored": "Ignored term"}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
    debug: bool = typer.Option(False, "--debug", help="Log timing of discovery, loading and routing"),
):
    """Protokoll context and routing tools."""
    try:
        load_project_env()
    except ConfigError as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {e}")
        sys.exit(1)

    # CLI flag always overrides the project .env
    if debug:
        os.environ["PROTOKOLL_DEBUG"] = "1"
    if verbose or debug:
        logging.basicConfig(level=logging.DEBUG, format="%(message)s", handlers=[RichHandler(console=console, show_path=False)])


def _build_context(directory: Optional[str]) -> ContextInstance:
    options = Config().discovery_options(directory)
    return ContextInstance.build(options)


def _check_type(entity_type: str) -> EntityType:
    if entity_type not in ENTITY_TYPES:
        console.print(f"[bold red]Error:[/bold red] Unknown entity type '{entity_type}'. Use one of: {', '.join(sorted(ENTITY_TYPES))}")
        sys.exit(1)
    return entity_type  # type: ignore[return-value]


def _entity_yaml(entity: Entity) -> str:
    return yaml.safe_dump(entity.model_dump(mode="json", exclude_none=True), sort_keys=False, allow_unicode=True)


@app.command()
def status(
    directory: Optional[str] = typer.Option(None, "--directory", "-d", help="Directory to start discovery from (default: CWD)"),
):
    """
    Show discovered .protokoll directories and entity counts.

    Examples:
        protokoll status
        protokoll status --directory ~/notes/work
    """
    try:
        context = _build_context(directory)

        if not context.has_context():
            console.print("[yellow]No .protokoll directory found[/yellow]")
            return

        dirs_table = Table(title="Discovered Directories")
        dirs_table.add_column("Level", style="cyan")
        dirs_table.add_column("Path", style="white")
        for discovered in context.get_discovered_dirs():
            dirs_table.add_row(str(discovered.level), discovered.path)
        console.print(dirs_table)

        stats_table = Table(title="Context Entities")
        stats_table.add_column("Type", style="cyan")
        stats_table.add_column("Count", style="white")
        stats_table.add_row("People", str(len(context.get_all_people())))
        stats_table.add_row("Projects", str(len(context.get_all_projects())))
        stats_table.add_row("Companies", str(len(context.get_all_companies())))
        stats_table.add_row("Terms", str(len(context.get_all_terms())))
        stats_table.add_row("Ignored", str(len(context.get_all_ignored())))
        stats_table.add_row("Total", str(len(context.search(""))))
        console.print(stats_table)

    except (ConfigError, StorageError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


@app.command("config")
def show_config(
    directory: Optional[str] = typer.Option(None, "--directory", "-d", help="Directory to start discovery from (default: CWD)"),
):
    """Print the merged configuration."""
    try:
        context = _build_context(directory)
        merged = yaml.safe_dump(context.get_config(), sort_keys=False, allow_unicode=True) or "{}\n"
        console.print(Syntax(merged, "yaml", theme="monokai", line_numbers=False))
    except (ConfigError, StorageError) as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {e}")
        sys.exit(1)


@app.command("list")
def list_entities(
    entity_type: str = typer.Argument(..., help="Entity type (person|project|company|term|ignored)"),
    directory: Optional[str] = typer.Option(None, "--directory", "-d", help="Directory to start discovery from (default: CWD)"),
):
    """List every entity of one type."""
    checked = _check_type(entity_type)
    try:
        context = _build_context(directory)
        entities = context.get_all(checked)
    except (ConfigError, StorageError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    if not entities:
        console.print(f"[yellow]No {TYPE_LABELS[checked].lower()} entities found[/yellow]")
        return

    table = Table(title=f"{TYPE_LABELS[checked]} entities")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Sounds like", style="dim")
    for entity in entities:
        table.add_row(entity.id, entity.name, ", ".join(entity.sounds_like))
    console.print(table)


@app.command()
def search(
    query: str = typer.Argument(..., help="Text to look for in ids, names and sounds-like variants"),
    directory: Optional[str] = typer.Option(None, "--directory", "-d", help="Directory to start discovery from (default: CWD)"),
):
    """Search all entity types."""
    try:
        context = _build_context(directory)
        results = context.search(query)
    except (ConfigError, StorageError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    if not results:
        console.print(f"[yellow]No results found for '{query}'[/yellow]")
        return

    console.print(f"[bold green]Found {len(results)} results:[/bold green]")
    for entity in results:
        console.print(f"  • {entity.name} [dim]({entity.type}: {entity.id})[/dim]")


@app.command()
def show(
    entity_type: str = typer.Argument(..., help="Entity type (person|project|company|term|ignored)"),
    query: str = typer.Argument(..., help="Id or name; typos are tolerated"),
    directory: Optional[str] = typer.Option(None, "--directory", "-d", help="Directory to start discovery from (default: CWD)"),
):
    """
    Show one entity, found by id or (possibly misspelled) name.

    Examples:
        protokoll show person "jane smiht"
        protokoll show project walmart
    """
    checked = _check_type(entity_type)
    try:
        context = _build_context(directory)
        entity = find_entity_resilient(context.get_all(checked), query, TYPE_LABELS[checked])
    except NotFoundError as e:
        console.print(f"[bold red]Not found:[/bold red] {e}")
        sys.exit(1)
    except (ConfigError, StorageError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    file_path = context.get_entity_file_path(entity)
    console.print(Panel(Syntax(_entity_yaml(entity), "yaml", theme="monokai"), title=entity.name, subtitle=file_path or "", border_style="green"))


@app.command()
def add(
    entity_type: str = typer.Argument(..., help="Entity type (person|project|company|term|ignored)"),
    name: str = typer.Option(..., "--name", "-n", help="Display name (correct spelling)"),
    entity_id: Optional[str] = typer.Option(None, "--id", help="Identifier (default: slug of the name)"),
    sounds_like: Optional[List[str]] = typer.Option(None, "--sounds-like", "-s", help="Mis-transcription variant (repeatable)"),
    phrases: Optional[List[str]] = typer.Option(None, "--phrase", help="Project: explicit trigger phrase (repeatable)"),
    topics: Optional[List[str]] = typer.Option(None, "--topic", help="Project or term: topic keyword (repeatable)"),
    destination: Optional[str] = typer.Option(None, "--destination", help="Project: output directory"),
    structure: Optional[str] = typer.Option(None, "--structure", help="Project: none|year|month|day"),
    edit: bool = typer.Option(False, "--edit", help="Replace an existing entity instead of failing"),
    directory: Optional[str] = typer.Option(None, "--directory", "-d", help="Directory to start discovery from (default: CWD)"),
):
    """
    Add (or with --edit, replace) an entity in the nearest .protokoll directory.

    Examples:
        protokoll add person --name "Jane Smith" -s "jane smit"
        protokoll add project --name Walmart --phrase walmart --destination ~/notes/walmart
        protokoll add project --id walmart --name Walmart --topic retail --edit
    """
    checked = _check_type(entity_type)
    try:
        context = _build_context(directory)
        resolved_id = entity_id or slugify_term(name)

        data = {"type": checked, "id": resolved_id}
        existing = context.get(checked, resolved_id)
        if edit and existing is not None:
            data = existing.model_dump(exclude_none=True)

        data["name"] = name
        if sounds_like:
            data["sounds_like"] = list(sounds_like)
        if checked == "project":
            classification = dict(data.get("classification", {}))
            routing = dict(data.get("routing", {}))
            if phrases:
                classification["explicit_phrases"] = list(phrases)
            if topics:
                classification["topics"] = list(topics)
            if destination:
                routing["destination"] = destination
            if structure:
                routing["structure"] = structure
            data["classification"] = classification
            data["routing"] = routing
        elif checked == "term" and topics:
            data["topics"] = list(topics)

        now = datetime.now().astimezone()
        data.setdefault("created_at", now)
        data["updated_at"] = now

        entity = entity_adapter.validate_python(data)
        file_path = context.save_entity(entity, allow_update=edit)

    except ValidationError as e:
        console.print(f"[bold red]Invalid entity:[/bold red] {e}")
        sys.exit(1)
    except (ConfigError, ContextError, StorageError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    verb = "Updated" if edit and existing is not None else "Added"
    console.print(f"[green]✓[/green] {verb} {TYPE_LABELS[checked].lower()} '{entity.id}' [dim]({file_path})[/dim]")


@app.command()
def remove(
    entity_type: str = typer.Argument(..., help="Entity type (person|project|company|term|ignored)"),
    query: str = typer.Argument(..., help="Id or name; typos are tolerated"),
    directory: Optional[str] = typer.Option(None, "--directory", "-d", help="Directory to start discovery from (default: CWD)"),
):
    """Delete an entity's file."""
    checked = _check_type(entity_type)
    try:
        context = _build_context(directory)
        entity = find_entity_resilient(context.get_all(checked), query, TYPE_LABELS[checked])
        removed = context.delete_entity(entity)
    except NotFoundError as e:
        console.print(f"[bold red]Not found:[/bold red] {e}")
        sys.exit(1)
    except (ConfigError, ContextError, StorageError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    if not removed:
        console.print(f"[yellow]No file found for {TYPE_LABELS[checked].lower()} '{entity.id}'[/yellow]")
        sys.exit(1)
    console.print(f"[green]✓[/green] Removed {TYPE_LABELS[checked].lower()} '{entity.id}'")


@app.command()
def route(
    text: Optional[str] = typer.Option(None, "--text", "-t", help="Transcript text"),
    file: Optional[str] = typer.Option(None, "--file", help="Path to file containing transcript text"),
    date: Optional[str] = typer.Option(None, "--date", help="Recording date/time in ISO format (default: now)"),
    source: str = typer.Option("", "--source", help="Original audio file name"),
    directory: Optional[str] = typer.Option(None, "--directory", "-d", help="Directory to start discovery from (default: CWD)"),
):
    """
    Decide which project a transcript belongs to and where it would be written.

    Examples:
        protokoll route --text "Walmart meeting notes. We agreed on the Q3 plan."
        protokoll route --file transcript.txt --date 2025-03-14T09:30 --source rec-0314.m4a
    """
    if text and file:
        console.print("[bold red]Error:[/bold red] Cannot specify both --text and --file options")
        sys.exit(1)
    if not text and not file:
        console.print("[bold red]Error:[/bold red] Must specify either --text or --file option")
        sys.exit(1)

    if file:
        file_path = Path(file)
        if not file_path.exists():
            console.print(f"[bold red]Error:[/bold red] File not found: {file}")
            sys.exit(1)
        text = file_path.read_text(encoding="utf-8")

    try:
        audio_date = datetime.fromisoformat(date) if date else datetime.now()
    except ValueError:
        console.print(f"[bold red]Error:[/bold red] Invalid --date '{date}', expected ISO format")
        sys.exit(1)

    try:
        context = _build_context(directory)
        engine = RoutingEngine.from_context(context)
        routing_context = RoutingContext(transcript_text=text, audio_date=audio_date, source_file=source or (file or ""))
        decision = engine.route(routing_context)
        output_path = engine.build_output_path(decision, routing_context)
    except (ConfigError, StorageError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Project", decision.project_id or "(default)")
    table.add_row("Confidence", f"{decision.confidence:.2f}")
    table.add_row("Reasoning", decision.reasoning)
    table.add_row("Output path", output_path)
    if decision.auto_tags:
        table.add_row("Tags", ", ".join(decision.auto_tags))
    for alternate in decision.alternate_matches:
        table.add_row("Alternate", f"{alternate.project_id} ({alternate.confidence:.2f})")
    console.print(table)


if __name__ == "__main__":
    app()
