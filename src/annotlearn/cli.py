"""annotlearn CLI entry point.

Commands:
    serve      Run the training workers until interrupted
    watermark  Show or advance family watermarks
    targets    Maintain the annotation target table
    models     Inspect published models
    stats      Show training state
    config     View/edit configuration
"""

import json
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from annotlearn import __version__
from annotlearn.config import (
    get_config_path,
    get_value,
    load_config,
    load_worker_settings,
    save_config,
    set_value,
)
from annotlearn.constants import ExitCode
from annotlearn.exceptions import AnnotLearnError
from annotlearn.models import ModelFamily
from annotlearn.ontology import StaticOntology
from annotlearn.storage.sqlite import SQLiteStorage
from annotlearn.targets import update_annotation_targets

console = Console()

FAMILY_CHOICE = click.Choice([f.value for f in ModelFamily])


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _open_store(ctx: click.Context) -> SQLiteStorage:
    db_path = ctx.obj.get("db") or get_value(ctx.obj["config"], "storage.database")
    if not db_path:
        raise click.UsageError("No database configured; pass --db or set storage.database")
    return SQLiteStorage(Path(db_path).expanduser())


def _load_ontology(ctx: click.Context, path: Optional[str]) -> StaticOntology:
    path = path or get_value(ctx.obj["config"], "ontology.path")
    if not path:
        raise click.UsageError("No ontology file; pass --ontology or set ontology.path")
    return StaticOntology.from_toml(Path(path).expanduser())


@click.group()
@click.version_option(version=__version__, prog_name="annotlearn")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--db", type=click.Path(dir_okay=False), help="SQLite database path")
@click.pass_context
def main(ctx: click.Context, debug: bool, db: Optional[str]) -> None:
    """annotlearn - Incremental annotation model training."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["db"] = db
    _setup_logging(debug)
    try:
        ctx.obj["config"] = load_config()
    except AnnotLearnError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(ExitCode.INVALID_INPUT)


# ============================================================================
# SERVE COMMAND
# ============================================================================


@main.command()
@click.option("--ontology", "ontology_path", type=click.Path(exists=True), help="Ontology TOML file")
@click.pass_context
def serve(ctx: click.Context, ontology_path: Optional[str]) -> None:
    """Run the fingerprint and model workers until interrupted."""
    from annotlearn.nlp.extractor import SpacyBlockExtractor
    from annotlearn.service import TrainingService

    try:
        store = _open_store(ctx)
        ontology = _load_ontology(ctx, ontology_path)
        settings = load_worker_settings(ctx.obj["config"])
    except AnnotLearnError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(ExitCode.INVALID_INPUT)

    extractor = SpacyBlockExtractor(
        get_value(ctx.obj["config"], "nlp.spacy_model", "en_core_web_sm")
    )
    service = TrainingService(store, ontology, extractor, settings)

    shutdown = threading.Event()
    signal.signal(signal.SIGTERM, lambda signum, frame: shutdown.set())

    console.print(f"[green]Training workers running[/green] [dim]({store.db_path})[/dim]")
    try:
        service.start()
        while not shutdown.wait(1.0):
            pass
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
    finally:
        service.stop()
    console.print("[green]Stopped[/green]")


# ============================================================================
# WATERMARK COMMANDS
# ============================================================================


@main.group()
def watermark() -> None:
    """Show or advance model watermarks."""
    pass


@watermark.command("show")
@click.pass_context
def watermark_show(ctx: click.Context) -> None:
    """Show the current watermark of each model family."""
    store = _open_store(ctx)
    table = Table(title="Watermarks")
    table.add_column("Family", style="cyan")
    table.add_column("Watermark", justify="right")
    for family in ModelFamily:
        table.add_row(family.value, str(store.get_watermark(family)))
    console.print(table)


@watermark.command("next")
@click.argument("family", type=FAMILY_CHOICE, required=False)
@click.pass_context
def watermark_next(ctx: click.Context, family: Optional[str]) -> None:
    """Advance a family watermark (both when FAMILY is omitted).

    Running workers pick the change up on their next poll.
    """
    store = _open_store(ctx)
    families = [ModelFamily(family)] if family else list(ModelFamily)
    for fam in families:
        value = store.next_watermark(fam)
        console.print(f"{fam.value} watermark -> [green]{value}[/green]")


# ============================================================================
# TARGETS COMMANDS
# ============================================================================


@main.group()
def targets() -> None:
    """Maintain the annotation target table."""
    pass


@targets.command("update")
@click.option("--ontology", "ontology_path", type=click.Path(exists=True), help="Ontology TOML file")
@click.pass_context
def targets_update(ctx: click.Context, ontology_path: Optional[str]) -> None:
    """Assign target ids to new suggestible annotations."""
    try:
        store = _open_store(ctx)
        ontology = _load_ontology(ctx, ontology_path)
        added = update_annotation_targets(store, ontology)
    except AnnotLearnError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(ExitCode.STORE_ERROR)
    console.print(f"Added [green]{added}[/green] annotation targets")


@targets.command("list")
@click.option("--limit", default=50, type=int, help="Maximum rows to show")
@click.pass_context
def targets_list(ctx: click.Context, limit: int) -> None:
    """List annotation targets."""
    store = _open_store(ctx)
    all_targets = store.get_annotation_targets()
    table = Table(title=f"Annotation Targets ({len(all_targets)})")
    table.add_column("Target", justify="right", style="cyan")
    table.add_column("Property")
    table.add_column("Value")
    for t in all_targets[:limit]:
        table.add_row(str(t.target), t.prop_uri, t.value_uri)
    console.print(table)


# ============================================================================
# MODELS COMMANDS
# ============================================================================


@main.group()
def models() -> None:
    """Inspect published models."""
    pass


@models.command("show")
@click.argument("family", type=FAMILY_CHOICE)
@click.argument("target", type=int)
@click.pass_context
def models_show(ctx: click.Context, family: str, target: int) -> None:
    """Show the stored model for FAMILY and TARGET."""
    store = _open_store(ctx)
    model = store.get_model(ModelFamily(family), target)
    if model is None:
        console.print(f"[yellow]No {family} model for target {target}[/yellow]")
        sys.exit(ExitCode.GENERAL_ERROR)
    console.print_json(json.dumps(model.to_dict()))


# ============================================================================
# STATS COMMAND
# ============================================================================


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def stats(ctx: click.Context, as_json: bool) -> None:
    """Show training state."""
    store = _open_store(ctx)
    summary = store.get_stats()

    if as_json:
        console.print_json(json.dumps(summary.to_dict()))
        return

    table = Table(title="Training State")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Records", str(summary.total_records))
    table.add_row("Curated records", str(summary.curated_records))
    table.add_row("Missing fingerprints", str(summary.missing_fingerprints))
    table.add_row("Annotation targets", str(summary.annotation_targets))
    table.add_row("Text blocks", str(summary.text_blocks))
    for family in ModelFamily:
        table.add_row(
            f"{family.value.upper()} watermark", str(summary.watermarks.get(family.value, 0))
        )
        table.add_row(f"{family.value.upper()} models", str(summary.models.get(family.value, 0)))
    console.print(table)


# ============================================================================
# CONFIG COMMANDS
# ============================================================================


@main.group()
def config() -> None:
    """View and edit configuration."""
    pass


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show current configuration."""
    console.print(f"[dim]Config file: {get_config_path()}[/dim]\n")
    console.print_json(json.dumps(ctx.obj["config"], indent=2))


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Set a configuration value.

    KEY is a dot-separated path (e.g., workers.long_pause)
    VALUE is the new value
    """
    cfg = ctx.obj["config"]

    try:
        parsed_value = json.loads(value)
    except json.JSONDecodeError:
        parsed_value = value

    try:
        set_value(cfg, key, parsed_value)
        load_worker_settings(cfg)
    except AnnotLearnError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(ExitCode.INVALID_INPUT)

    save_config(cfg)
    console.print(f"[green]Set {key} = {parsed_value}[/green]")


@config.command("get")
@click.argument("key")
@click.pass_context
def config_get(ctx: click.Context, key: str) -> None:
    """Get a configuration value.

    KEY is a dot-separated path (e.g., storage.database)
    """
    value = get_value(ctx.obj["config"], key)

    if value is None:
        console.print(f"[yellow]Key '{key}' not found[/yellow]")
        sys.exit(ExitCode.GENERAL_ERROR)

    console.print(f"{key} = {json.dumps(value)}")


if __name__ == "__main__":
    main()
