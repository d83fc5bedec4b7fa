"""mapsync CLI - analyze records, generate bookmarks, replay tours.

Usage:
    python -m mapsync analyze ./records.json
    python -m mapsync generate ./records.json --field Category --type per-category
    python -m mapsync tour --delay-ms 0
    python -m mapsync snapshot --channel lobby
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional

import typer
from dotenv import load_dotenv

# Load .env early so MAPSYNC_* overrides apply
load_dotenv()
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from mapsync.app.config import get_config
from mapsync.core.errors import InvalidBookmarkDataError
from mapsync.core.models import AppState, BookmarkGeneratorConfig, Location, SmartBookmark, SyncSnapshot
from mapsync.domain.analysis import FieldAnalyzer
from mapsync.domain.bookmarks import BookmarkManager
from mapsync.infrastructure import SimulatedMapHost
from mapsync.infrastructure.storage import JsonFileStore
from mapsync.infrastructure.tables import DuckDBTableAdapter, columns_to_rows, find_row
from mapsync.utils.logging import setup_logging

# Initialize Typer app
app = typer.Typer(
    name="mapsync",
    help="mapsync CLI - bookmarks and sync for map widgets",
    add_completion=False,
)
config_app = typer.Typer(help="Inspect configuration")
app.add_typer(config_app, name="config")

console = Console()


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log at DEBUG level")] = False,
) -> None:
    config = get_config()
    setup_logging(level="DEBUG" if verbose else config.log_level)


# ============================================================================
# Helpers
# ============================================================================


def load_records(path: Path) -> List[Dict[str, Any]]:
    """Read records from a JSON list of objects or a column-major table."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        return columns_to_rows(data)
    if isinstance(data, list) and all(isinstance(r, dict) for r in data):
        return data
    raise ValueError("Expected a list of records or a {column: [values]} table")


def open_manager(store: Optional[Path], center: tuple[float, float] = (0.0, 0.0)) -> BookmarkManager:
    config = get_config()
    store_path = store or config.bookmark_file
    manager = BookmarkManager(config.bookmarks.to_manager_config(), JsonFileStore(store_path))
    manager.init(SimulatedMapHost(center=center))
    return manager


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/red] {escape(message)}")
    raise typer.Exit(1)


def _bookmark_table(bookmarks: List[SmartBookmark], title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="dim")
    table.add_column("Icon")
    table.add_column("Name", style="bold")
    table.add_column("Center")
    table.add_column("Source")
    for bm in bookmarks:
        lng, lat = bm.camera.center
        source = bm.generated_from.type if bm.generated_from else "-"
        table.add_row(bm.id, bm.icon or "", bm.name, f"{lng:.4f}, {lat:.4f}", source)
    return table


# ============================================================================
# Commands
# ============================================================================


@app.command("analyze")
def analyze(
    records_file: Annotated[Path, typer.Argument(help="JSON records (list or column-major table)")],
    types: Annotated[Optional[Path], typer.Option("--types", "-t", help="JSON {column: host type}")] = None,
) -> None:
    """Detect field types and suggest bookmark generators."""
    if not records_file.exists():
        _fail(f"File not found: {records_file}")

    records = load_records(records_file)
    column_types = json.loads(types.read_text(encoding="utf-8")) if types else None
    result = FieldAnalyzer().analyze_data(records, column_types)

    table = Table(title=f"Fields of {records_file.name} ({len(records)} records)")
    table.add_column("Field", style="bold")
    table.add_column("Type")
    table.add_column("Unique", justify="right")
    table.add_column("Nulls", justify="right")
    table.add_column("Best generator")
    for meta in result.fields:
        best = meta.suggested_bookmarks[0] if meta.suggested_bookmarks else None
        table.add_row(
            meta.name,
            meta.type,
            str(meta.stats.unique_count if meta.stats else 0),
            str(meta.stats.null_count if meta.stats else 0),
            f"{best.generation_type} (~{best.estimated_count})" if best else "-",
        )
    console.print(table)

    for rec in result.recommendations:
        console.print(f"[green]*[/green] {rec.description}")


@app.command("generate")
def generate(
    records_file: Annotated[Path, typer.Argument(help="JSON records (list or column-major table)")],
    field: Annotated[str, typer.Option("--field", "-f", help="Field to generate from")],
    generation_type: Annotated[str, typer.Option("--type", help="per-category | per-range | per-time | per-item")],
    name_template: Annotated[str, typer.Option("--name", help="Name template")] = "{value}",
    range_count: Annotated[Optional[int], typer.Option("--ranges", help="Bucket count (per-range)")] = None,
    range_method: Annotated[str, typer.Option("--method", help="equal | quantile | jenks")] = "equal",
    granularity: Annotated[str, typer.Option("--granularity", help="hour | day | week | month | year")] = "day",
    max_items: Annotated[Optional[int], typer.Option("--max-items", help="Limit (per-item)")] = None,
    sort_field: Annotated[Optional[str], typer.Option("--sort", help="Sort field (per-item)")] = None,
    descending: Annotated[bool, typer.Option("--desc", help="Sort descending")] = False,
    lng: Annotated[float, typer.Option("--lng", help="Current longitude")] = 0.0,
    lat: Annotated[float, typer.Option("--lat", help="Current latitude")] = 0.0,
    store: Annotated[Optional[Path], typer.Option("--store", "-s", help="Bookmark store file")] = None,
) -> None:
    """Generate bookmarks from a field and save them."""
    if not records_file.exists():
        _fail(f"File not found: {records_file}")

    records = load_records(records_file)
    try:
        config = BookmarkGeneratorConfig(
            field_name=field,
            generation_type=generation_type,
            name_template=name_template,
            range_count=range_count,
            range_method=range_method,
            time_granularity=granularity,
            max_items=max_items,
            sort_field=sort_field,
            sort_order="desc" if descending else "asc",
        )
    except ValueError as e:
        _fail(str(e))

    meta = FieldAnalyzer().analyze_field(field, [r.get(field) for r in records if field in r])
    manager = open_manager(store, (lng, lat))
    result = manager.generate_bookmarks(
        config,
        records,
        meta,
        AppState(location=Location(lng=lng, lat=lat)),
    )

    console.print(_bookmark_table(result.bookmarks, f"Generated from {field} ({meta.type})"))
    console.print(Panel(
        f"[bold]Generated:[/bold] {result.summary.total_generated}\n"
        f"[bold]Stored in:[/bold] {store or get_config().bookmark_file}",
        title="Generation Complete",
        border_style="green",
    ))


@app.command("list")
def list_bookmarks(
    store: Annotated[Optional[Path], typer.Option("--store", "-s", help="Bookmark store file")] = None,
) -> None:
    """List stored bookmarks and groups."""
    manager = open_manager(store)
    console.print(_bookmark_table(manager.get_bookmarks(), "Bookmarks"))
    for group in manager.get_groups():
        console.print(f"{group.icon or ''} [bold]{group.name}[/bold]: {len(group.bookmark_ids)} bookmark(s)")


@app.command("export")
def export_bookmarks(
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="Write to file instead of stdout")] = None,
    store: Annotated[Optional[Path], typer.Option("--store", "-s", help="Bookmark store file")] = None,
) -> None:
    """Export bookmarks and groups as JSON."""
    text = open_manager(store).export_to_json()
    if output is None:
        typer.echo(text)
        return
    output.write_text(text, encoding="utf-8")
    console.print(f"[green]Exported to {output}[/green]")


@app.command("import")
def import_bookmarks(
    source: Annotated[Path, typer.Argument(help="JSON export to merge")],
    store: Annotated[Optional[Path], typer.Option("--store", "-s", help="Bookmark store file")] = None,
) -> None:
    """Merge an export into the store."""
    if not source.exists():
        _fail(f"File not found: {source}")
    manager = open_manager(store)
    try:
        count = manager.import_from_json(source.read_text(encoding="utf-8"))
    except InvalidBookmarkDataError as e:
        _fail(str(e))
    console.print(f"[green]Imported {count} bookmark(s)[/green]")


async def _play_tour(manager: BookmarkManager, ids: Optional[List[str]], delay_ms: int) -> int:
    steps = 0

    def on_step(bookmark: SmartBookmark, index: int, total: int) -> None:
        nonlocal steps
        steps += 1
        console.print(f"[cyan]{index + 1}/{total}[/cyan] {bookmark.icon or ''} {bookmark.name}")
        if bookmark.narration:
            console.print(f"    [italic]{bookmark.narration}[/italic]")

    manager.set_on_tour_step(on_step)
    await manager.start_tour(ids)
    while manager.is_tour_active():
        if delay_ms:
            await asyncio.sleep(delay_ms / 1000.0)
        await manager.next_tour_step()
    return steps


@app.command("tour")
def tour(
    ids: Annotated[Optional[List[str]], typer.Option("--id", help="Bookmark id (repeatable); default all")] = None,
    delay_ms: Annotated[int, typer.Option("--delay-ms", help="Pause between stops")] = 1000,
    store: Annotated[Optional[Path], typer.Option("--store", "-s", help="Bookmark store file")] = None,
) -> None:
    """Play a tour on a headless map."""
    manager = open_manager(store)
    if not manager.get_bookmarks():
        console.print("[yellow]No bookmarks to tour[/yellow]")
        return
    steps = asyncio.run(_play_tour(manager, ids or None, delay_ms))
    console.print(Panel(f"Visited {steps} stop(s)", title="Tour Complete", border_style="green"))


async def _read_snapshot(adapter: DuckDBTableAdapter, table_name: str, channel: str) -> Optional[Dict[str, Any]]:
    if table_name not in await adapter.list_tables():
        return None
    return find_row(await adapter.fetch_table(table_name), "Channel", channel)


@app.command("snapshot")
def snapshot(
    channel: Annotated[Optional[str], typer.Option("--channel", "-c", help="Sync channel (default from config)")] = None,
    database: Annotated[Optional[Path], typer.Option("--db", help="DuckDB sync database")] = None,
) -> None:
    """Show the persisted sync state of a channel."""
    config = get_config()
    db_path = database or config.sync_database
    channel = channel or config.sync.channel
    if not db_path.exists():
        _fail(f"No sync database at {db_path}")

    adapter = DuckDBTableAdapter(str(db_path))
    try:
        record = asyncio.run(_read_snapshot(adapter, config.sync.table_name, channel))
    finally:
        adapter.close()

    if record is None:
        console.print(f"[yellow]No snapshot for channel '{channel}'[/yellow]")
        return

    stored = SyncSnapshot.from_record(record)
    table = Table(title=f"Channel {stored.channel} (version {stored.version})")
    table.add_column("Property", style="bold")
    table.add_column("Value")
    for name, value in stored.state.items():
        table.add_row(name, escape(value))
    console.print(table)
    console.print(f"Written by {stored.master_id or '-'}")


@config_app.command("show")
def config_show() -> None:
    """Print the effective configuration."""
    console.print_json(json.dumps(get_config().to_dict()))


if __name__ == "__main__":
    app()
