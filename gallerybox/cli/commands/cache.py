"""Cache management CLI commands."""

import time
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from gallerybox.cli.app import get_app_context
from gallerybox.cli.decorators import handle_errors
from gallerybox.cli.helpers import format_change, format_size
from gallerybox.core.logging import get_struct_logger
from gallerybox.gallery.diagnostics import (
    DEFAULT_BLOB_SIZE,
    DEFAULT_POPULATE_IMAGE_COUNT,
    DEFAULT_POPULATE_LIMIT_BYTES,
    DEFAULT_POPULATE_TARGET_BYTES,
    DEFAULT_TARGET_BYTES,
    CacheFiller,
    CachePopulator,
)


logger = get_struct_logger(__name__)
console = Console()

cache_app = typer.Typer(help="Image cache management commands")

MB = 1024 * 1024


@cache_app.command(name="show")
@handle_errors
def cache_show(ctx: typer.Context) -> None:
    """Show cache location, size, budget and entry counts."""
    deps = get_app_context(ctx).dependencies
    store = deps.store
    budget = deps.settings.max_cache_bytes

    entries = store.entries()
    foreign = sum(1 for entry in entries if entry.is_foreign)
    stats = store.get_stats()
    usage = (stats.total_size_bytes / budget * 100) if budget else 0.0

    table = Table(title="Gallerybox Image Cache", show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("Location", str(store.cache_root))
    table.add_row("Cached images", str(stats.total_entries))
    table.add_row("Foreign files", str(foreign))
    table.add_row("Total size", format_size(stats.total_size_bytes))
    table.add_row("Budget", format_size(budget))
    table.add_row("Usage", f"{usage:.1f}%")
    table.add_row("Indexed records", str(deps.repository.index.count()))
    console.print(table)


@cache_app.command(name="clear")
@handle_errors
def cache_clear(
    ctx: typer.Context,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Force deletion without confirmation"),
    ] = False,
) -> None:
    """Delete every cached image."""
    deps = get_app_context(ctx).dependencies
    size = deps.store.size_bytes()

    if size == 0 and not deps.store.entries():
        console.print("[yellow]Cache is already empty[/yellow]")
        return

    if not force:
        confirm = typer.confirm(
            f"Delete all cached images ({format_size(size)}) in {deps.store.cache_root}?"
        )
        if not confirm:
            console.print("[yellow]Cancelled[/yellow]")
            return

    deps.repository.clear_cache_to_limit(0)
    deps.monitor.reset(0, "clear")
    logger.info("cache_cleared", freed_bytes=size)
    console.print(f"[green]Cleared cache, freed {format_size(size)}[/green]")


@cache_app.command(name="cleanup")
@handle_errors
def cache_cleanup(
    ctx: typer.Context,
    max_size: Annotated[
        int | None,
        typer.Option(
            "--max-size",
            min=0,
            help="Size limit in MB (default: configured max_cache_bytes)",
        ),
    ] = None,
) -> None:
    """Evict least recently used images until the cache fits a size limit."""
    deps = get_app_context(ctx).dependencies
    budget = max_size * MB if max_size is not None else deps.settings.max_cache_bytes

    result = deps.repository.clear_cache_to_limit(budget)
    if result is None:
        console.print("[green]Cache cleared[/green]")
        return
    if result.skipped:
        console.print("[yellow]Another cleanup is already running[/yellow]")
        return

    logger.info(
        "cache_cleanup_finished",
        removed=result.removed_count,
        size_before=result.size_before,
        size_after=result.size_after,
    )
    if result.removed_count == 0:
        console.print(
            f"Cache size {format_size(result.size_before)} is within "
            f"{format_size(budget)}, nothing removed"
        )
        return
    console.print(
        f"[green]Removed {result.removed_count} files "
        f"({format_size(result.removed_bytes)}): "
        f"{format_size(result.size_before)} → {format_size(result.size_after)}[/green]"
    )


@cache_app.command(name="fill")
@handle_errors
def cache_fill(
    ctx: typer.Context,
    target_mb: Annotated[
        int,
        typer.Option("--target", min=1, help="Amount of synthetic data to write in MB"),
    ] = DEFAULT_TARGET_BYTES // MB,
    blob_kb: Annotated[
        int,
        typer.Option("--blob-size", min=1, help="Size of each synthetic blob in KB"),
    ] = DEFAULT_BLOB_SIZE // 1024,
) -> None:
    """Fill the cache with synthetic blobs, then run eviction."""
    deps = get_app_context(ctx).dependencies
    filler = CacheFiller(
        deps.store,
        deps.eviction,
        max_cache_bytes=deps.settings.max_cache_bytes,
        blob_size=blob_kb * 1024,
        target_bytes=target_mb * MB,
    )

    def on_progress(written: int, size: int) -> None:
        console.print(f"  {written} blobs written, cache at {format_size(size)}")

    console.print(f"Filling cache with {target_mb} MB of synthetic data...")
    result = filler.fill(on_progress=on_progress)
    deps.monitor.refresh("fast_fill")

    table = Table(title="Cache Fill Result", show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("Blobs written", str(result.written))
    table.add_row("Bytes written", format_size(result.bytes_written))
    table.add_row("Stopped because", result.stopped_reason.replace("_", " "))
    if result.eviction is not None:
        table.add_row("Evicted files", str(result.eviction.removed_count))
    table.add_row("Final size", format_size(result.final_size))
    console.print(table)


@cache_app.command(name="populate")
@handle_errors
def cache_populate(
    ctx: typer.Context,
    count: Annotated[
        int,
        typer.Option("--count", "-n", min=1, help="Maximum number of images to cache"),
    ] = DEFAULT_POPULATE_IMAGE_COUNT,
    target_mb: Annotated[
        int,
        typer.Option("--target", min=1, help="Stop once the cache reaches this size in MB"),
    ] = DEFAULT_POPULATE_TARGET_BYTES // MB,
    limit_mb: Annotated[
        int,
        typer.Option("--limit", min=0, help="Cleanup limit in MB applied at the target"),
    ] = DEFAULT_POPULATE_LIMIT_BYTES // MB,
) -> None:
    """Download and cache real images until a size target, then clean up."""
    deps = get_app_context(ctx).dependencies
    populator = CachePopulator(
        deps.repository,
        image_count=count,
        target_bytes=target_mb * MB,
        limit_bytes=limit_mb * MB,
        page_size=deps.settings.page_size,
    )

    def on_progress(processed: int, size: int) -> None:
        console.print(f"  {processed} images processed, cache at {format_size(size)}")

    console.print(f"Populating cache with up to {count} images...")
    result = populator.populate(on_progress=on_progress)
    deps.repository.wait_for_background(timeout=30)
    deps.monitor.refresh("populate")
    logger.info(
        "cache_populated",
        cached=result.cached,
        failed=result.failed,
        final_size=result.final_size,
        stopped_reason=result.stopped_reason,
    )

    table = Table(title="Cache Populate Result", show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("Images cached", str(result.cached))
    table.add_row("Images failed", str(result.failed))
    table.add_row("Pages fetched", str(result.pages))
    table.add_row("Stopped because", result.stopped_reason.replace("_", " "))
    if result.eviction is not None:
        table.add_row("Evicted files", str(result.eviction.removed_count))
    table.add_row("Final size", format_size(result.final_size))
    console.print(table)


@cache_app.command(name="history")
@handle_errors
def cache_history(
    ctx: typer.Context,
    samples: Annotated[
        int,
        typer.Option("-n", "--samples", min=1, help="Number of size samples to take"),
    ] = 1,
    interval: Annotated[
        float,
        typer.Option("-i", "--interval", min=0.0, help="Seconds between samples"),
    ] = 1.0,
) -> None:
    """Sample the cache size and show the history with its trend."""
    deps = get_app_context(ctx).dependencies
    monitor = deps.monitor

    for index in range(samples):
        if index:
            time.sleep(interval)
        monitor.refresh("manual_refresh")

    table = Table(title="Cache Size History")
    table.add_column("Time", style="dim")
    table.add_column("Operation", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Change", justify="right")
    for sample in monitor.history:
        table.add_row(
            sample.timestamp.strftime("%H:%M:%S.%f")[:-3],
            sample.operation,
            format_size(sample.size_bytes),
            format_change(sample.change_bytes),
        )
    console.print(table)

    console.print(f"Trend: {monitor.trend()}")
    peak = monitor.peak()
    valley = monitor.valley()
    if peak is not None and valley is not None:
        console.print(
            f"Peak: {format_size(peak.size_bytes)}  Valley: {format_size(valley.size_bytes)}"
        )


def register_cache_commands(app: typer.Typer) -> None:
    """Register cache commands with the main app.

    Args:
        app: The main Typer app
    """
    app.add_typer(cache_app, name="cache")
