"""Gallery browse CLI command."""

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from gallerybox.cli.app import get_app_context
from gallerybox.cli.decorators import handle_errors
from gallerybox.cli.helpers import format_size
from gallerybox.core.errors import GalleryFailure
from gallerybox.core.logging import get_struct_logger
from gallerybox.gallery.state import GalleryError, GalleryState


logger = get_struct_logger(__name__)
console = Console()


def _render_images(state: GalleryState, cached_ids: set[str]) -> Table:
    table = Table(title=f"Images (page {state.current_page})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Author", style="green")
    table.add_column("Size")
    table.add_column("Cached", justify="center")

    for index, image in enumerate(state.images, start=1):
        dimensions = (
            f"{image.width}x{image.height}" if image.width and image.height else "-"
        )
        table.add_row(
            str(index),
            image.id,
            image.title,
            image.author or "-",
            dimensions,
            "✓" if image.id in cached_ids else "",
        )
    return table


@handle_errors
def browse(
    ctx: typer.Context,
    pages: Annotated[
        int,
        typer.Option("-p", "--pages", min=1, help="Number of pages to load"),
    ] = 1,
    render: Annotated[
        bool,
        typer.Option(
            "--render/--no-render",
            help="Download each listed image into the cache as if displayed",
        ),
    ] = False,
) -> None:
    """Load gallery pages the way the UI does and list the images."""
    app_context = get_app_context(ctx)
    deps = app_context.dependencies
    controller = deps.create_controller()

    try:
        controller.load_initial()
        while (
            controller.current_page < pages
            and controller.has_more_data
            and not isinstance(controller.state, GalleryError)
        ):
            controller.load_more()

        state = controller.state
        if isinstance(state, GalleryError):
            logger.error("gallery_load_failed", kind=state.kind, error=state.message)
            console.print(f"[red]{state.message}[/red]")
            raise typer.Exit(1)

        cached_ids: set[str] = set()
        if render:
            for image in state.images:
                try:
                    deps.repository.get_single_file(image)
                    cached_ids.add(image.id)
                except GalleryFailure as e:
                    logger.warning("image_render_failed", image_id=image.id, error=str(e))
        else:
            cached_ids = {
                image.id for image in state.images if deps.repository.is_image_cached(image.id)
            }

        deps.repository.wait_for_background(timeout=30)
        cache_size = controller.refresh_cache_size("browse")

        console.print(_render_images(state, cached_ids))
        if not state.has_more_data:
            console.print("[yellow]No more images available[/yellow]")
        console.print(
            f"Loaded {len(state.images)} images, cache size: {format_size(cache_size)}"
        )
    finally:
        controller.close()
