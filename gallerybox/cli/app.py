"""Main CLI application for Gallerybox."""

import logging
import sys
from importlib.metadata import PackageNotFoundError, version as package_version
from pathlib import Path
from typing import Annotated

import typer

from gallerybox.cli.decorators import print_stack_trace_if_verbose
from gallerybox.config import GallerySettings, load_settings
from gallerybox.core.errors import ConfigError
from gallerybox.core.logging import get_struct_logger, setup_logging
from gallerybox.gallery.dependencies import GalleryDependencies, build_dependencies


__all__ = ["app", "main", "AppContext", "__version__"]

try:
    __version__ = package_version("gallerybox")
except PackageNotFoundError:
    __version__ = "0.0.0"

logger = get_struct_logger(__name__)


class AppContext:
    """Application context for storing shared state."""

    def __init__(
        self,
        settings: GallerySettings,
        verbose: int = 0,
        log_file: str | None = None,
        config_file: str | None = None,
    ):
        """Initialize AppContext.

        Args:
            settings: Loaded gallery settings
            verbose: Verbosity level
            log_file: Path to log file
            config_file: Path to configuration file
        """
        self.settings = settings
        self.verbose = verbose
        self.log_file = log_file
        self.config_file = config_file
        self._dependencies: GalleryDependencies | None = None

    @property
    def dependencies(self) -> GalleryDependencies:
        """Component graph, built on first use."""
        if self._dependencies is None:
            self._dependencies = build_dependencies(self.settings)
        return self._dependencies

    def close(self) -> None:
        if self._dependencies is not None:
            self._dependencies.close()
            self._dependencies = None


def get_app_context(ctx: typer.Context) -> AppContext:
    """Return the AppContext stored by the main callback."""
    app_context = ctx.find_object(AppContext)
    if app_context is None:
        raise RuntimeError("Gallerybox context not initialized")
    return app_context


app = typer.Typer(
    name="gallerybox",
    help=f"""Gallerybox v{__version__}

Paged image gallery with a size-bounded on-disk image cache.

Common workflows:
  • Browse images:    gallerybox browse --pages 3
  • Inspect cache:    gallerybox cache show
  • Shrink cache:     gallerybox cache cleanup --max-size 500
  • Stress eviction:  gallerybox cache fill
  • Populate cache:   gallerybox cache populate --count 60""",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity (-v=INFO, -vv=DEBUG)",
        ),
    ] = 0,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Enable debug logging (equivalent to -vv)"),
    ] = False,
    log_file: Annotated[
        str | None, typer.Option("--log-file", help="Log to file (JSON lines)")
    ] = None,
    json_logs: Annotated[
        bool, typer.Option("--json-logs", help="Render console logs as JSON")
    ] = False,
    config_file: Annotated[
        str | None,
        typer.Option("-c", "--config", help="Path to configuration file"),
    ] = None,
    cache_dir: Annotated[
        Path | None,
        typer.Option("--cache-dir", help="Override the image cache directory"),
    ] = None,
    version: Annotated[
        bool, typer.Option("--version", help="Show version and exit")
    ] = False,
) -> None:
    """Gallerybox image gallery."""
    if version:
        print(f"Gallerybox v{__version__}")
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        print(ctx.get_help())
        raise typer.Exit()

    try:
        settings = load_settings(config_file, cache_path=cache_dir)
    except ConfigError as e:
        setup_logging(log_level_name="WARNING")
        logger.error("configuration_error", error=str(e))
        raise typer.Exit(1) from e

    # CLI flags beat the configured log level
    log_level_name = settings.log_level
    if debug or verbose >= 2:
        log_level_name = "DEBUG"
    elif verbose == 1:
        log_level_name = "INFO"

    setup_logging(json_logs=json_logs, log_level_name=log_level_name, log_file=log_file)

    app_context = AppContext(
        settings, verbose=verbose, log_file=log_file, config_file=config_file
    )
    ctx.obj = app_context
    ctx.call_on_close(app_context.close)

    logger.debug(
        "cli_started",
        command=ctx.invoked_subcommand,
        cache_path=str(settings.cache_path),
    )


def main() -> int:
    """Main CLI entry point."""
    try:
        app()
        return 0

    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 0

    except Exception as e:
        logging.getLogger(__name__).exception("Unexpected error: %s", e)
        print_stack_trace_if_verbose()
        return 1


if __name__ == "__main__":
    sys.exit(main())
