"""Command-line interface for Gallerybox."""

from gallerybox.cli.app import __version__, app, main
from gallerybox.cli.commands import register_all_commands


register_all_commands(app)

__all__ = ["app", "main", "__version__"]
