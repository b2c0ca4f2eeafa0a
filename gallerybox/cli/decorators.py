"""Error handling decorators for CLI commands."""

import logging
import sys
import traceback
from collections.abc import Callable
from functools import wraps
from typing import Any

import typer

from gallerybox.core.errors import (
    CacheFailure,
    ConfigError,
    GalleryFailure,
    NetworkFailure,
    ServerFailure,
)
from gallerybox.core.logging import get_struct_logger


__all__ = ["handle_errors", "print_stack_trace_if_verbose"]

logger = get_struct_logger(__name__)


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator to handle common exceptions in CLI commands.

    Known failures are logged as structured events and the command exits
    with status 1.

    Args:
        func: The function to decorate

    Returns:
        Decorated function with error handling
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (typer.Exit, typer.Abort):
            raise
        except ConfigError as e:
            logger.error("configuration_error", error=str(e))
            print_stack_trace_if_verbose()
            raise typer.Exit(1) from e
        except NetworkFailure as e:
            logger.error("network_error", error=e.message)
            print_stack_trace_if_verbose()
            raise typer.Exit(1) from e
        except ServerFailure as e:
            logger.error("server_error", error=e.message, status_code=e.status_code)
            print_stack_trace_if_verbose()
            raise typer.Exit(1) from e
        except CacheFailure as e:
            logger.error("cache_error", error=e.message)
            print_stack_trace_if_verbose()
            raise typer.Exit(1) from e
        except GalleryFailure as e:
            logger.error("gallery_error", kind=e.kind, error=e.message)
            print_stack_trace_if_verbose()
            raise typer.Exit(1) from e
        except Exception as e:
            exc_info = logger.isEnabledFor(logging.DEBUG)
            logger.error("unexpected_error", error=str(e), exc_info=exc_info)
            print_stack_trace_if_verbose()
            raise typer.Exit(1) from e

    return wrapper


def print_stack_trace_if_verbose() -> None:
    """Print stack trace if verbose/debug mode is enabled."""
    if any(arg in sys.argv for arg in ["-v", "-vv", "--verbose", "--debug"]):
        print("\nStack trace:", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
