"""Logging setup for Gallerybox.

Library modules log through ``logging.getLogger(__name__)``; the CLI logs
structured events through ``get_struct_logger``. Both end up in the same
root handlers, rendered by structlog.
"""

import logging
import shutil
import sys
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any, TextIO

import structlog
from rich.console import Console
from rich.traceback import Traceback
from structlog.stdlib import BoundLogger
from structlog.typing import ExcInfo, Processor


# Loggers of the HTTP stack used by the remote client
HTTP_LOGGERS = ("urllib3", "urllib3.connectionpool", "requests")


def _millisecond_timestamp(
    logger: Any, log_method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    raw = event_dict.pop("timestamp_raw", None)
    if raw is not None:
        event_dict["timestamp"] = raw[:-3]
    return event_dict


def _console_timestamp(log_level: int) -> list[Processor]:
    # Debug sessions are short; the date only adds noise there
    fmt = "%H:%M:%S.%f" if log_level < logging.INFO else "%Y-%m-%d %H:%M:%S.%f"
    return [
        structlog.processors.TimeStamper(fmt=fmt, key="timestamp_raw"),
        _millisecond_timestamp,
    ]


def _stdlib_pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.dev.set_exc_info,
    ]


def configure_structlog(log_level: int = logging.INFO) -> None:
    """Route structlog events through stdlib logging handlers."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
    ]
    if log_level < logging.INFO:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            )
        )
    processors += _console_timestamp(log_level)
    processors += [
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        # Must stay last so each handler can pick its own renderer
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def rich_traceback(sio: TextIO, exc_info: ExcInfo) -> None:
    """Render *exc_info* into *sio* with Rich, hiding CLI and HTTP frames."""
    width, _height = shutil.get_terminal_size((80, 123))
    sio.write("\n")
    Console(file=sio, color_system="truecolor").print(
        Traceback.from_exception(
            *exc_info,
            extra_lines=1,
            width=width,
            max_frames=5,
            suppress=["click", "typer", "requests", "urllib3"],
        ),
    )


def _console_handler(log_level: int, json_logs: bool) -> logging.Handler:
    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(exception_formatter=rich_traceback)
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_stdlib_pre_chain() + _console_timestamp(log_level),
            processor=renderer,
        )
    )
    return handler


def _file_handler(log_file: str, log_level: int) -> logging.Handler:
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8", delay=True)
    handler.setLevel(log_level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[
                *_stdlib_pre_chain(),
                structlog.processors.TimeStamper(fmt="iso"),
            ],
            processor=structlog.processors.JSONRenderer(),
        )
    )
    return handler


def setup_logging(
    json_logs: bool = False,
    log_level_name: str = "WARNING",
    log_file: str | None = None,
) -> BoundLogger:
    """Configure the root logger and structlog.

    Args:
        json_logs: Render console output as JSON instead of colored text
        log_level_name: Name of the root log level
        log_file: Optional path that receives every record as a JSON line

    Returns:
        A structlog logger instance
    """
    log_level = getattr(logging, log_level_name.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    configure_structlog(log_level=log_level)

    root_logger.handlers = [_console_handler(log_level, json_logs)]
    if log_file:
        root_logger.addHandler(_file_handler(log_file, log_level))

    # Connection pool chatter stays hidden unless it is an actual warning
    http_level = max(log_level, logging.WARNING)
    for name in HTTP_LOGGERS:
        http_logger = logging.getLogger(name)
        http_logger.handlers = []
        http_logger.propagate = True
        http_logger.setLevel(http_level)

    return structlog.get_logger()  # type: ignore[no-any-return]


def get_struct_logger(name: str | None = None) -> BoundLogger:
    """Get a structlog logger instance."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]
