"""
Settings loading for Gallerybox.

Configuration comes from several sources:
1. Environment variables (highest precedence)
2. Command-line provided config file
3. Config file in current directory
4. User's XDG config directory
5. Default values (lowest precedence)
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from gallerybox.config.models import GallerySettings
from gallerybox.core.errors import ConfigError


logger = logging.getLogger(__name__)

ENV_PREFIX = "GALLERYBOX_"


def config_search_paths(cli_config_path: str | Path | None = None) -> list[Path]:
    """Config paths to search in order of precedence."""
    config_paths = []

    if cli_config_path:
        config_paths.append(Path(cli_config_path).expanduser().resolve())

    config_paths.extend([Path.cwd() / "gallerybox.yaml", Path.cwd() / ".gallerybox.yml"])

    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    config_root = (
        Path(xdg_config_home) if xdg_config_home else Path.home() / ".config"
    ) / "gallerybox"
    config_paths.extend([config_root / "config.yaml", config_root / "config.yml"])

    return config_paths


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def load_settings(
    cli_config_path: str | Path | None = None, **overrides: Any
) -> GallerySettings:
    """Load settings from the first config file found plus the environment.

    Args:
        cli_config_path: Config file given on the command line; it must exist
        **overrides: Values applied last, over file and environment values

    Returns:
        Validated settings

    Raises:
        ConfigError: If a config file is unreadable or values are invalid
    """
    if cli_config_path and not Path(cli_config_path).expanduser().exists():
        raise ConfigError(f"Config file not found: {cli_config_path}")

    file_data: dict[str, Any] = {}
    for path in config_search_paths(cli_config_path):
        if path.is_file():
            file_data = _read_yaml(path)
            logger.debug("Loaded gallery configuration from %s", path)
            break
    else:
        logger.debug("No configuration file found, using defaults and environment")

    if logger.isEnabledFor(logging.DEBUG):
        env_vars = {k: v for k, v in os.environ.items() if k.startswith(ENV_PREFIX)}
        for key, value in env_vars.items():
            logger.debug("  %s=%s", key, value)

    try:
        settings = GallerySettings(**file_data)
        # Explicit overrides (command-line options) beat the environment
        for name, value in overrides.items():
            if value is not None:
                setattr(settings, name, value)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
    return settings
