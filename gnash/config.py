import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from gnash.core.detector import DEFAULT_CONFIG, DetectorConfig
from gnash.core.errors import ConfigError

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

CONFIG_FILE = ".gnash.toml"


@dataclass(frozen=True)
class Settings:
    detector: DetectorConfig = field(default_factory=lambda: DEFAULT_CONFIG)
    extensions: Tuple[str, ...] = (".js",)
    # Upper bound on files read at the same time
    max_open_files: int = 50
    log_file: str = "debug.log"


DEFAULT_SETTINGS = Settings()


def _string_list(table: Dict[str, Any], key: str, default):
    value = table.get(key)
    if value is None:
        return default
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"'{key}' must be a list of strings")
    return value


def settings_from_table(table: Dict[str, Any]) -> Settings:
    """Builds Settings from the [gnash] table of a config file."""
    detector = DetectorConfig(
        io_modules=frozenset(_string_list(table, "io_modules", DEFAULT_CONFIG.io_modules)),
        execution_modules=frozenset(_string_list(table, "execution_modules", DEFAULT_CONFIG.execution_modules)),
        global_watch_list=frozenset(_string_list(table, "global_watch_list", DEFAULT_CONFIG.global_watch_list)),
    )
    extensions = tuple(_string_list(table, "extensions", DEFAULT_SETTINGS.extensions))

    max_open_files = table.get("max_open_files", DEFAULT_SETTINGS.max_open_files)
    if not isinstance(max_open_files, int) or isinstance(max_open_files, bool) or max_open_files < 1:
        raise ConfigError("'max_open_files' must be a positive integer")

    log_file = table.get("log_file", DEFAULT_SETTINGS.log_file)
    if not isinstance(log_file, str):
        raise ConfigError("'log_file' must be a string")

    return Settings(detector=detector, extensions=extensions, max_open_files=max_open_files, log_file=log_file)


def load_settings(project_dir: str, config_path: Optional[str] = None) -> Settings:
    path = config_path or os.path.join(project_dir, CONFIG_FILE)
    if not os.path.exists(path):
        if config_path:
            raise ConfigError(f"Config file not found: {config_path}")
        return DEFAULT_SETTINGS

    logging.debug(f"Loading settings from {path}")
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Error reading {path}: {e}")

    table = data.get("gnash", {})
    if not isinstance(table, dict):
        raise ConfigError(f"[gnash] in {path} must be a table")
    return settings_from_table(table)
