"""Application settings, read once from a TOML file in the user config dir."""

import sys
import tomllib
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, ClassVar

from loguru import logger

APP_NAME = "coinscope"

if sys.platform == "win32":
    CONFIG_DIR = Path.home() / "AppData" / "Roaming" / APP_NAME
else:
    CONFIG_DIR = Path.home() / ".config" / APP_NAME
CONFIG_FILE = CONFIG_DIR / "config.toml"

DEFAULT_API_BASE_URL = "https://api.coingecko.com/api/v3"

CONFIG_HEADER = """\
# coinscope configuration
#
# Every key is optional; anything left out keeps its built-in default.
#
# [general]  log_level_console, log_level_file, log_directory
# [api]      base_url, vs_currency, page_size, history_days, request_timeout_s
# [ui]       transition_delay_ms, collapse_breakpoint_px, window_width,
#            window_height
"""


@dataclass
class GeneralSettings:
    """Log levels and where log files go."""

    log_level_console: str = "INFO"
    log_level_file: str = "DEBUG"
    log_directory: str = str(CONFIG_DIR / "logs")


@dataclass
class APISettings:
    """Settings for the market-data API."""

    base_url: str = DEFAULT_API_BASE_URL
    vs_currency: str = "usd"
    page_size: int = 50
    history_days: int = 7
    request_timeout_s: float = 20.0


@dataclass
class UISettings:
    """Settings for the window layout and detail transitions."""

    transition_delay_ms: int = 500
    collapse_breakpoint_px: int = 800
    window_width: int = 1280
    window_height: int = 720


@dataclass
class Settings:
    """One table per section of the configuration file."""

    general: GeneralSettings = field(default_factory=GeneralSettings)
    api: APISettings = field(default_factory=APISettings)
    ui: UISettings = field(default_factory=UISettings)

    _instance: ClassVar["Settings | None"] = None

    @classmethod
    def get_instance(cls) -> "Settings":
        """Loads the configuration file on first call and caches the result."""
        if cls._instance is None:
            cls._instance = load_config()
        return cls._instance


def _is_acceptable(current: Any, value: Any) -> bool:
    """Checks ``value`` against the type of the setting it replaces.

    Text settings need a non-blank string; numeric settings need a positive
    number, and integer settings reject fractional values.
    """
    if isinstance(current, str):
        return isinstance(value, str) and bool(value.strip())
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    if isinstance(current, int):
        return isinstance(value, int) and value > 0
    return value > 0


def _merge(target: Any, data: dict[str, Any], section: str = "") -> None:
    """Copies ``data`` onto the dataclass ``target``, table by table.

    Unknown keys and unacceptable values are skipped with a warning, so a typo
    in the file never keeps the application from starting.
    """
    known = {f.name for f in fields(target)}
    for key, value in data.items():
        name = f"{section}.{key}" if section else key
        if key not in known:
            logger.warning(f"Ignoring unknown configuration key '{name}'.")
            continue

        current = getattr(target, key)
        if is_dataclass(current):
            if isinstance(value, dict):
                _merge(current, value, name)
            else:
                logger.warning(f"Configuration section '{name}' must be a table.")
            continue

        if not _is_acceptable(current, value):
            logger.warning(f"Ignoring invalid value {value!r} for '{name}'.")
            continue
        setattr(target, key, float(value) if isinstance(current, float) else value)


def _write_header(path: Path) -> None:
    logger.info(f"No configuration at '{path}'; writing a commented template.")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(CONFIG_HEADER, encoding="utf-8")
    except OSError as e:
        logger.warning(f"Could not create '{path}': {e}")


def load_config(path: Path = CONFIG_FILE) -> Settings:
    """Reads ``path`` and merges it over the defaults.

    A missing file is created with a commented header listing every section.
    An unreadable or malformed file is reported and ignored.

    Args:
        path: Location of the TOML file.

    Returns:
        The merged settings.
    """
    settings = Settings()
    if not path.exists():
        _write_header(path)
        return settings

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Could not read '{path}': {e}. Using defaults.")
        return settings
    except tomllib.TOMLDecodeError as e:
        logger.error(f"Invalid TOML in '{path}': {e}. Using defaults.")
        return settings

    _merge(settings, data)
    logger.info(f"Configuration loaded from '{path}'.")
    return settings
