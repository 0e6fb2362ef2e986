from __future__ import annotations

"""JSON configuration for the printer service.

The file lives at <user config dir>/inventoryt-printer/config.json and holds:
  testEndpoint       endpoint used by the connection test
  enableFileLogging  also write logs to logFilePath
  logFilePath        log file location
  printerShare       Windows printer share name
"""

import json
import logging
import os
import platform
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from inventoryt_printer.printing import DEFAULT_PRINTER_SHARE

APP_DIR_NAME = "inventoryt-printer"
DEFAULT_TEST_ENDPOINT = "http://inventory.sensefinity.com/apptest"
DEFAULT_LOG_FILE = Path(tempfile.gettempdir()) / "inventoryt-printer.log"

LOGGER = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the config file exists but cannot be parsed."""


@dataclass(frozen=True)
class PrinterConfig:
    test_endpoint: str = DEFAULT_TEST_ENDPOINT
    enable_file_logging: bool = True
    log_file_path: Path = DEFAULT_LOG_FILE
    printer_share: str = DEFAULT_PRINTER_SHARE

    def to_json(self) -> dict[str, Any]:
        return {
            "testEndpoint": self.test_endpoint,
            "enableFileLogging": self.enable_file_logging,
            "logFilePath": str(self.log_file_path),
            "printerShare": self.printer_share,
        }


def user_config_dir() -> Path:
    """Return the per-user configuration directory for the current OS."""
    system = platform.system()
    if system == "Windows":
        app_data = os.environ.get("APPDATA")
        if app_data:
            return Path(app_data)
        return Path.home() / "AppData" / "Roaming"
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support"
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    return Path(xdg_config_home) if xdg_config_home else Path.home() / ".config"


def default_config_path() -> Path:
    return user_config_dir() / APP_DIR_NAME / "config.json"


def _typed(data: dict[str, Any], key: str, expected: type, default: Any, config_path: Path) -> Any:
    if key not in data:
        return default
    value = data[key]
    if not isinstance(value, expected) or (expected is str and not value.strip()):
        LOGGER.warning(
            "Config value for %s (%r) in %s is invalid; using default %s.",
            key,
            value,
            config_path,
            default,
        )
        return default
    return value


def _read_raw(config_path: Path) -> dict[str, Any]:
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a JSON object")
    return data


def save_config(config: PrinterConfig, config_path: Path) -> None:
    """Write ``config`` to disk, keeping any keys this version does not know.

    Raises:
        OSError: If the file cannot be written.
    """
    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            data = _read_raw(config_path)
        except (ConfigError, OSError):
            data = {}
    data.update(config.to_json())
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(data, indent=4) + "\n", encoding="utf-8")


def load_config(config_path: Path | None = None) -> PrinterConfig:
    """Load the config file, writing defaults if it does not exist yet.

    Raises:
        ConfigError: If the file is not a JSON object.
        OSError: If the file cannot be read or the defaults cannot be written.
    """
    config_path = config_path or default_config_path()
    if not config_path.exists():
        config = PrinterConfig()
        save_config(config, config_path)
        return config

    data = _read_raw(config_path)
    defaults = PrinterConfig()
    log_file = _typed(data, "logFilePath", str, None, config_path)
    return PrinterConfig(
        test_endpoint=_typed(data, "testEndpoint", str, defaults.test_endpoint, config_path),
        enable_file_logging=_typed(
            data, "enableFileLogging", bool, defaults.enable_file_logging, config_path
        ),
        log_file_path=Path(log_file).expanduser() if log_file else defaults.log_file_path,
        printer_share=_typed(data, "printerShare", str, defaults.printer_share, config_path),
    )


class JsonConfigStore:
    """Configuration collaborator backed by the JSON file."""

    def __init__(self, config_path: Path | None = None, config: PrinterConfig | None = None) -> None:
        self.config_path = config_path or default_config_path()
        self._config = config

    def get(self) -> PrinterConfig:
        if self._config is None:
            self._config = load_config(self.config_path)
        return self._config

    def set_test_endpoint(self, url: str) -> None:
        """Persist a new test endpoint.

        Raises:
            OSError: If the file cannot be written.
        """
        updated = replace(self.get(), test_endpoint=url)
        save_config(updated, self.config_path)
        self._config = updated
        LOGGER.info("Test endpoint set to %s in %s", url, self.config_path)
