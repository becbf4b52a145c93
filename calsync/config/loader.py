"""
YAML configuration file for calsync.

The file holds global options (logging, database, daemon, HTTP client) and
an ``accounts`` mapping. A missing or empty file reads as ``{}`` so every
command also works on defaults.
"""

import logging
import os
from pathlib import Path
from typing import Any, Callable, NamedTuple

import yaml

from calsync.utils.paths import resolve_config_dir

DEFAULT_CONFIG_FILE = "config.yaml"

# Explicit configuration file, wins over the configuration directory
CONFIG_FILE_ENV_VAR = "CALSYNC_CONFIG_FILE"

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when the configuration cannot be read or is invalid."""

    pass


class _Option(NamedTuple):
    types: tuple[type, ...]
    check: Callable[[Any], bool] | None = None
    requirement: str = ""


def _at_least_one(value: Any) -> bool:
    return value >= 1


def _positive(value: Any) -> bool:
    return value > 0


_INT = (int,)
_NUMBER = (int, float)

# Global options; keys not listed here are ignored
OPTIONS: dict[str, _Option] = {
    "verbose": _Option((bool,)),
    "log_dir": _Option((str,)),
    "log_retention_count": _Option(_INT, _at_least_one, ">= 1"),
    "database": _Option((str,)),
    "default_retry_delay": _Option(_INT, _at_least_one, ">= 1"),
    "daemon_interval": _Option((str,)),
    "daemon_pid_file": _Option((str,)),
    "daemon_max_workers": _Option(_INT, _at_least_one, ">= 1"),
    "api_timeout": _Option(_NUMBER, _positive, "> 0"),
    "api_max_retries": _Option(_INT, _at_least_one, ">= 1"),
    "api_initial_retry_delay": _Option(_NUMBER, _positive, "> 0"),
    "api_max_retry_delay": _Option(_NUMBER, _positive, "> 0"),
    "accounts": _Option((dict,)),
}


def _check_option(key: str, value: Any, option: _Option) -> None:
    # YAML "yes" loads as bool, which would pass as an int
    wrong_type = not isinstance(value, option.types) or (
        isinstance(value, bool) and bool not in option.types
    )
    if wrong_type:
        expected = " or ".join(t.__name__ for t in option.types)
        raise ConfigError(
            f"Invalid type for '{key}': expected {expected}, got {type(value).__name__}"
        )
    if option.check is not None and not option.check(value):
        raise ConfigError(f"{key} must be {option.requirement}, got {value}")


class ConfigLoader:
    """
    Reads and validates the configuration file.

    Usage:
        config = ConfigLoader().load_and_validate()
        other = ConfigLoader().load_from_file("/etc/calsync.yaml")
    """

    def __init__(
        self, config_dir: Path | None = None, config_file: str = DEFAULT_CONFIG_FILE
    ):
        """
        Args:
            config_dir: Directory of the configuration file
                       (default: $CALSYNC_CONFIG_DIR or ~/.calsync)
            config_file: File name inside config_dir
        """
        self.config_dir = resolve_config_dir(config_dir)
        self.config_file = config_file

    @property
    def config_path(self) -> Path:
        env_file = os.environ.get(CONFIG_FILE_ENV_VAR)
        if env_file:
            return Path(env_file).expanduser()
        return self.config_dir / self.config_file

    def load(self) -> dict[str, Any]:
        """Read the configuration file at ``config_path``."""
        return self.load_from_file(self.config_path)

    def load_from_file(self, path: Path | str) -> dict[str, Any]:
        """
        Read a configuration file.

        Returns:
            The top-level mapping, or ``{}`` for a missing or empty file

        Raises:
            ConfigError: If the file is unreadable, not YAML, or not a mapping
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"No configuration file at {path}")
            return {}
        except OSError as e:
            raise ConfigError(f"Cannot read configuration file {path}: {e}") from e

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse configuration file {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"{path} must contain a YAML dictionary, not {type(data).__name__}"
            )
        logger.debug(f"Loaded configuration from {path}")
        return data

    def validate(self, config: dict[str, Any]) -> None:
        """
        Check the types and ranges of the global options.

        Account entries are checked by calsync.config.accounts when parsed.

        Raises:
            ConfigError: On the first invalid option
        """
        if not isinstance(config, dict):
            raise ConfigError(
                f"Configuration must be a dictionary, got {type(config).__name__}"
            )

        for key, value in config.items():
            option = OPTIONS.get(key)
            if option is not None:
                _check_option(key, value, option)

        if "daemon_interval" in config:
            # Deferred, the daemon package imports the sync engine
            from calsync.daemon import parse_interval

            try:
                parse_interval(config["daemon_interval"])
            except ValueError as e:
                raise ConfigError(f"Invalid daemon_interval: {e}") from e

    def load_and_validate(self) -> dict[str, Any]:
        config = self.load()
        self.validate(config)
        return config
