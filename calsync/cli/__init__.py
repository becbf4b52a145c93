"""CLI package for calsync."""

from calsync.cli.formatters import show_calendars, show_outcome, show_sync_state
from calsync.cli.main import (
    DEFAULT_DATABASE_FILE,
    cli,
    get_config_dir,
    get_database_path,
)
from calsync.utils import DEFAULT_CONFIG_DIR

__all__ = [
    "DEFAULT_CONFIG_DIR",
    "DEFAULT_DATABASE_FILE",
    "cli",
    "get_config_dir",
    "get_database_path",
    "show_calendars",
    "show_outcome",
    "show_sync_state",
]
