"""
Configuration file generator for calsync.

Writes a documented default configuration file for ``calsync init-config``.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def generate_default_config() -> str:
    """
    Generate the default YAML configuration with all options documented.

    Returns:
        String containing YAML configuration with comments
    """
    return """# calsync Configuration
# =====================
#
# Save as ~/.calsync/config.yaml (or point CALSYNC_CONFIG_FILE at it).
# CLI arguments always override these values.

# Logging Options
# ---------------

# Enable verbose console output
# Default: false
# verbose: true

# Directory for log files
# Default: ~/.calsync/logs
# log_dir: ~/.calsync/logs

# Number of log files to keep
# Default: 10
# log_retention_count: 10


# Storage
# -------

# SQLite database holding the collection cache, local calendars and sync state
# Default: ~/.calsync/calsync.db
# database: ~/.calsync/calsync.db


# Sync Behavior
# -------------

# Seconds to wait before retrying when the server is unavailable and sent
# no Retry-After header
# Default: 3600
# default_retry_delay: 3600


# Journal Server Client
# ---------------------

# Request timeout in seconds
# Default: 30
# api_timeout: 30

# Retries for connection errors and server errors
# Default: 3
# api_max_retries: 3

# Initial and maximum backoff between retries (seconds)
# api_initial_retry_delay: 1.0
# api_max_retry_delay: 30.0


# Daemon
# ------

# Interval between sync passes (30s, 5m, 1h, 1d)
# Default: 1h
# daemon_interval: 1h

# PID file of the running daemon
# Default: ~/.calsync/daemon.pid
# daemon_pid_file: ~/.calsync/daemon.pid

# Accounts synchronized in parallel
# Default: 4
# daemon_max_workers: 4


# Accounts
# --------
#
# One entry per journal server account. The key is the account id used on
# the command line (calsync sync -a personal).
#
# accounts:
#   personal:
#     url: https://journal.example.com
#     username: me@example.com
#     # Name of the environment variable holding the API token
#     token_env: CALSYNC_PERSONAL_TOKEN
#     # Take over calendar colors from the server
#     manage_calendar_colors: true
#     # Include the account in scheduled syncs
#     enabled: true
#     # Skip scheduled syncs while the server is unreachable
#     check_network: true
"""


def save_config_file(
    config_path: Path, overwrite: bool = False
) -> tuple[bool, str | None]:
    """
    Save the default configuration file to the given path.

    Creates parent directories if they don't exist and writes the file with
    owner-only permissions, since it may hold API tokens.

    Args:
        config_path: Path where the config file should be saved
        overwrite: If True, overwrite an existing file

    Returns:
        Tuple of (success, error_message)
    """
    config_path = config_path.expanduser().resolve()

    if config_path.exists() and not overwrite:
        return (
            False,
            f"Configuration file already exists: {config_path}\n"
            "Use --force to overwrite.",
        )

    try:
        config_path.parent.mkdir(parents=True, mode=0o700, exist_ok=True)
        config_path.write_text(generate_default_config(), encoding="utf-8")
        config_path.chmod(0o600)
    except OSError as e:
        error_msg = f"Failed to create configuration file: {e}"
        logger.error(error_msg)
        return (False, error_msg)

    logger.info(f"Created configuration file: {config_path}")
    return (True, None)
