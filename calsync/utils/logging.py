"""
Logging setup for calsync.

All modules log through the ``calsync`` logger hierarchy, which gets two
handlers:

- stderr, in a short format (colored on capable terminals)
- a dated file in the log directory, always at DEBUG and with thread names,
  since daemon passes of several accounts run on worker threads

The environment can steer both: CALSYNC_DEBUG / CALSYNC_LOG_LEVEL pick the
console level and CALSYNC_LOG_FILE names the log file ("none" disables it).
"""

import logging
import os
import sys
from datetime import date
from pathlib import Path
from typing import Optional

from calsync.utils.paths import resolve_config_dir

LOGGER_NAME = "calsync"

CONSOLE_FORMAT = "%(levelname)s: %(message)s"
VERBOSE_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(threadName)s] "
    "[%(filename)s:%(lineno)d] - %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Log files are named calsync_YYYYMMDD.log
LOG_FILE_PREFIX = "calsync_"

ENV_LOG_LEVEL = "CALSYNC_LOG_LEVEL"
ENV_DEBUG = "CALSYNC_DEBUG"
ENV_LOG_FILE = "CALSYNC_LOG_FILE"

# CALSYNC_LOG_FILE values that turn file logging off
_FILE_LOGGING_OFF = ("none", "disabled", "")

_LEVEL_ALIASES = {"WARN": logging.WARNING}


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name for terminal output."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        use_colors: bool = True,
    ):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and _stderr_supports_color()

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname) if self.use_colors else None
        if color is None:
            return super().format(record)
        # The file handler formats the same record
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def _stderr_supports_color() -> bool:
    isatty = getattr(sys.stderr, "isatty", None)
    if isatty is None or not isatty():
        return False
    # https://no-color.org/
    if os.environ.get("NO_COLOR"):
        return False
    return os.environ.get("TERM", "") != "dumb"


def get_log_level_from_env() -> int:
    """
    Console level requested through the environment.

    A truthy CALSYNC_DEBUG means DEBUG; otherwise CALSYNC_LOG_LEVEL is read,
    and anything unrecognized gives INFO.
    """
    if os.environ.get(ENV_DEBUG, "").lower() in ("1", "true", "yes"):
        return logging.DEBUG

    name = os.environ.get(ENV_LOG_LEVEL, "INFO").upper()
    if name in _LEVEL_ALIASES:
        return _LEVEL_ALIASES[name]
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def default_log_dir() -> Path:
    return resolve_config_dir() / "logs"


def get_log_file_path(log_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Where to write the log file.

    Args:
        log_dir: Directory of the dated log file (default: <config dir>/logs)

    Returns:
        The CALSYNC_LOG_FILE path if set, else today's file in the log
        directory; None when file logging is disabled
    """
    override = os.environ.get(ENV_LOG_FILE)
    if override is not None:
        if override.lower() in _FILE_LOGGING_OFF:
            return None
        return Path(override).expanduser()

    return (log_dir or default_log_dir()) / f"{LOG_FILE_PREFIX}{date.today():%Y%m%d}.log"


def _console_handler(level: int, verbose: bool, use_colors: bool) -> logging.Handler:
    fmt = VERBOSE_FORMAT if verbose else CONSOLE_FORMAT
    formatter_cls = ColoredFormatter if use_colors else logging.Formatter
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(formatter_cls(fmt, DATE_FORMAT))
    return handler


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(VERBOSE_FORMAT, DATE_FORMAT))
    return handler


def setup_logging(
    level: Optional[int] = None,
    verbose: bool = False,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = True,
    use_colors: bool = True,
) -> logging.Logger:
    """
    Configure the ``calsync`` logger, replacing earlier handlers.

    Args:
        level: Console level; read from the environment when None
        verbose: Log at DEBUG in the verbose format
        log_dir: Directory of the log file
        enable_file_logging: Add the file handler
        use_colors: Color console output where supported

    Returns:
        The configured ``calsync`` logger
    """
    if verbose:
        level = logging.DEBUG
    elif level is None:
        level = get_log_level_from_env()

    logger = logging.getLogger(LOGGER_NAME)
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    logger.setLevel(level)
    logger.propagate = False
    logger.addHandler(_console_handler(level, verbose, use_colors))

    file_path = get_log_file_path(log_dir) if enable_file_logging else None
    if file_path is not None:
        try:
            logger.addHandler(_file_handler(file_path))
        except OSError as e:
            logger.warning(f"Logging to console only, cannot open {file_path}: {e}")
        else:
            logger.debug(f"Logging to {file_path}")

    return logger


def cleanup_old_logs(log_dir: Optional[Path] = None, keep_count: int = 10) -> int:
    """
    Delete all but the ``keep_count`` newest log files.

    A ``keep_count`` of 0 keeps everything. Returns the number of deleted files.
    """
    directory = log_dir or default_log_dir()
    if keep_count <= 0 or not directory.is_dir():
        return 0

    newest_first = sorted(
        directory.glob(f"{LOG_FILE_PREFIX}*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    deleted = 0
    for path in newest_first[keep_count:]:
        try:
            path.unlink()
        except OSError as e:
            logging.getLogger(__name__).debug(f"Keeping {path}: {e}")
        else:
            deleted += 1
    return deleted


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` inside the ``calsync`` hierarchy."""
    if name == LOGGER_NAME or name.startswith(LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def set_log_level(level: int) -> None:
    """Change the console level at runtime; the log file stays at DEBUG."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in logger.handlers:
        if not isinstance(handler, logging.FileHandler):
            handler.setLevel(level)


__all__ = [
    "setup_logging",
    "get_logger",
    "set_log_level",
    "cleanup_old_logs",
    "ColoredFormatter",
    "get_log_level_from_env",
    "get_log_file_path",
    "default_log_dir",
    "CONSOLE_FORMAT",
    "VERBOSE_FORMAT",
    "DATE_FORMAT",
    "LOG_FILE_PREFIX",
]
