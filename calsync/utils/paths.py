"""Location of the calsync configuration directory."""

from __future__ import annotations

import os
from pathlib import Path

DEFAULT_CONFIG_DIR = Path.home() / ".calsync"

CONFIG_DIR_ENV_VAR = "CALSYNC_CONFIG_DIR"


def resolve_config_dir(config_dir: Path | str | None = None) -> Path:
    """
    Absolute configuration directory.

    An explicit ``config_dir`` wins over $CALSYNC_CONFIG_DIR, which wins over
    ~/.calsync. The CLI, the config loader and the log setup all resolve the
    directory here.
    """
    chosen = config_dir if config_dir is not None else os.environ.get(CONFIG_DIR_ENV_VAR)
    return Path(chosen or DEFAULT_CONFIG_DIR).expanduser().resolve()
