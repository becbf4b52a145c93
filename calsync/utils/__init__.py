"""
calsync.utils - Utility module

Logging configuration and configuration directory resolution.
"""

from calsync.utils.paths import DEFAULT_CONFIG_DIR, resolve_config_dir

__all__ = ["resolve_config_dir", "DEFAULT_CONFIG_DIR"]
