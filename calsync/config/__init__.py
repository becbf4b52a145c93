"""
calsync.config - Configuration management module

Contains configuration loading, validation, account settings and the
default configuration file.
"""

from calsync.config.accounts import (
    AccountConfigError,
    AccountSettings,
    AccountSettingsProvider,
)
from calsync.config.loader import ConfigError, ConfigLoader

__all__ = [
    "AccountConfigError",
    "AccountSettings",
    "AccountSettingsProvider",
    "ConfigError",
    "ConfigLoader",
]
