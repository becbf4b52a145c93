"""
Per-account settings.

Accounts are configured in the ``accounts`` section of the YAML configuration
file, keyed by account id:

    accounts:
      personal:
        url: https://journal.example.com
        username: me@example.com
        token_env: CALSYNC_PERSONAL_TOKEN
        manage_calendar_colors: true
        enabled: true
        check_network: true

Notes:
    - ``url`` is required, everything else is optional
    - The API token is read from the environment variable named by
      ``token_env``; ``token`` may hold it inline instead
    - ``manage_calendar_colors`` controls whether sync passes take over the
      remote calendar colors
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlparse

from calsync.config.loader import ConfigError

logger = logging.getLogger(__name__)

# Fields of an account entry and their expected types
ACCOUNT_FIELDS: dict[str, type] = {
    "url": str,
    "username": str,
    "token_env": str,
    "token": str,
    "manage_calendar_colors": bool,
    "enabled": bool,
    "check_network": bool,
}


class AccountConfigError(ConfigError):
    """Raised when an account entry is missing or invalid."""

    pass


@dataclass
class AccountSettings:
    """
    Settings of one journal server account.

    Attributes:
        account_id: Key of the account in the configuration
        url: Base url of the journal server (the endpoint URI)
        username: Login name, informational
        token_env: Environment variable holding the API token
        token: Inline API token (used when token_env is not set)
        manage_calendar_colors: Take over remote colors on update
        enabled: Include the account in scheduled syncs
        check_network: Require the server to be reachable for scheduled syncs
    """

    account_id: str
    url: str
    username: Optional[str] = None
    token_env: Optional[str] = None
    token: Optional[str] = None
    manage_calendar_colors: bool = True
    enabled: bool = True
    check_network: bool = True

    @classmethod
    def from_dict(cls, account_id: str, data: dict[str, Any] | None) -> AccountSettings:
        """
        Create AccountSettings from an ``accounts`` entry.

        Args:
            account_id: Key of the entry
            data: The entry

        Returns:
            AccountSettings instance

        Raises:
            AccountConfigError: If the entry is malformed
        """
        if not isinstance(data, dict):
            raise AccountConfigError(
                f"Account '{account_id}' must be a dictionary, "
                f"got {type(data).__name__}"
            )

        for key, value in data.items():
            expected = ACCOUNT_FIELDS.get(key)
            if expected is None:
                logger.warning(f"Ignoring unknown option '{key}' of account '{account_id}'")
                continue
            if not isinstance(value, expected):
                raise AccountConfigError(
                    f"accounts.{account_id}.{key} must be a {expected.__name__}, "
                    f"got {type(value).__name__}"
                )

        url = data.get("url")
        if not url or not url.strip():
            raise AccountConfigError(f"Account '{account_id}' has no url")
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise AccountConfigError(
                f"Account '{account_id}' url must be an http(s) url, got '{url}'"
            )

        return cls(
            account_id=account_id,
            url=url.rstrip("/"),
            username=data.get("username"),
            token_env=data.get("token_env"),
            token=data.get("token"),
            manage_calendar_colors=data.get("manage_calendar_colors", True),
            enabled=data.get("enabled", True),
            check_network=data.get("check_network", True),
        )

    def resolve_token(self) -> Optional[str]:
        """
        Get the API token of the account.

        Returns:
            The token from the environment variable named by ``token_env``,
            else the inline ``token``, else None
        """
        if self.token_env:
            token = os.environ.get(self.token_env)
            if token:
                return token
            logger.warning(
                f"Environment variable {self.token_env} for account "
                f"'{self.account_id}' is not set"
            )
        return self.token

    @property
    def host(self) -> str:
        """Host name of the journal server."""
        return urlparse(self.url).hostname or ""

    @property
    def port(self) -> int:
        """Port of the journal server, defaulting by scheme."""
        parsed = urlparse(self.url)
        if parsed.port:
            return parsed.port
        return 443 if parsed.scheme == "https" else 80


class AccountSettingsProvider:
    """
    Settings provider backed by the loaded configuration.

    Usage:
        config = ConfigLoader().load_and_validate()
        settings = AccountSettingsProvider.from_config(config)

        for account in settings:
            print(account.account_id, account.url)
    """

    def __init__(self, accounts: dict[str, AccountSettings]):
        self._accounts = dict(accounts)

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> AccountSettingsProvider:
        """
        Parse the ``accounts`` section of a configuration dictionary.

        Raises:
            AccountConfigError: If any account entry is invalid
        """
        section = config.get("accounts") or {}
        if not isinstance(section, dict):
            raise AccountConfigError(
                f"accounts must be a dictionary, got {type(section).__name__}"
            )
        accounts = {
            str(account_id): AccountSettings.from_dict(str(account_id), data)
            for account_id, data in section.items()
        }
        return cls(accounts)

    def __iter__(self) -> Iterator[AccountSettings]:
        return iter(self._accounts.values())

    def __len__(self) -> int:
        return len(self._accounts)

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._accounts

    @property
    def account_ids(self) -> list[str]:
        """Ids of all configured accounts, in configuration order."""
        return list(self._accounts)

    def get(self, account_id: str) -> AccountSettings:
        """
        Get the settings of an account.

        Raises:
            AccountConfigError: If the account is not configured
        """
        try:
            return self._accounts[account_id]
        except KeyError:
            raise AccountConfigError(f"Unknown account '{account_id}'") from None

    def get_endpoint_uri(self, account_id: str) -> str:
        """Base url of the account's journal server."""
        return self.get(account_id).url

    def get_manage_colors_flag(self, account_id: str) -> bool:
        """Whether passes of the account take over remote colors."""
        return self.get(account_id).manage_calendar_colors
