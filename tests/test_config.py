"""
Unit tests for the configuration package.

Tests the YAML loader, account settings and the default config generator.
"""

import stat

import pytest
import yaml

from calsync.config import (
    AccountConfigError,
    AccountSettings,
    AccountSettingsProvider,
    ConfigError,
    ConfigLoader,
)
from calsync.config.generator import generate_default_config, save_config_file
from calsync.config.loader import CONFIG_FILE_ENV_VAR, DEFAULT_CONFIG_FILE


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv(CONFIG_FILE_ENV_VAR, raising=False)
    monkeypatch.delenv("CALSYNC_CONFIG_DIR", raising=False)


class TestConfigLoaderPaths:
    """Tests for configuration file resolution."""

    def test_config_path_in_config_dir(self, tmp_path):
        """Test the default file inside an explicit directory."""
        loader = ConfigLoader(config_dir=tmp_path)
        assert loader.config_path == tmp_path.resolve() / DEFAULT_CONFIG_FILE

    def test_env_file_takes_precedence(self, tmp_path, monkeypatch):
        """Test that CALSYNC_CONFIG_FILE overrides the directory."""
        target = tmp_path / "other.yaml"
        monkeypatch.setenv(CONFIG_FILE_ENV_VAR, str(target))

        assert ConfigLoader(config_dir=tmp_path / "dir").config_path == target


class TestConfigLoaderLoad:
    """Tests for loading configuration files."""

    def test_missing_file_is_empty(self, tmp_path):
        """Test that a missing file yields an empty config."""
        assert ConfigLoader(config_dir=tmp_path).load() == {}

    def test_empty_file_is_empty(self, tmp_path):
        """Test that an empty file yields an empty config."""
        (tmp_path / DEFAULT_CONFIG_FILE).write_text("")
        assert ConfigLoader(config_dir=tmp_path).load() == {}

    def test_load_values(self, tmp_path):
        """Test loading a configuration with accounts."""
        (tmp_path / DEFAULT_CONFIG_FILE).write_text(
            "verbose: true\n"
            "default_retry_delay: 600\n"
            "accounts:\n"
            "  personal:\n"
            "    url: https://journal.example.com\n"
        )

        config = ConfigLoader(config_dir=tmp_path).load_and_validate()

        assert config["verbose"] is True
        assert config["default_retry_delay"] == 600
        assert config["accounts"]["personal"]["url"] == "https://journal.example.com"

    def test_invalid_yaml(self, tmp_path):
        """Test that unparsable YAML raises ConfigError."""
        (tmp_path / DEFAULT_CONFIG_FILE).write_text("accounts: [unclosed\n")

        with pytest.raises(ConfigError, match="parse"):
            ConfigLoader(config_dir=tmp_path).load()

    def test_non_dict_yaml(self, tmp_path):
        """Test that a top-level list is rejected."""
        (tmp_path / DEFAULT_CONFIG_FILE).write_text("- a\n- b\n")

        with pytest.raises(ConfigError, match="dictionary"):
            ConfigLoader(config_dir=tmp_path).load()


class TestConfigLoaderValidate:
    """Tests for configuration validation."""

    @pytest.fixture
    def loader(self, tmp_path):
        return ConfigLoader(config_dir=tmp_path)

    def test_unknown_keys_ignored(self, loader):
        """Test that unknown keys pass validation."""
        loader.validate({"something_else": object()})

    def test_wrong_type(self, loader):
        """Test that a wrong value type is rejected."""
        with pytest.raises(ConfigError, match="default_retry_delay"):
            loader.validate({"default_retry_delay": "soon"})

    def test_bool_rejected_for_numbers(self, loader):
        """Test that booleans are not accepted as integers."""
        with pytest.raises(ConfigError):
            loader.validate({"api_max_retries": True})

    def test_float_keys_accept_ints(self, loader):
        """Test that float options accept integers."""
        loader.validate({"api_timeout": 10})

    def test_positive_ints(self, loader):
        """Test the lower bound of integer options."""
        with pytest.raises(ConfigError, match=">= 1"):
            loader.validate({"daemon_max_workers": 0})

    def test_positive_floats(self, loader):
        """Test the lower bound of float options."""
        with pytest.raises(ConfigError, match="> 0"):
            loader.validate({"api_timeout": 0.0})

    def test_daemon_interval(self, loader):
        """Test that the daemon interval must be parsable and positive."""
        loader.validate({"daemon_interval": "5m"})
        with pytest.raises(ConfigError, match="daemon_interval"):
            loader.validate({"daemon_interval": "often"})
        with pytest.raises(ConfigError, match="daemon_interval"):
            loader.validate({"daemon_interval": "0s"})


class TestAccountSettings:
    """Tests for AccountSettings.from_dict."""

    def test_minimal_entry(self):
        """Test that only url is required."""
        account = AccountSettings.from_dict("personal", {"url": "https://j.example.com/"})

        assert account.url == "https://j.example.com"
        assert account.manage_calendar_colors is True
        assert account.enabled is True
        assert account.check_network is True

    def test_full_entry(self):
        """Test that all options are read."""
        account = AccountSettings.from_dict(
            "work",
            {
                "url": "http://j.example.com:8080",
                "username": "me",
                "token": "t",
                "manage_calendar_colors": False,
                "enabled": False,
                "check_network": False,
            },
        )

        assert account.username == "me"
        assert account.manage_calendar_colors is False
        assert account.host == "j.example.com"
        assert account.port == 8080

    def test_default_ports(self):
        """Test the scheme default ports."""
        assert AccountSettings("a", "https://j.example.com").port == 443
        assert AccountSettings("a", "http://j.example.com").port == 80

    def test_missing_url(self):
        """Test that an entry without url is rejected."""
        with pytest.raises(AccountConfigError, match="has no url"):
            AccountSettings.from_dict("personal", {"username": "me"})

    def test_non_http_url(self):
        """Test that only http(s) urls are accepted."""
        with pytest.raises(AccountConfigError, match="http"):
            AccountSettings.from_dict("personal", {"url": "ftp://j.example.com"})

    def test_wrong_type(self):
        """Test that option types are checked."""
        with pytest.raises(AccountConfigError, match="enabled"):
            AccountSettings.from_dict(
                "personal", {"url": "https://j.example.com", "enabled": "yes"}
            )

    def test_non_dict_entry(self):
        """Test that an entry must be a mapping."""
        with pytest.raises(AccountConfigError, match="dictionary"):
            AccountSettings.from_dict("personal", "https://j.example.com")

    def test_token_from_env(self, monkeypatch):
        """Test that token_env wins over the inline token."""
        monkeypatch.setenv("MY_TOKEN", "env-token")
        account = AccountSettings("a", "https://j", token_env="MY_TOKEN", token="inline")
        assert account.resolve_token() == "env-token"

    def test_token_env_unset_falls_back(self, monkeypatch):
        """Test the inline token when the variable is not set."""
        monkeypatch.delenv("MY_TOKEN", raising=False)
        account = AccountSettings("a", "https://j", token_env="MY_TOKEN", token="inline")
        assert account.resolve_token() == "inline"

    def test_no_token(self):
        """Test an account without credentials."""
        assert AccountSettings("a", "https://j").resolve_token() is None


class TestAccountSettingsProvider:
    """Tests for AccountSettingsProvider."""

    @pytest.fixture
    def provider(self):
        return AccountSettingsProvider.from_config(
            {
                "accounts": {
                    "personal": {"url": "https://p.example.com"},
                    "work": {"url": "https://w.example.com", "manage_calendar_colors": False},
                }
            }
        )

    def test_accounts(self, provider):
        """Test the configured accounts in order."""
        assert provider.account_ids == ["personal", "work"]
        assert len(provider) == 2
        assert "work" in provider
        assert [a.account_id for a in provider] == ["personal", "work"]

    def test_lookups(self, provider):
        """Test endpoint and color lookups."""
        assert provider.get_endpoint_uri("personal") == "https://p.example.com"
        assert provider.get_manage_colors_flag("personal") is True
        assert provider.get_manage_colors_flag("work") is False

    def test_unknown_account(self, provider):
        """Test that unknown accounts raise AccountConfigError."""
        with pytest.raises(AccountConfigError, match="Unknown account"):
            provider.get("nobody")

    def test_no_accounts_section(self):
        """Test an empty configuration."""
        assert len(AccountSettingsProvider.from_config({})) == 0

    def test_accounts_not_a_dict(self):
        """Test that the accounts section must be a mapping."""
        with pytest.raises(AccountConfigError):
            AccountSettingsProvider.from_config({"accounts": ["personal"]})

    def test_account_error_is_config_error(self):
        """Test the exception hierarchy."""
        assert issubclass(AccountConfigError, ConfigError)


class TestConfigGenerator:
    """Tests for the default configuration file."""

    def test_generated_config_is_valid_yaml(self):
        """Test that the template parses (to nothing, it is all comments)."""
        assert yaml.safe_load(generate_default_config()) is None

    def test_generated_config_documents_accounts(self):
        """Test that the template shows an account entry."""
        content = generate_default_config()
        assert "accounts:" in content
        assert "token_env:" in content
        assert "manage_calendar_colors:" in content

    def test_save_creates_file(self, tmp_path):
        """Test saving the template with owner-only permissions."""
        path = tmp_path / "sub" / "config.yaml"

        success, error = save_config_file(path)

        assert success is True
        assert error is None
        assert path.read_text() == generate_default_config()
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_save_refuses_overwrite(self, tmp_path):
        """Test that an existing file is kept without overwrite."""
        path = tmp_path / "config.yaml"
        path.write_text("verbose: true\n")

        success, error = save_config_file(path)

        assert success is False
        assert "already exists" in error
        assert path.read_text() == "verbose: true\n"

    def test_save_overwrite(self, tmp_path):
        """Test overwriting an existing file."""
        path = tmp_path / "config.yaml"
        path.write_text("verbose: true\n")

        success, _ = save_config_file(path, overwrite=True)

        assert success is True
        assert path.read_text() == generate_default_config()
