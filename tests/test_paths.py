"""
Tests for configuration directory resolution.
"""

from pathlib import Path

from calsync.utils.paths import CONFIG_DIR_ENV_VAR, DEFAULT_CONFIG_DIR, resolve_config_dir


class TestResolveConfigDir:
    """Tests for resolve_config_dir."""

    def test_explicit_directory(self, tmp_path, monkeypatch):
        """Test that an explicit directory wins over the environment."""
        monkeypatch.setenv(CONFIG_DIR_ENV_VAR, "/somewhere/else")
        assert resolve_config_dir(tmp_path) == tmp_path.resolve()

    def test_explicit_string(self, tmp_path):
        """Test that strings are accepted."""
        assert resolve_config_dir(str(tmp_path)) == tmp_path.resolve()

    def test_environment_variable(self, tmp_path, monkeypatch):
        """Test CALSYNC_CONFIG_DIR."""
        monkeypatch.setenv(CONFIG_DIR_ENV_VAR, str(tmp_path))
        assert resolve_config_dir() == tmp_path.resolve()

    def test_default(self, monkeypatch):
        """Test the default ~/.calsync directory."""
        monkeypatch.delenv(CONFIG_DIR_ENV_VAR, raising=False)
        assert resolve_config_dir() == DEFAULT_CONFIG_DIR.resolve()
        assert DEFAULT_CONFIG_DIR == Path.home() / ".calsync"

    def test_expands_user(self, monkeypatch, tmp_path):
        """Test that ~ is expanded."""
        monkeypatch.setenv("HOME", str(tmp_path))
        assert resolve_config_dir("~/cfg") == (tmp_path / "cfg").resolve()
