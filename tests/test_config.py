"""Tests for configuration utilities."""

from unittest.mock import patch

import pytest

from annotlearn.config import (
    DEFAULT_CONFIG,
    WorkerSettings,
    get_config_path,
    get_value,
    load_config,
    load_worker_settings,
    save_config,
    set_value,
)
from annotlearn.constants import LONG_PAUSE, PAUSE_EVERY_TARGETS
from annotlearn.exceptions import ConfigError


class TestConfigPath:
    """Tests for config path resolution."""

    def test_get_config_path_default(self):
        """Test default config path is in user config directory."""
        path = get_config_path()
        assert "annotlearn" in str(path)
        assert path.name == "config.toml"


class TestDefaultConfig:
    """Tests for default configuration."""

    def test_default_config_structure(self):
        """Test default config has expected structure."""
        assert "storage" in DEFAULT_CONFIG
        assert "workers" in DEFAULT_CONFIG
        assert "modelling" in DEFAULT_CONFIG

    def test_default_worker_values(self):
        """Test default worker values match the constants."""
        assert DEFAULT_CONFIG["workers"]["long_pause"] == LONG_PAUSE
        assert DEFAULT_CONFIG["workers"]["pause_every"] == PAUSE_EVERY_TARGETS


class TestLoadConfig:
    """Tests for loading configuration."""

    def test_load_config_missing_file(self, temp_dir):
        """Test loading config when file doesn't exist writes and returns defaults."""
        config_path = temp_dir / "sub" / "config.toml"

        with patch("annotlearn.config.get_config_path", return_value=config_path):
            config = load_config()

        assert config == DEFAULT_CONFIG
        assert config is not DEFAULT_CONFIG
        assert config_path.exists()

    def test_load_config_existing_file(self, temp_dir):
        """Test loading config from existing file."""
        config_path = temp_dir / "config.toml"
        config_path.write_text(
            """
[storage]
database = "/tmp/annotlearn-test.db"

[workers]
long_pause = 60.0
"""
        )

        with patch("annotlearn.config.get_config_path", return_value=config_path):
            config = load_config()

        assert config["storage"]["database"] == "/tmp/annotlearn-test.db"
        assert config["workers"]["long_pause"] == 60.0

    def test_load_config_malformed(self, temp_dir):
        """Test a malformed file raises ConfigError."""
        config_path = temp_dir / "config.toml"
        config_path.write_text("[workers\nlong_pause = ")

        with patch("annotlearn.config.get_config_path", return_value=config_path):
            with pytest.raises(ConfigError):
                load_config()


class TestSaveConfig:
    """Tests for saving configuration."""

    def test_save_and_reload(self, temp_dir):
        """Test saved config can be loaded back."""
        config_path = temp_dir / "config.toml"

        with patch("annotlearn.config.get_config_path", return_value=config_path):
            save_config({"workers": {"short_pause": 2.5}})
            config = load_config()

        assert config == {"workers": {"short_pause": 2.5}}


class TestGetSetValue:
    """Tests for dot-notation access."""

    def test_get_nested(self):
        """Test getting nested values."""
        config = {"workers": {"long_pause": 60.0}}

        assert get_value(config, "workers.long_pause") == 60.0
        assert get_value(config, "workers.missing") is None
        assert get_value(config, "workers.missing", 5) == 5
        assert get_value(config, "workers.long_pause.deeper") is None

    def test_set_nested(self):
        """Test setting creates intermediate sections."""
        config = {}
        set_value(config, "workers.long_pause", 60.0)

        assert config == {"workers": {"long_pause": 60.0}}

    def test_set_through_value(self):
        """Test setting below a plain value raises ConfigError."""
        config = {"workers": 5}

        with pytest.raises(ConfigError):
            set_value(config, "workers.long_pause", 60.0)


class TestWorkerSettings:
    """Tests for resolving worker settings."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in WorkerSettings().to_dict():
            monkeypatch.delenv(f"ANNOTLEARN_{name.upper()}", raising=False)

    def test_defaults(self):
        """Test defaults when no config is given."""
        assert load_worker_settings() == WorkerSettings()

    def test_from_config(self):
        """Test values are read from the workers and modelling sections."""
        config = {
            "workers": {"long_pause": 60, "pause_every": 10},
            "modelling": {"max_nlp_fingerprints": 500},
        }

        settings = load_worker_settings(config)

        assert settings.long_pause == 60.0
        assert isinstance(settings.long_pause, float)
        assert settings.pause_every == 10
        assert settings.max_nlp_fingerprints == 500

    def test_env_overrides_file(self, monkeypatch):
        """Test environment variables take precedence."""
        monkeypatch.setenv("ANNOTLEARN_SHORT_PAUSE", "0.5")
        monkeypatch.setenv("ANNOTLEARN_PAUSE_EVERY", "7")

        settings = load_worker_settings({"workers": {"short_pause": 9.0}})

        assert settings.short_pause == 0.5
        assert settings.pause_every == 7

    def test_blank_env_ignored(self, monkeypatch):
        """Test an empty environment variable falls back to the file."""
        monkeypatch.setenv("ANNOTLEARN_LONG_PAUSE", " ")
        assert load_worker_settings({"workers": {"long_pause": 42}}).long_pause == 42.0

    def test_invalid_env(self, monkeypatch):
        """Test a non-numeric environment value raises ConfigError."""
        monkeypatch.setenv("ANNOTLEARN_ERROR_SLEEP", "soon")

        with pytest.raises(ConfigError):
            load_worker_settings()

    def test_invalid_file_value(self):
        """Test a non-numeric file value raises ConfigError."""
        with pytest.raises(ConfigError):
            load_worker_settings({"workers": {"long_pause": "forever"}})

    def test_limits(self):
        """Test pause_every and max_nlp_fingerprints must be positive."""
        with pytest.raises(ConfigError):
            load_worker_settings({"workers": {"pause_every": 0}})
        with pytest.raises(ConfigError):
            load_worker_settings({"modelling": {"max_nlp_fingerprints": 0}})

    def test_frozen(self):
        """Test settings cannot be modified."""
        settings = WorkerSettings()
        with pytest.raises(AttributeError):
            settings.long_pause = 1.0
