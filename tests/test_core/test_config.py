"""Tests for configuration management."""

from pathlib import Path

import pytest

from charityflow.core.config import (
    DEFAULT_ORGANIZATION_NAME,
    Config,
    get_config,
    load_config,
    load_env_file,
    reset_config,
    validate_config,
)
from charityflow.core.exceptions import ConfigurationError

ENV_KEYS = (
    "CHARITYFLOW_ORGANIZATION_NAME",
    "CHARITYFLOW_APP_URL",
    "CHARITYFLOW_NEWSLETTER_HOUR",
    "CHARITYFLOW_CALL_TIMEOUT",
    "CHARITYFLOW_DISABLED_AUTOMATIONS",
    "CHARITYFLOW_DRY_RUN",
    "N8N_WEBHOOK_URL",
    "N8N_API_KEY",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove CharityFlow variables from the process environment."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestConfig:
    """Test Config dataclass."""

    def test_config_default_values(self):
        """Config has sensible defaults."""
        config = Config()
        assert config.organization_name == DEFAULT_ORGANIZATION_NAME
        assert config.newsletter_hour == 10
        assert config.dry_run is False
        assert config.disabled_automations == frozenset()

    def test_config_with_custom_paths(self, tmp_path: Path):
        """Config accepts custom paths."""
        config = Config(log_path=tmp_path / "logs")
        assert str(config.log_path).endswith("logs")


class TestLoadEnvFile:
    """Test .env parsing."""

    def test_missing_file_returns_empty(self, tmp_path: Path):
        """Nonexistent file yields no variables."""
        assert load_env_file(tmp_path / "nope.env") == {}

    def test_parses_comments_blanks_and_quotes(self, tmp_path: Path):
        """Comments and blank lines are skipped, quotes stripped."""
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# comment\n\nCHARITYFLOW_ORGANIZATION_NAME=\"Harbor Food Bank\"\n"
            "N8N_API_KEY='abc=123'\n"
        )
        env = load_env_file(env_file)
        assert env == {
            "CHARITYFLOW_ORGANIZATION_NAME": "Harbor Food Bank",
            "N8N_API_KEY": "abc=123",
        }


class TestLoadConfig:
    """Test config loading."""

    def test_load_from_env_file(self, tmp_path: Path, clean_env):
        """Values in the .env file are applied."""
        env_file = tmp_path / ".env"
        env_file.write_text(
            "CHARITYFLOW_NEWSLETTER_HOUR=8\n"
            "CHARITYFLOW_APP_URL=https://portal.example.org/\n"
            "CHARITYFLOW_DISABLED_AUTOMATIONS=ab_test, newsletter_automation\n"
            "CHARITYFLOW_DRY_RUN=yes\n"
        )
        config = load_config(env_file)
        assert config.newsletter_hour == 8
        assert config.app_url == "https://portal.example.org"
        assert config.disabled_automations == frozenset({"ab_test", "newsletter_automation"})
        assert config.dry_run is True

    def test_environment_overrides_file(self, tmp_path: Path, clean_env, monkeypatch):
        """Process environment wins over the .env file."""
        env_file = tmp_path / ".env"
        env_file.write_text("CHARITYFLOW_ORGANIZATION_NAME=From File\n")
        monkeypatch.setenv("CHARITYFLOW_ORGANIZATION_NAME", "From Env")
        assert load_config(env_file).organization_name == "From Env"

    def test_invalid_integer_raises(self, tmp_path: Path, clean_env):
        """Unparseable numbers raise ConfigurationError."""
        env_file = tmp_path / ".env"
        env_file.write_text("CHARITYFLOW_NEWSLETTER_HOUR=ten\n")
        with pytest.raises(ConfigurationError, match="CHARITYFLOW_NEWSLETTER_HOUR"):
            load_config(env_file)

    def test_get_config_is_cached(self, tmp_path: Path, clean_env, monkeypatch):
        """get_config returns the same instance until reset."""
        monkeypatch.chdir(tmp_path)
        reset_config()
        try:
            assert get_config() is get_config()
        finally:
            reset_config()


class TestValidateConfig:
    """Test config validation."""

    def test_defaults_are_valid(self):
        assert validate_config(Config()) == []

    def test_newsletter_hour_out_of_range(self):
        """Hour 24 is flagged."""
        issues = validate_config(Config(newsletter_hour=24))
        assert any("NEWSLETTER_HOUR" in issue for issue in issues)

    def test_non_positive_timeout(self):
        issues = validate_config(Config(call_timeout=0))
        assert any("CALL_TIMEOUT" in issue for issue in issues)

    def test_api_key_without_url_flagged(self):
        """Half-configured webhook credentials are reported."""
        issues = validate_config(Config(n8n_api_key="secret"))
        assert any("N8N_WEBHOOK_URL" in issue for issue in issues)

    def test_staff_email_must_be_address(self):
        issues = validate_config(Config(staff_email="events"))
        assert any("STAFF_EMAIL" in issue for issue in issues)
