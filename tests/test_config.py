"""Tests for configuration management."""

from pathlib import Path

import pytest

from price_tracker.config import ConfigManager


@pytest.fixture
def config_file(tmp_path):
    """Create a temporary config file."""
    config_path = tmp_path / "config.toml"
    config_path.write_text("""
[data]
storage_dir = "/custom/data"
backend = "sqlite"

[ledger]
decay_days = 14
ai_estimate_confidence = 0.1

[variants]
price_tolerance = 0.15

[analytics]
deal_window_days = 60
min_savings_percent = 10.0
max_deals = 5
recommendation_window_days = 14
max_alternatives = 2
stats_window_days = 30
trend_sample_size = 3
trend_threshold_percent = 5.0
alert_threshold_percent = 20.0

[logging]
level = "debug"
""")
    return config_path


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_load_data_config(self, config_file):
        """Load configuration from file."""
        manager = ConfigManager(config_path=config_file)

        assert manager.data.storage_dir == Path("/custom/data")
        assert manager.data.backend == "sqlite"

    def test_ledger_config(self, config_file):
        manager = ConfigManager(config_path=config_file)

        assert manager.ledger.decay_days == 14
        assert manager.ledger.ai_estimate_confidence == 0.1

    def test_variant_config(self, config_file):
        manager = ConfigManager(config_path=config_file)
        assert manager.variants.price_tolerance == 0.15

    def test_analytics_config(self, config_file):
        manager = ConfigManager(config_path=config_file)

        assert manager.analytics.deal_window_days == 60
        assert manager.analytics.min_savings_percent == 10.0
        assert manager.analytics.max_deals == 5
        assert manager.analytics.recommendation_window_days == 14
        assert manager.analytics.max_alternatives == 2
        assert manager.analytics.stats_window_days == 30
        assert manager.analytics.trend_sample_size == 3
        assert manager.analytics.trend_threshold_percent == 5.0
        assert manager.analytics.alert_threshold_percent == 20.0

    def test_logging_level_uppercased(self, config_file):
        manager = ConfigManager(config_path=config_file)
        assert manager.logging.level == "DEBUG"

    def test_missing_config_uses_defaults(self, tmp_path):
        """Missing config file uses default values."""
        manager = ConfigManager(config_path=tmp_path / "nonexistent.toml")

        assert manager.data.storage_dir == Path.home() / "price-tracker" / "data"
        assert manager.data.backend == "json"
        assert manager.ledger.decay_days == 30
        assert manager.ledger.ai_estimate_confidence == 0.05
        assert manager.variants.price_tolerance == 0.20
        assert manager.analytics.deal_window_days == 90
        assert manager.analytics.min_savings_percent == 5.0
        assert manager.analytics.max_deals == 20
        assert manager.analytics.recommendation_window_days == 30
        assert manager.analytics.max_alternatives == 3
        assert manager.analytics.stats_window_days == 90
        assert manager.analytics.alert_threshold_percent == 15.0
        assert manager.logging.level == "WARNING"

    def test_partial_config(self, tmp_path):
        """Sections left out of the file keep their defaults."""
        config_path = tmp_path / "config.toml"
        config_path.write_text("""
[variants]
price_tolerance = 0.3
""")
        manager = ConfigManager(config_path=config_path)

        assert manager.variants.price_tolerance == 0.3
        assert manager.ledger.decay_days == 30
        assert manager.data.backend == "json"

    def test_storage_dir_expands_user(self, tmp_path):
        config_path = tmp_path / "config.toml"
        config_path.write_text('[data]\nstorage_dir = "~/prices"\n')

        manager = ConfigManager(config_path=config_path)
        assert manager.data.storage_dir == Path.home() / "prices"

    def test_get_dot_notation(self, config_file):
        """Get config value by dot notation."""
        manager = ConfigManager(config_path=config_file)

        assert manager.get("analytics.max_deals") == 5
        assert manager.get("ledger.decay_days") == 14

    def test_get_missing_key(self, config_file):
        """Missing key returns default."""
        manager = ConfigManager(config_path=config_file)

        assert manager.get("nonexistent.key", "fallback") == "fallback"
        assert manager.get("analytics.nope") is None

    def test_finds_config_in_cwd(self, tmp_path, monkeypatch):
        (tmp_path / "config.toml").write_text("[ledger]\ndecay_days = 9\n")
        monkeypatch.chdir(tmp_path)

        manager = ConfigManager()
        assert manager.config_path == tmp_path / "config.toml"
        assert manager.ledger.decay_days == 9
