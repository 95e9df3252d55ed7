"""Configuration management for Price Tracker."""

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass
class DataConfig:
    """Data storage configuration."""

    storage_dir: Path
    backend: str = "json"


@dataclass
class LedgerConfig:
    """Price ledger tuning."""

    decay_days: int = 30
    ai_estimate_confidence: float = 0.05


@dataclass
class VariantConfig:
    """Variant inference tuning."""

    price_tolerance: float = 0.20


@dataclass
class AnalyticsConfig:
    """Deal, recommendation and price history settings."""

    deal_window_days: int = 90
    min_savings_percent: float = 5.0
    max_deals: int = 20
    recommendation_window_days: int = 30
    max_alternatives: int = 3
    stats_window_days: int = 90
    trend_sample_size: int = 5
    trend_threshold_percent: float = 10.0
    alert_threshold_percent: float = 15.0


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "WARNING"


@dataclass
class Config:
    """Complete application configuration."""

    data: DataConfig
    ledger: LedgerConfig
    variants: VariantConfig
    analytics: AnalyticsConfig
    logging: LoggingConfig


class ConfigManager:
    """Manages application configuration from TOML files."""

    def __init__(self, config_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            config_path: Optional explicit path to config file.
                        If not provided, searches standard locations.
        """
        self.config_path = config_path or self._find_config()
        self._config = self._load_config()

    @property
    def data(self) -> DataConfig:
        """Get data configuration."""
        return self._config.data

    @property
    def ledger(self) -> LedgerConfig:
        """Get ledger configuration."""
        return self._config.ledger

    @property
    def variants(self) -> VariantConfig:
        """Get variant inference configuration."""
        return self._config.variants

    @property
    def analytics(self) -> AnalyticsConfig:
        """Get analytics configuration."""
        return self._config.analytics

    @property
    def logging(self) -> LoggingConfig:
        """Get logging configuration."""
        return self._config.logging

    def _find_config(self) -> Path:
        """Find config file in standard locations."""
        locations = [
            Path.cwd() / "config.toml",
            Path.home() / ".config" / "price-tracker" / "config.toml",
            Path.home() / ".price-tracker" / "config.toml",
        ]

        for loc in locations:
            if loc.exists():
                return loc

        # Return default location if none found
        return Path.home() / ".config" / "price-tracker" / "config.toml"

    def _load_config(self) -> Config:
        """Load configuration from TOML file."""
        if not self.config_path.exists():
            return self._default_config()

        with open(self.config_path, "rb") as f:
            data = tomllib.load(f)

        data_section = data.get("data", {})
        ledger = data.get("ledger", {})
        variants = data.get("variants", {})
        analytics = data.get("analytics", {})

        return Config(
            data=DataConfig(
                storage_dir=Path(
                    data_section.get("storage_dir", "~/price-tracker/data")
                ).expanduser(),
                backend=data_section.get("backend", "json"),
            ),
            ledger=LedgerConfig(
                decay_days=ledger.get("decay_days", 30),
                ai_estimate_confidence=ledger.get("ai_estimate_confidence", 0.05),
            ),
            variants=VariantConfig(
                price_tolerance=variants.get("price_tolerance", 0.20),
            ),
            analytics=AnalyticsConfig(
                deal_window_days=analytics.get("deal_window_days", 90),
                min_savings_percent=analytics.get("min_savings_percent", 5.0),
                max_deals=analytics.get("max_deals", 20),
                recommendation_window_days=analytics.get("recommendation_window_days", 30),
                max_alternatives=analytics.get("max_alternatives", 3),
                stats_window_days=analytics.get("stats_window_days", 90),
                trend_sample_size=analytics.get("trend_sample_size", 5),
                trend_threshold_percent=analytics.get("trend_threshold_percent", 10.0),
                alert_threshold_percent=analytics.get("alert_threshold_percent", 15.0),
            ),
            logging=LoggingConfig(
                level=str(data.get("logging", {}).get("level", "WARNING")).upper(),
            ),
        )

    def _default_config(self) -> Config:
        """Return default configuration."""
        return Config(
            data=DataConfig(storage_dir=Path.home() / "price-tracker" / "data"),
            ledger=LedgerConfig(),
            variants=VariantConfig(),
            analytics=AnalyticsConfig(),
            logging=LoggingConfig(),
        )

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get config value by dot-notation path.

        Args:
            key_path: Dot-separated path like 'analytics.max_deals'
            default: Default value if path not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split(".")
        value: Any = self._config

        for key in keys:
            if hasattr(value, key):
                value = getattr(value, key)
            elif isinstance(value, dict):
                value = value.get(key)
                if value is None:
                    return default
            else:
                return default

        return value if value is not None else default
