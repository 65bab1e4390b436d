"""
Configuration and Environment Setup Module

This module handles configuration loading, validation of the business
rules the engine depends on (SLA target, week start, windows) and logging
setup for the metrics engine.
"""

import os
import logging
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from .models import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "OPS_METRICS_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yml"

# 7 days measured from assignment.
SLA_TARGET_HOURS = 7 * 24

# Weekly buckets start on the Sunday of the week containing the anchor date.
WEEK_START = "sunday"

KNOWN_PROVINCES = [
    "Kigali City",
    "Eastern Province",
    "Northern Province",
    "Southern Province",
    "Western Province",
]

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

DEFAULTS: Dict[str, Any] = {
    "timezone": "Africa/Kigali",
    "sla_target_hours": SLA_TARGET_HOURS,
    "week_start": WEEK_START,
    "daily_window_days": 30,
    "weekly_window_weeks": 8,
    "monthly_window_months": 12,
    "on_time_tolerance_minutes": 30,
    "provinces": KNOWN_PROVINCES,
    "max_workers": 3,
}


class Config:
    """Configuration management class for the metrics engine."""

    def __init__(self, config_path: Optional[Path] = None, overrides: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to a YAML configuration file. Defaults to the
                OPS_METRICS_CONFIG environment variable, then the packaged config.yml
            overrides: Values applied on top of the file, mainly for tests
        """
        if config_path is None:
            env_path = os.getenv(CONFIG_ENV_VAR)
            config_path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH

        self.config_path = Path(config_path)
        self.config = {**DEFAULTS, **self._load_config(), **(overrides or {})}
        self._validate()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        try:
            with open(self.config_path, "r") as f:
                loaded = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning("⚠️ Config file not found at %s, using defaults", self.config_path)
            return {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"Config file {self.config_path} must contain a mapping")
        logger.debug("✅ Configuration loaded from %s", self.config_path)
        return loaded

    def _validate(self) -> None:
        try:
            ZoneInfo(str(self.config["timezone"]))
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"Unknown timezone: {self.config['timezone']!r}") from e

        if str(self.config["week_start"]).lower() not in WEEKDAYS:
            raise ConfigError(f"Unknown week_start: {self.config['week_start']!r}")

        for key in ("sla_target_hours", "daily_window_days", "weekly_window_weeks",
                    "monthly_window_months", "max_workers"):
            value = self.config[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ConfigError(f"{key} must be a positive number, got {value!r}")

        tolerance = self.config["on_time_tolerance_minutes"]
        if isinstance(tolerance, bool) or not isinstance(tolerance, (int, float)) or tolerance < 0:
            raise ConfigError(f"on_time_tolerance_minutes must be >= 0, got {tolerance!r}")

        provinces = self.config["provinces"]
        if not isinstance(provinces, list) or not all(isinstance(p, str) and p.strip() for p in provinces):
            raise ConfigError("provinces must be a list of non-empty names")

    @property
    def timezone(self) -> str:
        """IANA zone used for local midnights and hour-of-day."""
        return str(self.config["timezone"])

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def sla_target_hours(self) -> float:
        return float(self.config["sla_target_hours"])

    @property
    def week_start(self) -> int:
        """Week start as a Python weekday number (Monday = 0)."""
        return WEEKDAYS.index(str(self.config["week_start"]).lower())

    @property
    def daily_window_days(self) -> int:
        return int(self.config["daily_window_days"])

    @property
    def weekly_window_weeks(self) -> int:
        return int(self.config["weekly_window_weeks"])

    @property
    def monthly_window_months(self) -> int:
        return int(self.config["monthly_window_months"])

    @property
    def on_time_tolerance_minutes(self) -> float:
        return float(self.config["on_time_tolerance_minutes"])

    @property
    def provinces(self) -> List[str]:
        return [p.strip() for p in self.config["provinces"]]

    @property
    def max_workers(self) -> int:
        return int(self.config["max_workers"])


def setup_environment(config_path: Optional[Path] = None, level: int = logging.INFO) -> Config:
    """
    Setup logging and load the engine configuration.

    Returns:
        Configured Config instance
    """
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger.info("🚀 Starting environment setup at: %s", datetime.now().strftime("%Y-%m-%d %H:%M:%S"))

    config = Config(config_path)

    logger.info("✅ Environment setup completed (timezone=%s, sla_target_hours=%s)",
                config.timezone, config.sla_target_hours)
    return config


if __name__ == "__main__":
    config = setup_environment()
    print(f"Timezone: {config.timezone}")
    print(f"SLA target: {config.sla_target_hours:.0f} hours")
    print(f"Week start: {WEEKDAYS[config.week_start].title()}")
    print(f"Provinces: {', '.join(config.provinces)}")
