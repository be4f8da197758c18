"""
Configuration management (SSOT).

This module defines ALL configuration for the brokerage import pipeline.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- Detection thresholds default to the values the duplicate detector is
  calibrated against (reject 0.90, review 0.60)
- Corpus lookups are always bounded (lookback window + record cap)
- Review queue capacity is a hard ceiling, enforced by eviction
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass
class DetectionConfig:
    """Duplicate detection settings."""

    # Aggregated confidence at or above this: reject as confirmed duplicate
    reject_threshold: float = 0.90
    # Aggregated confidence at or above this: route to manual review
    review_threshold: float = 0.60
    # How far back the corpus search reaches (days before now)
    corpus_lookback_days: int = 90
    # Maximum corpus records compared per detection run
    corpus_max_records: int = 5000


@dataclass
class TimeWindowConfig:
    """Time window sizes (seconds) used to classify transaction timing."""

    same_second: float = 1
    same_minute: float = 60
    same_hour: float = 60 * 60
    same_day: float = 24 * 60 * 60
    same_week: float = 7 * 24 * 60 * 60
    # Sub-windows for trading patterns
    rapid_trading: float = 5
    partial_fill: float = 30 * 60
    split_order: float = 2 * 60 * 60
    settlement: float = 3 * 24 * 60 * 60
    # Exchange timezone for market session classification
    market_timezone: str = "America/New_York"


@dataclass
class ReviewQueueConfig:
    """Manual review queue settings."""

    max_queue_size: int = 1000
    # Auto-escalate pending items older than this
    escalation_time_hours: float = 24
    # Auto-escalate items with a risk score at or above this
    escalation_risk_score: float = 0.8
    # Auto-approve items nobody reviewed before expiry
    auto_expiry_enabled: bool = False
    auto_expiry_hours: float = 7 * 24
    # New expiry assigned when an item is deferred
    defer_hours: float = 24
    # Pending items older than this count as stale in the health score
    stale_item_hours: float = 24


@dataclass
class IngestionConfig:
    """Ingestion orchestrator settings."""

    # Maximum emails processed concurrently within one batch
    max_workers: int = 4
    # Abandon a batch that takes longer than this
    batch_timeout_seconds: float = 300


@dataclass
class Config:
    """Application configuration (SSOT).

    All configuration is centralized here. No other module should define
    configuration keys or defaults.
    """

    detection: DetectionConfig = field(default_factory=DetectionConfig)
    time_windows: TimeWindowConfig = field(default_factory=TimeWindowConfig)
    review_queue: ReviewQueueConfig = field(default_factory=ReviewQueueConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    state_db_path: Path = field(default_factory=lambda: Path("data/state.db"))

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        detection = self.detection
        if not 0.0 <= detection.review_threshold <= 1.0:
            errors.append("detection.review_threshold must be between 0 and 1")
        if not 0.0 <= detection.reject_threshold <= 1.0:
            errors.append("detection.reject_threshold must be between 0 and 1")
        if detection.reject_threshold < detection.review_threshold:
            errors.append("detection.reject_threshold must be >= review_threshold")
        if detection.corpus_lookback_days <= 0:
            errors.append("detection.corpus_lookback_days must be positive")
        if detection.corpus_max_records <= 0:
            errors.append("detection.corpus_max_records must be positive")

        queue = self.review_queue
        if queue.max_queue_size <= 0:
            errors.append("review_queue.max_queue_size must be positive")
        if queue.escalation_time_hours <= 0:
            errors.append("review_queue.escalation_time_hours must be positive")
        if not 0.0 <= queue.escalation_risk_score <= 1.0:
            errors.append("review_queue.escalation_risk_score must be between 0 and 1")
        if queue.auto_expiry_enabled and queue.auto_expiry_hours <= 0:
            errors.append("review_queue.auto_expiry_hours must be positive when expiry is enabled")

        if self.ingestion.max_workers < 1:
            errors.append("ingestion.max_workers must be at least 1")
        if self.ingestion.batch_timeout_seconds <= 0:
            errors.append("ingestion.batch_timeout_seconds must be positive")

        windows = self.time_windows
        ordered = [
            windows.same_second,
            windows.same_minute,
            windows.same_hour,
            windows.same_day,
            windows.same_week,
        ]
        if ordered != sorted(ordered):
            errors.append("time_windows must be increasing (second < minute < hour < day < week)")

        return errors


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name, "")
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name, "").lower()
    if value == "true":
        return True
    if value == "false":
        return False
    return default


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - BROKERAGE_STATE_DB (state database path)
    - BROKERAGE_QUEUE_MAX_SIZE (review queue capacity)
    - BROKERAGE_AUTO_EXPIRY (true/false)
    - BROKERAGE_MAX_WORKERS (ingestion fan-out)
    - BROKERAGE_LOOKBACK_DAYS (corpus lookback window)
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    # Detection config
    detection_data = data.get("detection", {})
    detection = DetectionConfig(
        reject_threshold=detection_data.get("reject_threshold", 0.90),
        review_threshold=detection_data.get("review_threshold", 0.60),
        corpus_lookback_days=_env_int(
            "BROKERAGE_LOOKBACK_DAYS", detection_data.get("corpus_lookback_days", 90)
        ),
        corpus_max_records=detection_data.get("corpus_max_records", 5000),
    )

    # Time windows
    windows_data = data.get("time_windows", {})
    defaults = TimeWindowConfig()
    time_windows = TimeWindowConfig(
        same_second=windows_data.get("same_second", defaults.same_second),
        same_minute=windows_data.get("same_minute", defaults.same_minute),
        same_hour=windows_data.get("same_hour", defaults.same_hour),
        same_day=windows_data.get("same_day", defaults.same_day),
        same_week=windows_data.get("same_week", defaults.same_week),
        rapid_trading=windows_data.get("rapid_trading", defaults.rapid_trading),
        partial_fill=windows_data.get("partial_fill", defaults.partial_fill),
        split_order=windows_data.get("split_order", defaults.split_order),
        settlement=windows_data.get("settlement", defaults.settlement),
        market_timezone=windows_data.get("market_timezone", defaults.market_timezone),
    )

    # Review queue
    queue_data = data.get("review_queue", {})
    review_queue = ReviewQueueConfig(
        max_queue_size=_env_int(
            "BROKERAGE_QUEUE_MAX_SIZE", queue_data.get("max_queue_size", 1000)
        ),
        escalation_time_hours=queue_data.get("escalation_time_hours", 24),
        escalation_risk_score=queue_data.get("escalation_risk_score", 0.8),
        auto_expiry_enabled=_env_bool(
            "BROKERAGE_AUTO_EXPIRY", queue_data.get("auto_expiry_enabled", False)
        ),
        auto_expiry_hours=queue_data.get("auto_expiry_hours", 7 * 24),
        defer_hours=queue_data.get("defer_hours", 24),
        stale_item_hours=queue_data.get("stale_item_hours", 24),
    )

    # Ingestion
    ingestion_data = data.get("ingestion", {})
    ingestion = IngestionConfig(
        max_workers=_env_int("BROKERAGE_MAX_WORKERS", ingestion_data.get("max_workers", 4)),
        batch_timeout_seconds=ingestion_data.get("batch_timeout_seconds", 300),
    )

    # State DB
    state_db = os.environ.get("BROKERAGE_STATE_DB", data.get("state_db_path", "data/state.db"))

    return Config(
        detection=detection,
        time_windows=time_windows,
        review_queue=review_queue,
        ingestion=ingestion,
        state_db_path=Path(state_db),
    )


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# Brokerage email import pipeline configuration

# Duplicate detection
detection:
  reject_threshold: 0.90        # At or above: confirmed duplicate, skip
  review_threshold: 0.60        # At or above: send to manual review
  corpus_lookback_days: 90      # Only compare against emails from this window
  corpus_max_records: 5000      # Hard cap on records compared per email

# Time window sizes in seconds
time_windows:
  same_second: 1
  same_minute: 60
  same_hour: 3600
  same_day: 86400
  same_week: 604800
  rapid_trading: 5
  partial_fill: 1800
  split_order: 7200
  settlement: 259200
  market_timezone: "America/New_York"

# Manual review queue
review_queue:
  max_queue_size: 1000          # Oldest low-priority item is auto-approved beyond this
  escalation_time_hours: 24     # Escalate items pending longer than this
  escalation_risk_score: 0.8    # Escalate items at or above this risk
  auto_expiry_enabled: false    # Auto-approve items nobody reviewed in time
  auto_expiry_hours: 168
  defer_hours: 24               # Deferred items come back after this
  stale_item_hours: 24

# Ingestion orchestrator
ingestion:
  max_workers: 4                # Emails processed concurrently per batch
  batch_timeout_seconds: 300

# State database path (corpus of previously seen emails)
state_db_path: "data/state.db"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
