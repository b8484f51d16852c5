"""Fraud engine configuration with sensible defaults."""

import os
from dataclasses import dataclass, field


@dataclass
class ScoringSettings:
    max_risk_score: int = 100
    new_account_check_days: int = 30


@dataclass
class AnalyticsSettings:
    high_risk_threshold: int = 70
    high_risk_limit: int = 10
    default_window_days: int = 30


@dataclass
class AlertSettings:
    kafka_topic: str = "merge.fraud.alerts"
    default_page_size: int = 50
    max_page_size: int = 500


@dataclass
class FraudConfig:
    scoring: ScoringSettings = field(default_factory=ScoringSettings)
    analytics: AnalyticsSettings = field(default_factory=AnalyticsSettings)
    alerts: AlertSettings = field(default_factory=AlertSettings)

    @classmethod
    def from_env(cls) -> "FraudConfig":
        """Load config with env var overrides. Env vars use FRAUD_ prefix."""
        config = cls()

        # Scoring overrides
        if v := os.getenv("FRAUD_MAX_RISK_SCORE"):
            config.scoring.max_risk_score = int(v)
        if v := os.getenv("FRAUD_NEW_ACCOUNT_CHECK_DAYS"):
            config.scoring.new_account_check_days = int(v)

        # Analytics overrides
        if v := os.getenv("FRAUD_HIGH_RISK_THRESHOLD"):
            config.analytics.high_risk_threshold = int(v)
        if v := os.getenv("FRAUD_HIGH_RISK_LIMIT"):
            config.analytics.high_risk_limit = int(v)
        if v := os.getenv("FRAUD_ANALYTICS_WINDOW_DAYS"):
            config.analytics.default_window_days = int(v)

        # Alert overrides
        if v := os.getenv("FRAUD_ALERT_KAFKA_TOPIC"):
            config.alerts.kafka_topic = v

        return config


# Module-level default instance
default_config = FraudConfig.from_env()
