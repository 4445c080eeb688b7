from dataclasses import dataclass
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


@dataclass(frozen=True)
class RiskThresholds:
    """Burnout risk constants, kept as named values so deployments can tune them."""

    # Channel point score (0-10)
    severe_negative_sentiment: float = -0.3
    negative_sentiment: float = 0.0
    severe_negative_points: int = 4
    negative_points: int = 2
    very_low_thread_ratio: float = 0.10
    low_thread_ratio: float = 0.20
    very_low_thread_points: int = 2
    low_thread_points: int = 1
    low_reactions_per_message: float = 0.2
    low_reactions_points: int = 1
    low_volume_messages: int = 5
    low_volume_points: int = 1
    high_negative_ratio: float = 0.40
    elevated_negative_ratio: float = 0.25
    high_negative_ratio_points: int = 2
    elevated_negative_ratio_points: int = 1
    high_risk_score: int = 5
    medium_risk_score: int = 3

    # Overall (cross-channel) fractions
    overall_high_fraction: float = 0.30
    overall_mixed_high_fraction: float = 0.10
    overall_mixed_medium_fraction: float = 0.40
    overall_medium_fraction: float = 0.50
    overall_any_high_fraction: float = 0.10

    # Risk factor heuristics
    factor_negative_sentiment: float = -0.3
    factor_negative_to_positive_ratio: float = 1.5
    factor_low_thread_ratio: float = 0.15
    factor_min_messages_for_collaboration: int = 20
    factor_low_volume_messages: int = 5
    factor_low_reactions_per_message: float = 0.1


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Redis settings
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 20
    REDIS_KEY_PREFIX: str = "pulse:"

    # OpenAI settings (classifier + insight authoring)
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_INSIGHTS_MODEL: str = "gpt-4o-mini"
    OPENAI_MAX_TOKENS: int = 4000
    OPENAI_TEMPERATURE: float = 0.1

    # =================================================================
    # SENTIMENT CLASSIFIER
    # =================================================================
    CLASSIFIER_BATCH_SIZE: int = 25
    CLASSIFIER_MAX_ATTEMPTS: int = 3
    CLASSIFIER_BASE_DELAY_SECONDS: float = 1.0
    CLASSIFIER_TIMEOUT_SECONDS: float = 30.0
    CLASSIFIER_INTER_BATCH_DELAY_SECONDS: float = 0.2

    # Circuit breaker shared by the classifier and insight authoring
    CIRCUIT_FAILURE_THRESHOLD: int = 5
    CIRCUIT_COOLDOWN_SECONDS: float = 60.0
    CIRCUIT_PROBE_TIMEOUT_SECONDS: float = 300.0

    # Unscored backlog sweep
    SWEEP_PAGE_SIZE: int = 100
    SWEEP_INTERVAL_MINUTES: int = 5

    # =================================================================
    # WEEKLY AGGREGATION + INSIGHTS
    # =================================================================
    AGGREGATION_PAGE_SIZE: int = 200
    AGGREGATION_MAX_PAGES: int = 50
    AGGREGATION_MAX_MESSAGES: int = 5000
    AGGREGATION_TIMEOUT_SECONDS: float = 30.0
    INSIGHT_CHANNEL_CONCURRENCY: int = 5
    INSIGHT_GROUP_PAUSE_SECONDS: float = 0.1
    INSIGHT_GENERATION_TIMEOUT_SECONDS: float = 45.0
    MAX_GLOBAL_RECOMMENDATIONS: int = 5
    MAX_CHANNEL_RECOMMENDATIONS: int = 4

    # Weekly job schedule (0 = Monday)
    WEEKLY_INSIGHTS_DAY: int = 0
    WEEKLY_INSIGHTS_HOUR_UTC: int = 9

    # Risk threshold overrides (unset = RiskThresholds default)
    RISK_HIGH_SCORE: int | None = None
    RISK_MEDIUM_SCORE: int | None = None
    RISK_OVERALL_HIGH_FRACTION: float | None = None
    RISK_NEGATIVE_TO_POSITIVE_RATIO: float | None = None

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def openai_configured(self) -> bool:
        return bool(self.OPENAI_API_KEY) and self.OPENAI_API_KEY != "your_openai_api_key_here"

    def get_classifier_config(self) -> dict:
        """Classifier retry/timeout configuration."""
        return {
            "batch_size": self.CLASSIFIER_BATCH_SIZE,
            "max_attempts": self.CLASSIFIER_MAX_ATTEMPTS,
            "base_delay_seconds": self.CLASSIFIER_BASE_DELAY_SECONDS,
            "timeout_seconds": self.CLASSIFIER_TIMEOUT_SECONDS,
            "inter_batch_delay_seconds": self.CLASSIFIER_INTER_BATCH_DELAY_SECONDS,
        }

    def get_aggregation_config(self) -> dict:
        """
        Get aggregation bounds.
        Development keeps pages small so runaway scans show up early.
        """
        config = {
            "page_size": self.AGGREGATION_PAGE_SIZE,
            "max_pages": self.AGGREGATION_MAX_PAGES,
            "max_messages": self.AGGREGATION_MAX_MESSAGES,
            "timeout_seconds": self.AGGREGATION_TIMEOUT_SECONDS,
        }

        if self.environment == "development":
            config.update({"page_size": min(self.AGGREGATION_PAGE_SIZE, 100)})

        return config

    def get_risk_thresholds(self) -> RiskThresholds:
        """Build risk thresholds, applying any env overrides."""
        overrides = {}
        if self.RISK_HIGH_SCORE is not None:
            overrides["high_risk_score"] = self.RISK_HIGH_SCORE
        if self.RISK_MEDIUM_SCORE is not None:
            overrides["medium_risk_score"] = self.RISK_MEDIUM_SCORE
        if self.RISK_OVERALL_HIGH_FRACTION is not None:
            overrides["overall_high_fraction"] = self.RISK_OVERALL_HIGH_FRACTION
        if self.RISK_NEGATIVE_TO_POSITIVE_RATIO is not None:
            overrides["factor_negative_to_positive_ratio"] = self.RISK_NEGATIVE_TO_POSITIVE_RATIO
        return RiskThresholds(**overrides)


settings = Settings()
