"""Configuration management for the quiz social core."""

from enum import StrEnum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScoringFormula(StrEnum):
    """Points formula applied to an accepted quiz attempt."""

    COMPLETION_BONUS = "completion_bonus"
    PER_CORRECT_ANSWER = "per_correct_answer"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Backend Configuration
    backend_url: str = Field(default="http://127.0.0.1:54321", description="Base URL of the friends/scores API")
    backend_api_key: str | None = Field(default=None, description="API key sent with every backend request")
    backend_timeout_seconds: float = Field(default=10.0, description="HTTP timeout for a single backend call")
    backend_read_retries: int = Field(default=3, description="Attempts for idempotent backend reads")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    # Gamification Configuration
    app_timezone: str = Field(
        default="Europe/Chisinau",
        description="Canonical timezone used for every calendar-day comparison (streaks, weekly points)",
    )
    scoring_formula: ScoringFormula = Field(
        default=ScoringFormula.COMPLETION_BONUS,
        description="Points formula for accepted quiz attempts",
    )
    leaderboard_limit: int = Field(default=100, description="Number of top entries materialized per leaderboard")

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value


# Application Constants
class Constants:
    """Application-wide constants."""

    # Quiz submission bounds
    MAX_QUESTIONS_PER_QUIZ: int = 50

    # Scoring
    COMPLETION_THRESHOLD_PERCENT: int = 70
    COMPLETION_BONUS_POINTS: int = 15
    POINTS_PER_CORRECT_ANSWER: int = 10
    PERFECT_SCORE_BONUS: int = 5
    SPEED_BONUS: int = 3
    SPEED_BONUS_MAX_SECONDS_PER_QUESTION: int = 30

    # Streak bonuses (minimum streak days -> bonus points), highest first
    STREAK_BONUSES: tuple[tuple[int, int], ...] = ((365, 20), (30, 10), (7, 5))

    # Level curve: level 1 needs 50 points, each further level needs 20 more
    LEVEL_BASE_POINTS: int = 50
    LEVEL_STEP_POINTS: int = 20

    # Leaderboard
    DEFAULT_LEADERBOARD_LIMIT: int = 100
    LEADERBOARD_RANK_FIRST: int = 1

    # HTTP
    HTTP_CLIENT_ERROR_START: int = 400
    HTTP_SERVER_ERROR_START: int = 500
    BACKEND_RETRY_BASE_DELAY_SECONDS: float = 0.2

    # Provisional ids for optimistic friendship records
    LOCAL_ID_PREFIX: str = "local-"


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
