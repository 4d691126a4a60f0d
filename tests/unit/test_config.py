"""Tests for configuration validation."""

import pytest
from pydantic import ValidationError

from src.core.config import Constants, ScoringFormula, Settings


def test_require_credential_with_valid_value() -> None:
    """Test require_credential returns value when credential is set."""
    settings = Settings(backend_api_key="anon-key")

    result = settings.require_credential("backend_api_key", "Backend API")

    assert result == "anon-key"


def test_require_credential_with_none_raises_error() -> None:
    """Test require_credential raises ValueError when credential is None."""
    settings = Settings(backend_api_key=None)

    with pytest.raises(ValueError, match="Backend API credential not configured"):
        settings.require_credential("backend_api_key", "Backend API")


def test_require_credential_with_empty_string_raises_error() -> None:
    """Test require_credential raises ValueError when credential is empty."""
    settings = Settings(backend_api_key="")

    with pytest.raises(ValueError, match="BACKEND_API_KEY"):
        settings.require_credential("backend_api_key", "Backend API")


def test_defaults(monkeypatch) -> None:
    """Test gamification defaults when nothing is configured."""
    for name in ("APP_TIMEZONE", "SCORING_FORMULA", "LEADERBOARD_LIMIT"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.app_timezone == "Europe/Chisinau"
    assert settings.scoring_formula == ScoringFormula.COMPLETION_BONUS
    assert settings.leaderboard_limit == 100


def test_scoring_formula_from_environment(monkeypatch) -> None:
    """Test the scoring formula is read from the environment."""
    monkeypatch.setenv("SCORING_FORMULA", "per_correct_answer")

    settings = Settings(_env_file=None)

    assert settings.scoring_formula == ScoringFormula.PER_CORRECT_ANSWER


def test_invalid_scoring_formula_rejected(monkeypatch) -> None:
    monkeypatch.setenv("SCORING_FORMULA", "double_points")

    with pytest.raises(ValidationError, match="scoring_formula"):
        Settings(_env_file=None)


def test_streak_bonuses_are_highest_first() -> None:
    thresholds = [days for days, _ in Constants.STREAK_BONUSES]

    assert thresholds == sorted(thresholds, reverse=True)
