"""Pytest configuration and shared fixtures."""

import logging

import pytest

from src.core.config import ScoringFormula, settings


logger = logging.getLogger(__name__)


@pytest.fixture(autouse=True)
def canonical_settings(monkeypatch):
    """Pin the settings that change scoring and calendar behavior."""
    monkeypatch.setattr(settings, "app_timezone", "Europe/Chisinau")
    monkeypatch.setattr(settings, "scoring_formula", ScoringFormula.COMPLETION_BONUS)
    monkeypatch.setattr(settings, "backend_read_retries", 3)
    monkeypatch.setattr(settings, "leaderboard_limit", 100)
