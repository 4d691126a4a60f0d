"""Scoring service for quiz attempts, streaks and levels.

This module provides pure functions for:
- Validating and scoring a quiz attempt (completion bonus at >= 70%)
- Advancing a user's daily streak in the canonical application timezone
- Detailed scoring with perfect/speed/streak bonuses
- Level progression and weekly point totals

Key Concepts:
- Completion: an attempt scoring at least 70% of its questions.
- Streak: count of consecutive calendar days with at least one accepted
  attempt. Same-day activity never counts twice.
- Calendar day: always the day in ``settings.app_timezone``; the device
  clock of the submitting user is never consulted.
"""

import logging
from collections.abc import Iterable
from datetime import date, datetime

from src.core.config import Constants, ScoringFormula, settings
from src.core.errors import InvalidSubmissionError, OutOfOrderActivityError
from src.core.logging import span
from src.core.timezone import days_between, ensure_aware, to_app_date, week_bounds
from src.domain.score import (
    AttemptScore,
    EarnedPoints,
    LevelInfo,
    QuizAttemptResult,
    QuizScoreResult,
    ScoreBonuses,
    UserScoreProfile,
)


logger = logging.getLogger(__name__)


def _validate_counts(correct: int, total: int, time_spent_seconds: float) -> None:
    if total <= 0:
        raise InvalidSubmissionError(f"Total questions must be greater than 0, got {total}")
    if total > Constants.MAX_QUESTIONS_PER_QUIZ:
        raise InvalidSubmissionError(
            f"Total questions must be at most {Constants.MAX_QUESTIONS_PER_QUIZ}, got {total}"
        )
    if correct < 0 or correct > total:
        raise InvalidSubmissionError(f"Correct answers must be between 0 and {total}, got {correct}")
    if time_spent_seconds < 0:
        raise InvalidSubmissionError(f"Time spent cannot be negative, got {time_spent_seconds}")


def validate_attempt(result: QuizAttemptResult) -> None:
    """Reject attempts outside ``0 <= correct <= total <= 50`` with at least one question.

    Raises:
        InvalidSubmissionError: If the attempt violates the bounds
    """
    _validate_counts(result.correct_answers, result.total_questions, result.time_spent_seconds)


def _percentage(correct: int, total: int) -> float:
    return correct / total * 100


def score_attempt(result: QuizAttemptResult, *, formula: ScoringFormula | None = None) -> AttemptScore:
    """Compute the points awarded for one quiz attempt.

    With the default completion-bonus formula an attempt earns a fixed 15 points
    when its percentage is at least 70, otherwise nothing. The per-correct-answer
    formula awards 10 points per correct answer regardless of completion.

    Raises:
        InvalidSubmissionError: If the attempt violates the bounds
    """
    validate_attempt(result)
    formula = formula or settings.scoring_formula

    percentage = _percentage(result.correct_answers, result.total_questions)
    is_completed = percentage >= Constants.COMPLETION_THRESHOLD_PERCENT

    if formula == ScoringFormula.PER_CORRECT_ANSWER:
        points = result.correct_answers * Constants.POINTS_PER_CORRECT_ANSWER
    else:
        points = Constants.COMPLETION_BONUS_POINTS if is_completed else 0

    logger.debug(
        "Scored attempt %s for user %s: %.1f%% -> %d points (%s)",
        result.quiz_id,
        result.user_id,
        percentage,
        points,
        formula,
    )
    return AttemptScore(points_awarded=points, percentage=percentage, is_completed=is_completed)


def update_streak(profile: UserScoreProfile, activity_date: date, reference_date: date) -> UserScoreProfile:
    """Advance the streak for activity on ``reference_date``.

    ``reference_date`` is compared with ``profile.last_active_date``: the same
    day leaves the streak unchanged, the next day extends it, any larger gap
    (or no previous activity) restarts it at 1. The later of ``activity_date``
    and ``reference_date`` becomes the new last active date.

    Raises:
        OutOfOrderActivityError: If the activity precedes the last recorded activity
    """
    if profile.last_active_date is None:
        return profile.model_copy(
            update={"current_streak": 1, "last_active_date": max(activity_date, reference_date)}
        )

    delta = days_between(reference_date, profile.last_active_date)
    if delta < 0:
        raise OutOfOrderActivityError(
            f"Activity on {reference_date} precedes last recorded activity on {profile.last_active_date}"
        )

    if delta == 0:
        streak = profile.current_streak
    elif delta == 1:
        streak = profile.current_streak + 1
    else:
        streak = 1

    last_active = max(activity_date, reference_date, profile.last_active_date)
    return profile.model_copy(update={"current_streak": streak, "last_active_date": last_active})


def apply_attempt(
    profile: UserScoreProfile,
    result: QuizAttemptResult,
    *,
    formula: ScoringFormula | None = None,
) -> tuple[UserScoreProfile, AttemptScore]:
    """Fold one accepted attempt into a score profile.

    The streak is advanced for the attempt's calendar day in the application
    timezone, points are added and the completed-quiz count is incremented.

    Raises:
        InvalidSubmissionError: If the attempt is invalid or belongs to another user
    """
    with span("scoring_service.apply_attempt"):
        if result.user_id != profile.user_id:
            raise InvalidSubmissionError(
                f"Attempt for user {result.user_id} cannot update profile of {profile.user_id}"
            )

        attempt_score = score_attempt(result, formula=formula)
        activity_day = to_app_date(result.submitted_at)
        updated = update_streak(profile, activity_day, activity_day)
        updated = updated.model_copy(
            update={
                "total_score": profile.total_score + attempt_score.points_awarded,
                "quizzes_completed": profile.quizzes_completed + 1,
            }
        )

        logger.info(
            "Applied attempt %s for user %s: +%d points, streak %d",
            result.quiz_id,
            result.user_id,
            attempt_score.points_awarded,
            updated.current_streak,
        )
        return updated, attempt_score


def streak_bonus(current_streak: int) -> int:
    """Bonus points for maintaining a streak of ``current_streak`` days."""
    for min_days, bonus in Constants.STREAK_BONUSES:
        if current_streak >= min_days:
            return bonus
    return 0


def calculate_quiz_score(
    correct_answers: int,
    total_questions: int,
    time_spent_seconds: float = 0,
    current_streak: int = 0,
) -> QuizScoreResult:
    """Calculate the detailed score of a quiz including bonuses.

    Bonuses are only awarded to completed attempts (>= 70%):
    perfect score +5, average under 30 seconds per question +3, and a
    streak bonus of +5/+10/+20 for 7/30/365 day streaks.

    Raises:
        InvalidSubmissionError: If the answer counts violate the bounds
    """
    _validate_counts(correct_answers, total_questions, time_spent_seconds)

    score = round(_percentage(correct_answers, total_questions))
    is_completed = score >= Constants.COMPLETION_THRESHOLD_PERCENT

    if not is_completed:
        return QuizScoreResult(score=score, points_earned=0, is_completed=False, bonuses=ScoreBonuses())

    perfect = Constants.PERFECT_SCORE_BONUS if score == 100 else 0  # noqa: PLR2004

    avg_seconds = time_spent_seconds / total_questions
    speed = Constants.SPEED_BONUS if 0 < avg_seconds < Constants.SPEED_BONUS_MAX_SECONDS_PER_QUESTION else 0

    bonuses = ScoreBonuses(perfect=perfect, speed=speed, streak=streak_bonus(current_streak))
    points = Constants.COMPLETION_BONUS_POINTS + bonuses.perfect + bonuses.speed + bonuses.streak

    return QuizScoreResult(score=score, points_earned=points, is_completed=True, bonuses=bonuses)


def calculate_level(total_points: int) -> LevelInfo:
    """Calculate level progress from cumulative points.

    Level 1 spans 50 points and every following level needs 20 more than the
    previous one (50, 70, 90, ...).

    Raises:
        ValueError: If total_points is negative
    """
    if total_points < 0:
        raise ValueError(f"Total points cannot be negative, got {total_points}")

    level = 1
    needed = Constants.LEVEL_BASE_POINTS
    remaining = total_points

    while remaining >= needed:
        remaining -= needed
        level += 1
        needed = Constants.LEVEL_BASE_POINTS + (level - 1) * Constants.LEVEL_STEP_POINTS

    return LevelInfo(
        current_level=level,
        current_points=remaining,
        points_for_next_level=needed,
        total_points=total_points,
        progress_percentage=round(remaining / needed * 100),
    )


def calculate_weekly_points(history: Iterable[EarnedPoints], reference: datetime) -> int:
    """Sum points earned in the Monday-Sunday week containing ``reference``.

    Naive timestamps are interpreted as UTC.
    """
    start, end = week_bounds(reference)
    return sum(item.points_earned for item in history if start <= ensure_aware(item.completed_at) < end)


def validate_points_history(history: Iterable[QuizScoreResult]) -> list[str]:
    """Check a list of detailed scores for impossible point awards.

    Returns:
        Human-readable problems, empty when the history is consistent
    """
    max_points = (
        Constants.COMPLETION_BONUS_POINTS
        + Constants.PERFECT_SCORE_BONUS
        + Constants.SPEED_BONUS
        + max(bonus for _, bonus in Constants.STREAK_BONUSES)
    )
    errors = []
    for index, item in enumerate(history):
        if item.points_earned < 0:
            errors.append(f"Quiz {index}: negative points earned ({item.points_earned})")
        if item.score < Constants.COMPLETION_THRESHOLD_PERCENT and item.points_earned > 0:
            errors.append(f"Quiz {index}: points awarded for incomplete quiz ({item.score}%)")
        if item.points_earned > max_points:
            errors.append(f"Quiz {index}: points exceed maximum possible ({item.points_earned} > {max_points})")

    if errors:
        logger.warning("Points history validation failed: %d problems", len(errors))
    return errors
