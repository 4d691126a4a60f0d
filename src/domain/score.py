"""Scoring and leaderboard domain models."""

from datetime import UTC, date, datetime

from pydantic import BaseModel, ConfigDict, Field


class QuizAttemptResult(BaseModel):
    """A submitted quiz attempt.

    Bounds are checked by the scoring service so that violations surface as
    InvalidSubmissionError instead of a validation error at construction.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., description="Submitting user ID")
    quiz_id: str = Field(..., description="Quiz ID")
    correct_answers: int = Field(..., description="Number of correct answers")
    total_questions: int = Field(..., description="Number of questions in the quiz")
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(UTC), description="Submission instant")
    time_spent_seconds: float = Field(default=0, description="Time spent answering, 0 when unknown")


class AttemptScore(BaseModel):
    """Points outcome of one accepted attempt."""

    model_config = ConfigDict(frozen=True)

    points_awarded: int
    percentage: float
    is_completed: bool


class ScoreBonuses(BaseModel):
    """Bonus breakdown of a detailed quiz score."""

    model_config = ConfigDict(frozen=True)

    perfect: int = 0
    speed: int = 0
    streak: int = 0


class QuizScoreResult(BaseModel):
    """Detailed quiz score including bonuses."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(..., description="Rounded percentage score (0-100)")
    points_earned: int
    is_completed: bool
    bonuses: ScoreBonuses


class LevelInfo(BaseModel):
    """Level progress derived from cumulative points."""

    model_config = ConfigDict(frozen=True)

    current_level: int
    current_points: int
    points_for_next_level: int
    total_points: int
    progress_percentage: int


class UserScoreProfile(BaseModel):
    """Per-user score aggregate."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    total_score: int = 0
    current_streak: int = 0
    last_active_date: date | None = None
    quizzes_completed: int = 0
    username: str | None = None


class LeaderboardEntry(BaseModel):
    """Ranked leaderboard row (derived, never stored)."""

    model_config = ConfigDict(frozen=True)

    rank: int
    user_id: str
    username: str | None = None
    total_score: int
    current_streak: int
    quizzes_completed: int
    is_current_user: bool = False


class FriendsLeaderboard(BaseModel):
    """Materialized leaderboard window."""

    model_config = ConfigDict(frozen=True)

    entries: list[LeaderboardEntry] = Field(default_factory=list)
    current_user_rank: int | None = None


class EarnedPoints(BaseModel):
    """Points earned at a given instant (weekly aggregation input)."""

    model_config = ConfigDict(frozen=True)

    completed_at: datetime
    points_earned: int
