"""Domain models and DTOs."""

from src.domain.friendship import (
    ACTIVE_STATUSES,
    ActorRole,
    Friend,
    FriendRequest,
    Friendship,
    FriendshipAction,
    FriendshipStats,
    FriendshipStatus,
    FriendshipStatusCheck,
    RejectionReason,
    RelationshipState,
    RequestDecision,
    RequestDirection,
    UserProfile,
)
from src.domain.score import (
    AttemptScore,
    EarnedPoints,
    FriendsLeaderboard,
    LeaderboardEntry,
    LevelInfo,
    QuizAttemptResult,
    QuizScoreResult,
    ScoreBonuses,
    UserScoreProfile,
)


__all__ = [
    "ACTIVE_STATUSES",
    "ActorRole",
    "AttemptScore",
    "EarnedPoints",
    "Friend",
    "FriendRequest",
    "Friendship",
    "FriendshipAction",
    "FriendshipStats",
    "FriendshipStatus",
    "FriendshipStatusCheck",
    "FriendsLeaderboard",
    "LeaderboardEntry",
    "LevelInfo",
    "QuizAttemptResult",
    "QuizScoreResult",
    "RejectionReason",
    "RelationshipState",
    "RequestDecision",
    "RequestDirection",
    "ScoreBonuses",
    "UserProfile",
    "UserScoreProfile",
]
