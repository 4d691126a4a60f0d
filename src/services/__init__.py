from src.services import (
    friends_service,
    friendship_state_machine,
    leaderboard_service,
    relationship_cache,
    scoring_service,
)


__all__ = [
    "friends_service",
    "friendship_state_machine",
    "leaderboard_service",
    "relationship_cache",
    "scoring_service",
]
