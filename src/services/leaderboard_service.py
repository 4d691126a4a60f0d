"""Leaderboard ranking for score profiles.

Ordering is total score descending with ties broken by ascending user ID, so
identical input always yields identical output regardless of input order.
Ranks are strictly increasing (1, 2, 3, ...) even for equal scores: tied
users are told apart by the user ID key instead of sharing a rank, which keeps
pagination windows well defined.
"""

import logging
from collections.abc import Iterable, Iterator

from src.core.config import Constants
from src.core.logging import span
from src.domain.score import FriendsLeaderboard, LeaderboardEntry, UserScoreProfile


logger = logging.getLogger(__name__)


def _sort_key(profile: UserScoreProfile) -> tuple[int, str]:
    return (-profile.total_score, profile.user_id)


class RankedLeaderboard:
    """Lazy, finite, restartable sequence of leaderboard entries.

    Profiles are sorted on first iteration; every iteration yields fresh
    entries in the same order.
    """

    def __init__(self, profiles: Iterable[UserScoreProfile], viewer_id: str | None) -> None:
        self._source = list(profiles)
        self._viewer_id = viewer_id
        self._ordered: list[UserScoreProfile] | None = None

    def _ordered_profiles(self) -> list[UserScoreProfile]:
        if self._ordered is None:
            seen: set[str] = set()
            for profile in self._source:
                if profile.user_id in seen:
                    raise ValueError(f"Duplicate score profile for user {profile.user_id}")
                seen.add(profile.user_id)
            self._ordered = sorted(self._source, key=_sort_key)
        return self._ordered

    def __iter__(self) -> Iterator[LeaderboardEntry]:
        for position, profile in enumerate(self._ordered_profiles(), start=Constants.LEADERBOARD_RANK_FIRST):
            yield LeaderboardEntry(
                rank=position,
                user_id=profile.user_id,
                username=profile.username,
                total_score=profile.total_score,
                current_streak=profile.current_streak,
                quizzes_completed=profile.quizzes_completed,
                is_current_user=profile.user_id == self._viewer_id,
            )

    def __len__(self) -> int:
        return len(self._source)

    def viewer_entry(self) -> LeaderboardEntry | None:
        """The viewer's entry, or None when the viewer is not ranked."""
        if self._viewer_id is None:
            return None
        return next((entry for entry in self if entry.is_current_user), None)


def rank(profiles: Iterable[UserScoreProfile], viewer_id: str | None) -> RankedLeaderboard:
    """Rank score profiles, marking the viewer's entry when present.

    Raises:
        ValueError: If a user appears more than once (on first iteration)
    """
    return RankedLeaderboard(profiles, viewer_id)


def leaderboard_window(ranking: RankedLeaderboard, limit: int = Constants.DEFAULT_LEADERBOARD_LIMIT) -> FriendsLeaderboard:
    """Materialize the top ``limit`` entries plus the viewer's entry when outside them.

    Returns:
        FriendsLeaderboard with entries and the viewer's rank (None if unranked)
    """
    with span("leaderboard_service.leaderboard_window"):
        if limit < 1:
            raise ValueError(f"Leaderboard limit must be positive, got {limit}")

        entries: list[LeaderboardEntry] = []
        viewer: LeaderboardEntry | None = None
        for entry in ranking:
            if entry.is_current_user:
                viewer = entry
            if entry.rank <= limit:
                entries.append(entry)

        if viewer is not None and viewer.rank > limit:
            entries.append(viewer)

        logger.debug("Leaderboard window: %d entries, viewer rank %s", len(entries), viewer.rank if viewer else None)
        return FriendsLeaderboard(entries=entries, current_user_rank=viewer.rank if viewer else None)

