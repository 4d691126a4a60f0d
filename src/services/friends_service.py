"""Friends service: consolidated read models and mutations for one viewer.

This module provides the FriendsService facade, which:
- Loads and serves friends, pending requests, stats and the friends leaderboard
- Runs friendship mutations through the relationship cache and reports
  explicit success/failure outcomes
- Validates and submits quiz results, keeping the viewer's score profile

Every mutation returns a MutationOutcome; failures carry a classified
ErrorResponse and say whether the caller should refresh before retrying.
Telemetry events (friends.request_sent, friends.unfriend, ...) are emitted as
structured log records.
"""

import asyncio
import logging

from pydantic import BaseModel

from src.core.backend_client import FriendsBackend
from src.core.config import settings
from src.core.errors import ErrorResponse, FriendsServiceError, InvalidSubmissionError, classify_error_with_response
from src.core.logging import log_with_user_context, span
from src.domain.friendship import (
    Friend,
    FriendRequest,
    Friendship,
    FriendshipStats,
    FriendshipStatusCheck,
    RelationshipState,
    RequestDecision,
)
from src.domain.score import FriendsLeaderboard, QuizAttemptResult, UserScoreProfile
from src.services import leaderboard_service, scoring_service
from src.services.relationship_cache import RelationshipCache


logger = logging.getLogger(__name__)


class MutationOutcome(BaseModel):
    """Result of a friendship mutation."""

    success: bool
    friendship: Friendship | None = None
    error: ErrorResponse | None = None
    refresh_recommended: bool = False


class QuizSubmissionOutcome(BaseModel):
    """Result of submitting a quiz attempt."""

    success: bool
    points_awarded: int = 0
    profile: UserScoreProfile | None = None
    error: ErrorResponse | None = None
    refresh_recommended: bool = False


class FriendsService:
    """Facade over the relationship cache, scoring and ranking for one viewer."""

    def __init__(
        self,
        *,
        viewer_id: str,
        backend: FriendsBackend,
        leaderboard_limit: int | None = None,
    ) -> None:
        self._viewer_id = viewer_id
        self._backend = backend
        self._cache = RelationshipCache(viewer_id=viewer_id, backend=backend)
        self._leaderboard_limit = leaderboard_limit or settings.leaderboard_limit
        self._ranking: leaderboard_service.RankedLeaderboard | None = None
        self._leaderboard_stale = True
        self._score_profile: UserScoreProfile | None = None

    @property
    def cache(self) -> RelationshipCache:
        return self._cache

    @property
    def score_profile(self) -> UserScoreProfile | None:
        return self._score_profile

    def _event(self, name: str, **data: object) -> None:
        log_with_user_context(logger, "info", name, user_id=self._viewer_id, **data)

    def _failure(self, error: FriendsServiceError, **data: object) -> MutationOutcome:
        response = classify_error_with_response(error)
        log_with_user_context(
            logger,
            "warning",
            "friends.error",
            user_id=self._viewer_id,
            error_code=error.code,
            error_message=error.message,
            **data,
        )
        return MutationOutcome(
            success=False,
            error=response,
            refresh_recommended=error.refresh_recommended or response.refresh_recommended,
        )

    # Refresh

    async def ensure_loaded(self) -> None:
        if not self._cache.is_loaded:
            await self.refresh_relationships()

    async def refresh_relationships(self) -> None:
        """Reload friendships and the profiles of everyone they involve."""
        with span("friends_service.refresh_relationships"):
            friends_before = {friend.user_id for friend in self._cache.friends()}
            await self._cache.refresh()
            if {friend.user_id for friend in self._cache.friends()} != friends_before:
                self._leaderboard_stale = True
            counterpart_ids = sorted(
                {f.other_participant(self._viewer_id) for f in self._cache.snapshot().values()}
            )
            missing = [user_id for user_id in counterpart_ids if self._cache.profile(user_id) is None]
            if missing:
                self._cache.remember_profiles(await self._backend.get_profiles(missing))

    async def refresh_leaderboard(self, limit: int | None = None) -> FriendsLeaderboard:
        """Rank the viewer among their friends from fresh score profiles.

        Users without a score profile yet are ranked with zero points.
        """
        with span("friends_service.refresh_leaderboard"):
            await self.ensure_loaded()
            user_ids = [friend.user_id for friend in self._cache.friends()]
            user_ids.append(self._viewer_id)

            profiles = await self._backend.get_score_profiles(user_ids)
            by_user = {profile.user_id: profile for profile in profiles}
            for user_id in user_ids:
                if user_id not in by_user:
                    by_user[user_id] = UserScoreProfile(user_id=user_id)

            self._score_profile = by_user[self._viewer_id]
            self._ranking = leaderboard_service.rank(
                [self._with_username(profile) for profile in by_user.values()], self._viewer_id
            )
            self._leaderboard_stale = False

            leaderboard = leaderboard_service.leaderboard_window(self._ranking, limit or self._leaderboard_limit)
            self._event(
                "friends.lb_view",
                friends_count=len(user_ids) - 1,
                current_user_rank=leaderboard.current_user_rank,
            )
            return leaderboard

    def _with_username(self, profile: UserScoreProfile) -> UserScoreProfile:
        if profile.username:
            return profile
        user = self._cache.profile(profile.user_id)
        if user is None:
            return profile
        return profile.model_copy(update={"username": user.display_name})

    async def verify_stats(self) -> bool:
        """Compare cached counts with the backend's stats, logging any mismatch.

        Returns:
            True when the cache agrees with the backend
        """
        remote = await self._backend.get_friendship_stats()
        local = self._cache.stats()
        if local != remote and not self._cache.has_pending_mutations:
            logger.warning("Friendship stats mismatch for %s: cache %s, backend %s", self._viewer_id, local, remote)
        return local == remote

    async def refresh_all(self) -> None:
        """Reload relationships, then the leaderboard that depends on them."""
        with span("friends_service.refresh_all"):
            await self.refresh_relationships()
            await self.refresh_leaderboard()

    # Read models

    async def get_friends(self) -> tuple[Friend, ...]:
        await self.ensure_loaded()
        return self._cache.friends()

    async def get_pending_incoming(self) -> tuple[FriendRequest, ...]:
        await self.ensure_loaded()
        return self._cache.pending_incoming()

    async def get_pending_outgoing(self) -> tuple[FriendRequest, ...]:
        await self.ensure_loaded()
        return self._cache.pending_outgoing()

    async def get_friendship_stats(self) -> FriendshipStats:
        await self.ensure_loaded()
        return self._cache.stats()

    async def get_friends_leaderboard(self, limit: int | None = None) -> FriendsLeaderboard:
        """Top ``limit`` friends by score plus the viewer, re-ranked when friendships or scores changed."""
        if self._ranking is None or self._leaderboard_stale:
            return await self.refresh_leaderboard(limit)
        return leaderboard_service.leaderboard_window(self._ranking, limit or self._leaderboard_limit)

    async def check_friendship_status(self, target_user_id: str) -> FriendshipStatusCheck:
        """Relationship state with ``target_user_id``, from the cache when loaded."""
        if not self._cache.is_loaded:
            return await self._backend.check_friendship_status(target_user_id)

        state = self._cache.state_with(target_user_id)
        if state == RelationshipState.ENDED:
            # Ended relationships read as no relationship to callers
            return FriendshipStatusCheck(status=RelationshipState.NONE)
        active = self._cache.active_with(target_user_id)
        return FriendshipStatusCheck(status=state, friendship_id=active.id if active else None)

    # Mutations

    async def send_friend_request(self, target_user_id: str) -> MutationOutcome:
        try:
            await self.ensure_loaded()
            friendship = await self._cache.send_request(target_user_id)
        except FriendsServiceError as e:
            return self._failure(e, target_id=target_user_id)
        self._event("friends.request_sent", target_id=target_user_id)
        return MutationOutcome(success=True, friendship=friendship)

    async def respond_to_friend_request(self, request_id: str, decision: RequestDecision) -> MutationOutcome:
        try:
            await self.ensure_loaded()
            friendship = await self._cache.respond(request_id, decision)
        except FriendsServiceError as e:
            return self._failure(e, request_id=request_id)
        if decision == RequestDecision.ACCEPT:
            self._leaderboard_stale = True
            self._event("friends.request_accept", request_id=request_id)
        else:
            self._event("friends.request_decline", request_id=request_id)
        return MutationOutcome(success=True, friendship=friendship)

    async def accept_friend_request(self, request_id: str) -> MutationOutcome:
        return await self.respond_to_friend_request(request_id, RequestDecision.ACCEPT)

    async def decline_friend_request(self, request_id: str) -> MutationOutcome:
        return await self.respond_to_friend_request(request_id, RequestDecision.DECLINE)

    async def cancel_friend_request(self, request_id: str) -> MutationOutcome:
        try:
            await self.ensure_loaded()
            await self._cache.cancel(request_id)
        except FriendsServiceError as e:
            return self._failure(e, request_id=request_id)
        self._event("friends.request_cancel", request_id=request_id)
        return MutationOutcome(success=True, friendship=self._cache.get(request_id))

    async def unfriend(self, friend_user_id: str) -> MutationOutcome:
        try:
            await self.ensure_loaded()
            await self._cache.unfriend(friend_user_id)
        except FriendsServiceError as e:
            return self._failure(e, target_id=friend_user_id)
        self._leaderboard_stale = True
        self._event("friends.unfriend", target_id=friend_user_id)
        records = self._cache.records_with(friend_user_id)
        return MutationOutcome(success=True, friendship=records[0] if records else None)

    # Quiz results

    async def submit_quiz_result(self, result: QuizAttemptResult) -> QuizSubmissionOutcome:
        """Validate locally, submit, and keep the backend's score profile.

        Invalid attempts are rejected before any backend call.
        """
        with span("friends_service.submit_quiz_result"):
            try:
                if result.user_id != self._viewer_id:
                    raise InvalidSubmissionError(
                        f"Cannot submit a result for user {result.user_id}"
                    )
                attempt_score = scoring_service.score_attempt(result)
                profile = await self._backend.submit_quiz_result(result)
            except FriendsServiceError as e:
                outcome = self._failure(e, quiz_id=result.quiz_id)
                return QuizSubmissionOutcome(
                    success=False, error=outcome.error, refresh_recommended=outcome.refresh_recommended
                )

            if self._score_profile is not None:
                self._warn_on_divergence(self._score_profile, result, profile)

            self._score_profile = profile
            self._leaderboard_stale = True
            logger.info(
                "Quiz %s submitted by %s: +%d points, streak %d",
                result.quiz_id,
                self._viewer_id,
                attempt_score.points_awarded,
                profile.current_streak,
            )
            return QuizSubmissionOutcome(success=True, points_awarded=attempt_score.points_awarded, profile=profile)

    def _warn_on_divergence(
        self, previous: UserScoreProfile, result: QuizAttemptResult, remote: UserScoreProfile
    ) -> None:
        """Log when the backend's profile differs from the one expected from ``previous``."""
        try:
            expected, _ = scoring_service.apply_attempt(previous, result)
        except FriendsServiceError as e:
            logger.warning("Could not compute expected profile for %s: %s", self._viewer_id, e)
            return
        if (expected.total_score, expected.current_streak) != (remote.total_score, remote.current_streak):
            logger.warning(
                "Score profile diverged for %s: expected score %d streak %d, backend score %d streak %d",
                self._viewer_id,
                expected.total_score,
                expected.current_streak,
                remote.total_score,
                remote.current_streak,
            )


async def load_friends_service(*, viewer_id: str, backend: FriendsBackend) -> FriendsService:
    """Create a FriendsService with relationships, leaderboard and a stats cross-check loaded."""
    service = FriendsService(viewer_id=viewer_id, backend=backend)
    await service.refresh_relationships()
    await asyncio.gather(service.refresh_leaderboard(), service.verify_stats())
    return service
