"""Unit tests for the FriendsService facade."""

import logging

import pytest

from src.core.errors import ErrorCode, NetworkError
from src.domain.friendship import FriendshipStatus, RelationshipState
from src.domain.score import QuizAttemptResult
from src.services.friends_service import load_friends_service


def _attempt(user_id: str = "alice", correct: int = 8, total: int = 10) -> QuizAttemptResult:
    return QuizAttemptResult(user_id=user_id, quiz_id="quiz-1", correct_answers=correct, total_questions=total)


@pytest.mark.unit
class TestLoad:
    """Tests for loading the facade."""

    async def test_load_friends_service(self, backend):
        backend.add_friendship("bob", "alice", FriendshipStatus.ACCEPTED)
        backend.add_friendship("carol", "alice")
        backend.add_profile("bob", "bobby")
        backend.add_score_profile("alice", 40)
        backend.add_score_profile("bob", 90)

        service = await load_friends_service(viewer_id="alice", backend=backend)

        friends = await service.get_friends()
        assert [f.user_id for f in friends] == ["bob"]
        assert friends[0].profile.username == "bobby"
        assert (await service.get_friendship_stats()).pending_incoming == 1
        assert service.score_profile.total_score == 40
        assert await service.verify_stats() is True

    async def test_reads_load_lazily(self, backend, friends_service):
        backend.add_friendship("alice", "dave")

        outgoing = await friends_service.get_pending_outgoing()

        assert [r.other_user_id for r in outgoing] == ["dave"]
        assert await friends_service.get_pending_incoming() == ()
        assert backend.call_count("get_friendships") == 1

    async def test_refresh_fetches_missing_profiles_once(self, backend, friends_service):
        backend.add_friendship("bob", "alice")
        backend.add_profile("bob")

        await friends_service.refresh_relationships()
        await friends_service.refresh_relationships()

        assert backend.call_count("get_profiles") == 1
        assert (await friends_service.get_pending_incoming())[0].requester.id == "bob"

    async def test_verify_stats_reports_mismatch(self, backend, friends_service, caplog):
        await friends_service.refresh_relationships()
        backend.add_friendship("bob", "alice")

        with caplog.at_level(logging.WARNING):
            assert await friends_service.verify_stats() is False

        assert "stats mismatch" in caplog.text


@pytest.mark.unit
class TestMutations:
    """Tests for mutation outcomes."""

    async def test_send_request_success(self, backend, friends_service, caplog):
        with caplog.at_level(logging.INFO):
            outcome = await friends_service.send_friend_request("bob")

        assert outcome.success is True
        assert outcome.error is None
        assert outcome.friendship.addressee_id == "bob"
        assert any(record.getMessage() == "friends.request_sent" for record in caplog.records)

    async def test_self_request_outcome(self, backend, friends_service):
        outcome = await friends_service.send_friend_request("alice")

        assert outcome.success is False
        assert outcome.error.code == ErrorCode.ERR_SELF_REQUEST
        assert outcome.refresh_recommended is False
        assert backend.call_count("send_friend_request") == 0

    async def test_network_failure_recommends_refresh(self, backend, friends_service, caplog):
        backend.fail_next("send_friend_request", NetworkError("timeout"))

        with caplog.at_level(logging.WARNING):
            outcome = await friends_service.send_friend_request("bob")

        assert outcome.success is False
        assert outcome.error.code == ErrorCode.ERR_NETWORK_ERROR
        assert outcome.refresh_recommended is True
        assert (await friends_service.get_pending_outgoing()) == ()
        assert any(record.getMessage() == "friends.error" for record in caplog.records)

    @pytest.mark.parametrize(
        ("mutation", "argument"),
        [
            ("send_friend_request", "bob"),
            ("accept_friend_request", "f-1"),
            ("cancel_friend_request", "f-1"),
            ("unfriend", "bob"),
        ],
    )
    async def test_failed_initial_load_returns_outcome(self, backend, friends_service, mutation, argument):
        """Test a network failure while loading relationships is reported as a failed outcome."""
        backend.fail_next("get_friendships", NetworkError("offline"))

        outcome = await getattr(friends_service, mutation)(argument)

        assert outcome.success is False
        assert outcome.error.code == ErrorCode.ERR_NETWORK_ERROR
        assert outcome.refresh_recommended is True
        assert not friends_service.cache.is_loaded

    async def test_accept_and_decline(self, backend, friends_service):
        first = backend.add_friendship("bob", "alice")
        second = backend.add_friendship("carol", "alice")

        accepted = await friends_service.accept_friend_request(first.id)
        declined = await friends_service.decline_friend_request(second.id)

        assert accepted.friendship.status == FriendshipStatus.ACCEPTED
        assert declined.friendship.status == FriendshipStatus.DECLINED
        stats = await friends_service.get_friendship_stats()
        assert (stats.total_friends, stats.pending_incoming) == (1, 0)

    async def test_accept_stale_request(self, backend, friends_service):
        request = backend.add_friendship("bob", "alice")
        await friends_service.refresh_relationships()
        backend.set_status(request.id, FriendshipStatus.CANCELLED)

        outcome = await friends_service.accept_friend_request(request.id)

        assert outcome.success is False
        assert outcome.error.code == ErrorCode.ERR_STALE_STATE
        assert outcome.refresh_recommended is True

    async def test_cancel(self, backend, friends_service):
        request = backend.add_friendship("alice", "bob")

        outcome = await friends_service.cancel_friend_request(request.id)

        assert outcome.success is True
        assert outcome.friendship.status == FriendshipStatus.CANCELLED

    async def test_cancel_as_addressee(self, backend, friends_service):
        request = backend.add_friendship("bob", "alice")

        outcome = await friends_service.cancel_friend_request(request.id)

        assert outcome.success is False
        assert outcome.error.code == ErrorCode.ERR_NOT_AUTHORIZED

    async def test_unfriend(self, backend, friends_service):
        backend.add_friendship("bob", "alice", FriendshipStatus.ACCEPTED)

        outcome = await friends_service.unfriend("bob")

        assert outcome.success is True
        assert outcome.friendship.status == FriendshipStatus.REMOVED
        assert await friends_service.get_friends() == ()

    async def test_unfriend_stranger(self, backend, friends_service):
        outcome = await friends_service.unfriend("bob")

        assert outcome.success is False
        assert outcome.error.code == ErrorCode.ERR_INVALID_TRANSITION


@pytest.mark.unit
class TestFriendshipStatus:
    """Tests for check_friendship_status."""

    async def test_uses_backend_before_load(self, backend, friends_service):
        request = backend.add_friendship("alice", "bob")

        status = await friends_service.check_friendship_status("bob")

        assert status.status == RelationshipState.PENDING_OUTGOING
        assert status.friendship_id == request.id
        assert backend.call_count("check_friendship_status") == 1

    async def test_uses_cache_when_loaded(self, backend, friends_service):
        friendship = backend.add_friendship("bob", "alice", FriendshipStatus.ACCEPTED)
        await friends_service.refresh_relationships()

        status = await friends_service.check_friendship_status("bob")

        assert status.status == RelationshipState.FRIENDS
        assert status.friendship_id == friendship.id
        assert backend.call_count("check_friendship_status") == 0

    async def test_ended_reads_as_none(self, backend, friends_service):
        backend.add_friendship("bob", "alice", FriendshipStatus.DECLINED)
        await friends_service.refresh_relationships()

        status = await friends_service.check_friendship_status("bob")

        assert status.status == RelationshipState.NONE
        assert status.friendship_id is None


@pytest.mark.unit
class TestLeaderboard:
    """Tests for the friends leaderboard."""

    async def test_ranks_friends_and_viewer(self, backend, friends_service):
        backend.add_friendship("bob", "alice", FriendshipStatus.ACCEPTED)
        backend.add_friendship("alice", "carol", FriendshipStatus.ACCEPTED)
        backend.add_friendship("dave", "alice")
        backend.add_profile("bob", "bobby")
        backend.add_score_profile("alice", 50)
        backend.add_score_profile("bob", 80)
        backend.add_score_profile("dave", 500)

        board = await friends_service.get_friends_leaderboard()

        assert [(e.user_id, e.total_score) for e in board.entries] == [("bob", 80), ("alice", 50), ("carol", 0)]
        assert board.entries[0].username == "bobby"
        assert board.current_user_rank == 2
        assert board.entries[1].is_current_user is True

    async def test_no_friends_ranks_viewer_alone(self, backend, friends_service):
        board = await friends_service.get_friends_leaderboard()

        assert [e.user_id for e in board.entries] == ["alice"]
        assert board.current_user_rank == 1

    async def test_limit_appends_viewer(self, backend, friends_service):
        for name, score in [("bob", 30), ("carol", 20), ("dave", 10)]:
            backend.add_friendship(name, "alice", FriendshipStatus.ACCEPTED)
            backend.add_score_profile(name, score)

        board = await friends_service.get_friends_leaderboard(limit=2)

        assert [(e.user_id, e.rank) for e in board.entries] == [("bob", 1), ("carol", 2), ("alice", 4)]
        assert board.current_user_rank == 4

    async def test_cached_until_friendships_change(self, backend, friends_service):
        request = backend.add_friendship("bob", "alice")

        await friends_service.get_friends_leaderboard()
        await friends_service.get_friends_leaderboard()
        assert backend.call_count("get_score_profiles") == 1

        await friends_service.accept_friend_request(request.id)
        board = await friends_service.get_friends_leaderboard()

        assert backend.call_count("get_score_profiles") == 2
        assert {e.user_id for e in board.entries} == {"alice", "bob"}

    async def test_refresh_relationships_picks_up_new_friends(self, backend, friends_service):
        """Test a friendship accepted elsewhere re-ranks the leaderboard after a relationship refresh."""
        board = await friends_service.get_friends_leaderboard()
        assert [e.user_id for e in board.entries] == ["alice"]

        backend.add_friendship("bob", "alice", FriendshipStatus.ACCEPTED)
        backend.add_score_profile("bob", 40)
        await friends_service.refresh_relationships()
        board = await friends_service.get_friends_leaderboard()

        assert [(e.user_id, e.total_score) for e in board.entries] == [("bob", 40), ("alice", 0)]

    async def test_unchanged_refresh_keeps_cached_leaderboard(self, backend, friends_service):
        backend.add_friendship("bob", "alice", FriendshipStatus.ACCEPTED)
        await friends_service.get_friends_leaderboard()

        await friends_service.refresh_relationships()
        await friends_service.get_friends_leaderboard()

        assert backend.call_count("get_score_profiles") == 1

    async def test_refresh_all(self, backend, friends_service):
        backend.add_friendship("bob", "alice", FriendshipStatus.ACCEPTED)

        await friends_service.refresh_all()

        assert friends_service.cache.is_loaded
        assert friends_service.score_profile is not None
        assert backend.call_count("get_score_profiles") == 1


@pytest.mark.unit
class TestSubmitQuizResult:
    """Tests for submit_quiz_result."""

    async def test_success(self, backend, friends_service):
        outcome = await friends_service.submit_quiz_result(_attempt())

        assert outcome.success is True
        assert outcome.points_awarded == 15
        assert outcome.profile.total_score == 15
        assert outcome.profile.current_streak == 1
        assert friends_service.score_profile == outcome.profile

    async def test_invalid_attempt_never_reaches_backend(self, backend, friends_service):
        outcome = await friends_service.submit_quiz_result(_attempt(correct=11))

        assert outcome.success is False
        assert outcome.error.code == ErrorCode.ERR_INVALID_SUBMISSION
        assert backend.call_count("submit_quiz_result") == 0

    async def test_other_user_rejected(self, backend, friends_service):
        outcome = await friends_service.submit_quiz_result(_attempt(user_id="bob"))

        assert outcome.success is False
        assert outcome.error.code == ErrorCode.ERR_INVALID_SUBMISSION
        assert backend.call_count("submit_quiz_result") == 0

    async def test_network_failure(self, backend, friends_service):
        backend.fail_next("submit_quiz_result", NetworkError("offline"))

        outcome = await friends_service.submit_quiz_result(_attempt())

        assert outcome.success is False
        assert outcome.error.code == ErrorCode.ERR_NETWORK_ERROR
        assert outcome.refresh_recommended is True

    async def test_divergent_backend_profile_is_logged(self, backend, friends_service, caplog):
        backend.add_score_profile("alice", 10)
        await friends_service.refresh_leaderboard()
        backend.add_score_profile("alice", 100)

        with caplog.at_level(logging.WARNING):
            outcome = await friends_service.submit_quiz_result(_attempt())

        assert outcome.profile.total_score == 115
        assert "diverged" in caplog.text
