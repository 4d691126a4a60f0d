"""Client-side cache of the viewer's friendships with optimistic mutations.

This module provides the RelationshipCache, which:
- Serves friends / incoming / outgoing / stats views without re-querying the backend
- Validates every mutation locally through the friendship state machine
- Applies mutations optimistically and rolls them back exactly on failure
- Merges authoritative refreshes without losing in-flight mutations

Key Concepts:
- Undo log: before a mutation writes, the prior value of every touched entry
  is recorded (absent entries as None). Success discards the log, failure or
  cancellation restores it.
- Counterpart lock: mutations concerning the same other user run one at a
  time and are validated only after the previous one settled, so nothing is
  validated against a stale snapshot.
- Atomic apply: all entries touched by one step are written without an
  intervening await, so readers never observe a half-applied mutation.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TypeVar

from src.core.backend_client import FriendsBackend
from src.core.config import Constants
from src.core.errors import FriendsServiceError, InvalidTransitionError
from src.core.logging import span
from src.domain.friendship import (
    ActorRole,
    Friend,
    FriendRequest,
    Friendship,
    FriendshipAction,
    FriendshipStats,
    FriendshipStatus,
    RelationshipState,
    RequestDecision,
    RequestDirection,
    UserProfile,
)
from src.services.friendship_state_machine import require_transition, resolve_state, status_after


logger = logging.getLogger(__name__)

T = TypeVar("T")

Changes = dict[str, Friendship | None]


@dataclass
class _PendingMutation:
    """Bookkeeping for one in-flight optimistic mutation."""

    mutation_id: str
    action: FriendshipAction
    counterpart_id: str
    undo: Changes = field(default_factory=dict)
    deferred: set[str] = field(default_factory=set)


class RelationshipCache:
    """In-memory view of the viewer's friendships kept consistent with the backend."""

    def __init__(self, *, viewer_id: str, backend: FriendsBackend) -> None:
        self._viewer_id = viewer_id
        self._backend = backend
        self._entries: dict[str, Friendship] = {}
        self._profiles: dict[str, UserProfile] = {}
        self._in_flight: dict[str, _PendingMutation] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._loaded = False

    # Reads

    @property
    def viewer_id(self) -> str:
        return self._viewer_id

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def has_pending_mutations(self) -> bool:
        return bool(self._in_flight)

    def snapshot(self) -> dict[str, Friendship]:
        """Copy of the authoritative map (entries are immutable)."""
        return dict(self._entries)

    def get(self, friendship_id: str) -> Friendship | None:
        return self._entries.get(friendship_id)

    def _counterpart(self, friendship: Friendship) -> str:
        return friendship.other_participant(self._viewer_id)

    def records_with(self, user_id: str) -> list[Friendship]:
        """All records between the viewer and ``user_id``, newest first."""
        records = [
            f for f in self._entries.values() if f.involves(self._viewer_id) and f.involves(user_id)
        ]
        return sorted(records, key=lambda f: f.created_at, reverse=True)

    def active_with(self, user_id: str) -> Friendship | None:
        return next((f for f in self.records_with(user_id) if f.is_active), None)

    def state_with(self, user_id: str) -> RelationshipState:
        """Viewer-relative state of the relationship with ``user_id``."""
        active = self.active_with(user_id)
        if active is not None:
            return resolve_state(active, self._viewer_id)
        if self.records_with(user_id):
            return RelationshipState.ENDED
        return RelationshipState.NONE

    def friends(self) -> tuple[Friend, ...]:
        accepted = [f for f in self._entries.values() if f.status == FriendshipStatus.ACCEPTED]
        accepted.sort(key=lambda f: (f.accepted_at or f.created_at, f.id), reverse=True)
        return tuple(
            Friend(
                user_id=self._counterpart(f),
                friendship_id=f.id,
                since=f.accepted_at or f.created_at,
                profile=self._profiles.get(self._counterpart(f)),
            )
            for f in accepted
        )

    def _requests(self, direction: RequestDirection) -> tuple[FriendRequest, ...]:
        if direction == RequestDirection.INCOMING:
            pending = [
                f
                for f in self._entries.values()
                if f.status == FriendshipStatus.PENDING and f.addressee_id == self._viewer_id
            ]
        else:
            pending = [
                f
                for f in self._entries.values()
                if f.status == FriendshipStatus.PENDING and f.requester_id == self._viewer_id
            ]
        pending.sort(key=lambda f: (f.created_at, f.id), reverse=True)
        return tuple(
            FriendRequest(
                id=f.id,
                requester_id=f.requester_id,
                addressee_id=f.addressee_id,
                direction=direction,
                created_at=f.created_at,
                requester=self._profiles.get(f.requester_id),
                addressee=self._profiles.get(f.addressee_id),
            )
            for f in pending
        )

    def pending_incoming(self) -> tuple[FriendRequest, ...]:
        return self._requests(RequestDirection.INCOMING)

    def pending_outgoing(self) -> tuple[FriendRequest, ...]:
        return self._requests(RequestDirection.OUTGOING)

    def stats(self) -> FriendshipStats:
        total = incoming = outgoing = 0
        for f in self._entries.values():
            if f.status == FriendshipStatus.ACCEPTED:
                total += 1
            elif f.status == FriendshipStatus.PENDING:
                if f.addressee_id == self._viewer_id:
                    incoming += 1
                else:
                    outgoing += 1
        return FriendshipStats(total_friends=total, pending_incoming=incoming, pending_outgoing=outgoing)

    def remember_profiles(self, profiles: list[UserProfile]) -> None:
        for profile in profiles:
            self._profiles[profile.id] = profile

    def profile(self, user_id: str) -> UserProfile | None:
        return self._profiles.get(user_id)

    # Refresh

    async def refresh(self) -> None:
        """Fetch authoritative friendships from the backend and merge them."""
        with span("relationship_cache.refresh"):
            friendships = await self._backend.get_friendships()
            self.replace_all(friendships)

    def replace_all(self, friendships: list[Friendship]) -> None:
        """Install authoritative state while keeping in-flight mutations intact.

        Entries touched by an in-flight mutation keep their optimistic value,
        and the mutation's undo log is re-pointed at the fetched value so a
        rollback restores the newer state. Active records arriving for a
        counterpart under mutation are held back until it settles.
        """
        by_counterpart = {m.counterpart_id: m for m in self._in_flight.values()}
        incoming = {f.id: f for f in friendships if f.involves(self._viewer_id)}
        skipped = len(friendships) - len(incoming)
        if skipped:
            logger.warning("Ignored %d friendships not involving viewer %s", skipped, self._viewer_id)

        for mutation in by_counterpart.values():
            for friendship_id in mutation.undo:
                mutation.undo[friendship_id] = incoming.get(friendship_id)

        entries: dict[str, Friendship] = {}
        for friendship_id, friendship in incoming.items():
            mutation = by_counterpart.get(self._counterpart(friendship))
            if mutation is None:
                entries[friendship_id] = friendship
            elif friendship_id in mutation.undo:
                continue
            elif friendship.is_active:
                mutation.undo[friendship_id] = friendship
                mutation.deferred.add(friendship_id)
            else:
                entries[friendship_id] = friendship

        # Optimistic values stay visible until their mutation settles
        for mutation in by_counterpart.values():
            for friendship_id in mutation.undo:
                current = self._entries.get(friendship_id)
                if current is not None and friendship_id not in mutation.deferred:
                    entries[friendship_id] = current

        self._entries = entries
        self._loaded = True
        logger.info(
            "Relationship cache refreshed: %d entries, %d mutations in flight",
            len(entries),
            len(self._in_flight),
        )

    # Mutation plumbing

    def _apply(self, changes: Changes) -> None:
        for friendship_id, value in changes.items():
            if value is None:
                self._entries.pop(friendship_id, None)
            else:
                self._entries[friendship_id] = value

    def _begin(self, action: FriendshipAction, counterpart_id: str, changes: Changes) -> _PendingMutation:
        mutation = _PendingMutation(mutation_id=uuid.uuid4().hex, action=action, counterpart_id=counterpart_id)
        mutation.undo = {friendship_id: self._entries.get(friendship_id) for friendship_id in changes}
        self._apply(changes)
        self._in_flight[mutation.mutation_id] = mutation
        return mutation

    def _rollback(self, mutation: _PendingMutation) -> None:
        self._in_flight.pop(mutation.mutation_id, None)
        self._apply(mutation.undo)
        logger.info("Rolled back %s with %s (%d entries)", mutation.action, mutation.counterpart_id, len(mutation.undo))

    def _commit(self, mutation: _PendingMutation, confirmed: Changes) -> None:
        self._in_flight.pop(mutation.mutation_id, None)
        self._apply(confirmed)
        for friendship_id in mutation.deferred:
            held = mutation.undo[friendship_id]
            if held is None or friendship_id in confirmed:
                continue
            if held.is_active and self.active_with(mutation.counterpart_id) is not None:
                continue
            self._entries[friendship_id] = held

    async def _run(
        self,
        mutation: _PendingMutation,
        remote: Callable[[], Awaitable[T]],
        confirm: Callable[[T], Changes],
    ) -> T:
        """Await the backend call, then commit or roll back the mutation."""
        try:
            result = await remote()
        except FriendsServiceError as e:
            self._rollback(mutation)
            logger.warning("Backend rejected %s with %s: %s", mutation.action, mutation.counterpart_id, e.code)
            raise
        except asyncio.CancelledError:
            self._rollback(mutation)
            raise
        except Exception as e:
            self._rollback(mutation)
            logger.exception("Unexpected failure during %s with %s", mutation.action, mutation.counterpart_id)
            raise FriendsServiceError(f"Unexpected error during {mutation.action}: {e}") from e

        self._commit(mutation, confirm(result))
        return result

    def _require_entry_transition(self, friendship_id: str, action: FriendshipAction) -> Friendship:
        """Validate ``action`` on a known friendship, raising the matching typed error."""
        entry = self._entries.get(friendship_id)
        if entry is None:
            msg = f"Cannot {action}: friendship {friendship_id} is not known"
            raise InvalidTransitionError(msg, code="NO_RELATIONSHIP")
        require_transition(resolve_state(entry, self._viewer_id), action, entry.role_of(self._viewer_id))
        return entry

    def _lock_key_for(self, friendship_id: str) -> str:
        entry = self._entries.get(friendship_id)
        if entry is not None and entry.involves(self._viewer_id):
            return self._counterpart(entry)
        return f"id:{friendship_id}"

    @asynccontextmanager
    async def _serialized(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key``, dropping it once no mutation holds or awaits it."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    # Mutations

    async def send_request(self, target_user_id: str) -> Friendship:
        """Send a friend request to ``target_user_id``.

        Raises:
            InvalidTransitionError: Self request, or an active friendship already exists
            FriendsServiceError: Backend rejection or network failure (after rollback)
        """
        with span("relationship_cache.send_request"):
            async with self._serialized(target_user_id):
                role = ActorRole.SELF if target_user_id == self._viewer_id else ActorRole.REQUESTER
                require_transition(self.state_with(target_user_id), FriendshipAction.SEND_REQUEST, role)

                provisional = Friendship(
                    id=f"{Constants.LOCAL_ID_PREFIX}{uuid.uuid4().hex}",
                    requester_id=self._viewer_id,
                    addressee_id=target_user_id,
                    status=FriendshipStatus.PENDING,
                    created_at=datetime.now(UTC),
                )
                mutation = self._begin(FriendshipAction.SEND_REQUEST, target_user_id, {provisional.id: provisional})

                def confirm(created: Friendship) -> Changes:
                    return {provisional.id: None, created.id: created}

                created = await self._run(
                    mutation, lambda: self._backend.send_friend_request(target_user_id), confirm
                )
                logger.info("Friend request %s sent to %s", created.id, target_user_id)
                return created

    async def respond(self, request_id: str, decision: RequestDecision) -> Friendship:
        """Accept or decline an incoming request.

        Raises:
            NotAuthorizedError: The viewer is not the addressee
            StaleStateError: The request is no longer pending
            InvalidTransitionError: Unknown request
        """
        action = FriendshipAction.ACCEPT if decision == RequestDecision.ACCEPT else FriendshipAction.DECLINE
        with span(f"relationship_cache.respond.{decision}"):
            async with self._serialized(self._lock_key_for(request_id)):
                entry = self._require_entry_transition(request_id, action)

                update: dict[str, object] = {"status": status_after(action)}
                if action == FriendshipAction.ACCEPT:
                    update["accepted_at"] = datetime.now(UTC)
                mutation = self._begin(action, self._counterpart(entry), {request_id: entry.model_copy(update=update)})

                def confirm(updated: Friendship) -> Changes:
                    if updated.id == request_id:
                        return {request_id: updated}
                    return {request_id: None, updated.id: updated}

                updated = await self._run(
                    mutation, lambda: self._backend.respond_to_friend_request(request_id, decision), confirm
                )
                logger.info("Friend request %s answered: %s", request_id, decision)
                return updated

    async def cancel(self, request_id: str) -> None:
        """Cancel an outgoing request.

        Raises:
            NotAuthorizedError: The viewer is not the requester
            StaleStateError: The request is no longer pending
            InvalidTransitionError: Unknown request
        """
        with span("relationship_cache.cancel"):
            async with self._serialized(self._lock_key_for(request_id)):
                entry = self._require_entry_transition(request_id, FriendshipAction.CANCEL)

                cancelled = entry.model_copy(update={"status": status_after(FriendshipAction.CANCEL)})
                mutation = self._begin(FriendshipAction.CANCEL, self._counterpart(entry), {request_id: cancelled})

                await self._run(mutation, lambda: self._backend.cancel_friend_request(request_id), lambda _: {})
                logger.info("Friend request %s cancelled", request_id)

    async def unfriend(self, friend_user_id: str) -> None:
        """End an accepted friendship with ``friend_user_id``.

        Raises:
            InvalidTransitionError: No friendship, or it is still pending
            StaleStateError: The friendship already ended
        """
        with span("relationship_cache.unfriend"):
            async with self._serialized(friend_user_id):
                records = self.records_with(friend_user_id)
                entry = self.active_with(friend_user_id) or (records[0] if records else None)
                if friend_user_id == self._viewer_id:
                    role = ActorRole.SELF
                elif entry is None:
                    role = ActorRole.REQUESTER
                else:
                    role = entry.role_of(self._viewer_id)
                require_transition(resolve_state(entry, self._viewer_id), FriendshipAction.UNFRIEND, role)
                if entry is None:
                    msg = f"Cannot unfriend {friend_user_id}: no friendship"
                    raise InvalidTransitionError(msg, code="NO_RELATIONSHIP")

                removed = entry.model_copy(update={"status": status_after(FriendshipAction.UNFRIEND)})
                mutation = self._begin(FriendshipAction.UNFRIEND, friend_user_id, {entry.id: removed})

                await self._run(mutation, lambda: self._backend.unfriend(friend_user_id), lambda _: {})
                logger.info("Unfriended %s (friendship %s)", friend_user_id, entry.id)
