"""Pure transition rules for the friendship lifecycle.

The table below is the single source of truth for which relationship changes
are legal. ``validate_transition`` never has side effects; callers that want
an exception use ``require_transition``.
"""

from src.core.errors import InvalidTransitionError, NotAuthorizedError, StaleStateError
from src.domain.friendship import (
    ActorRole,
    Friendship,
    FriendshipAction,
    FriendshipStatus,
    RejectionReason,
    RelationshipState,
)


_PENDING_STATES = frozenset({RelationshipState.PENDING_OUTGOING, RelationshipState.PENDING_INCOMING})
_OPEN_STATES = frozenset({RelationshipState.NONE, RelationshipState.ENDED})

# Allowed transitions: (state, action) -> roles permitted to act -> next state
PARTICIPANT_TRANSITIONS: dict[tuple[RelationshipState, FriendshipAction], dict[ActorRole, RelationshipState]] = {
    (RelationshipState.NONE, FriendshipAction.SEND_REQUEST): {
        ActorRole.REQUESTER: RelationshipState.PENDING_OUTGOING,
    },
    (RelationshipState.ENDED, FriendshipAction.SEND_REQUEST): {
        ActorRole.REQUESTER: RelationshipState.PENDING_OUTGOING,
    },
    **{
        (pending, FriendshipAction.ACCEPT): {ActorRole.ADDRESSEE: RelationshipState.FRIENDS}
        for pending in _PENDING_STATES
    },
    **{
        (pending, FriendshipAction.DECLINE): {ActorRole.ADDRESSEE: RelationshipState.ENDED}
        for pending in _PENDING_STATES
    },
    **{
        (pending, FriendshipAction.CANCEL): {ActorRole.REQUESTER: RelationshipState.ENDED}
        for pending in _PENDING_STATES
    },
    (RelationshipState.FRIENDS, FriendshipAction.UNFRIEND): {
        ActorRole.REQUESTER: RelationshipState.ENDED,
        ActorRole.ADDRESSEE: RelationshipState.ENDED,
    },
}

# Stored status written by each approved action
STATUS_AFTER: dict[FriendshipAction, FriendshipStatus] = {
    FriendshipAction.SEND_REQUEST: FriendshipStatus.PENDING,
    FriendshipAction.ACCEPT: FriendshipStatus.ACCEPTED,
    FriendshipAction.DECLINE: FriendshipStatus.DECLINED,
    FriendshipAction.CANCEL: FriendshipStatus.CANCELLED,
    FriendshipAction.UNFRIEND: FriendshipStatus.REMOVED,
}


def _rejection_for(state: RelationshipState, action: FriendshipAction, role: ActorRole) -> RejectionReason:  # noqa: PLR0911
    """Reason a (state, action, role) triple missing from the table is refused."""
    if role == ActorRole.SELF:
        return RejectionReason.SELF_REQUEST
    if role == ActorRole.OUTSIDER:
        return RejectionReason.NOT_AUTHORIZED

    if action == FriendshipAction.SEND_REQUEST:
        if state == RelationshipState.FRIENDS:
            return RejectionReason.ALREADY_FRIENDS
        if state in _PENDING_STATES:
            return RejectionReason.ALREADY_PENDING
        # Open state, but the sender can only ever be the requester
        return RejectionReason.NOT_AUTHORIZED

    if state == RelationshipState.NONE:
        return RejectionReason.NO_RELATIONSHIP

    if state == RelationshipState.ENDED:
        return RejectionReason.STALE_STATE

    if action == FriendshipAction.UNFRIEND:
        # Only reachable from a pending state here
        return RejectionReason.NOT_FRIENDS

    if state == RelationshipState.FRIENDS:
        return RejectionReason.STALE_STATE

    # Pending state, action exists for another role
    return RejectionReason.NOT_AUTHORIZED


def validate_transition(
    current_state: RelationshipState,
    action: FriendshipAction,
    actor_role: ActorRole,
) -> RelationshipState | RejectionReason:
    """Return the next state for a legal transition, or the reason it is refused."""
    allowed = PARTICIPANT_TRANSITIONS.get((current_state, action), {})
    next_state = allowed.get(actor_role)
    if next_state is not None:
        return next_state
    return _rejection_for(current_state, action, actor_role)


def require_transition(
    current_state: RelationshipState,
    action: FriendshipAction,
    actor_role: ActorRole,
) -> RelationshipState:
    """Validate a transition, raising the typed error matching the rejection.

    Raises:
        NotAuthorizedError: Actor may not perform this action
        StaleStateError: The relationship already moved past the expected state
        InvalidTransitionError: Any other illegal change
    """
    outcome = validate_transition(current_state, action, actor_role)
    if isinstance(outcome, RelationshipState):
        return outcome

    msg = f"Cannot {action} from {current_state} as {actor_role}: {outcome}"
    if outcome == RejectionReason.NOT_AUTHORIZED:
        raise NotAuthorizedError(msg)
    if outcome == RejectionReason.STALE_STATE:
        raise StaleStateError(msg)
    raise InvalidTransitionError(msg, code=outcome.upper())


def resolve_state(friendship: Friendship | None, viewer_id: str) -> RelationshipState:
    """Map a friendship record to the viewer-relative relationship state."""
    if friendship is None:
        return RelationshipState.NONE
    if friendship.status == FriendshipStatus.ACCEPTED:
        return RelationshipState.FRIENDS
    if friendship.status == FriendshipStatus.PENDING:
        if friendship.requester_id == viewer_id:
            return RelationshipState.PENDING_OUTGOING
        return RelationshipState.PENDING_INCOMING
    return RelationshipState.ENDED


def status_after(action: FriendshipAction) -> FriendshipStatus:
    """Stored status written when ``action`` is applied."""
    return STATUS_AFTER[action]
