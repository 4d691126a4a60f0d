"""Friendship domain models and enums."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class FriendshipStatus(StrEnum):
    """Stored lifecycle status of a friendship record."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    REMOVED = "removed"


ACTIVE_STATUSES = frozenset({FriendshipStatus.PENDING, FriendshipStatus.ACCEPTED})


class RelationshipState(StrEnum):
    """Viewer-relative relationship state."""

    NONE = "none"
    PENDING_OUTGOING = "pending_outgoing"
    PENDING_INCOMING = "pending_incoming"
    FRIENDS = "friends"
    ENDED = "ended"


class FriendshipAction(StrEnum):
    """Action requested on a relationship."""

    SEND_REQUEST = "send_request"
    ACCEPT = "accept"
    DECLINE = "decline"
    CANCEL = "cancel"
    UNFRIEND = "unfriend"


class ActorRole(StrEnum):
    """Role of the acting user relative to a friendship."""

    REQUESTER = "requester"
    ADDRESSEE = "addressee"
    SELF = "self"
    OUTSIDER = "outsider"


class RejectionReason(StrEnum):
    """Why a transition was refused."""

    SELF_REQUEST = "self_request"
    ALREADY_PENDING = "already_pending"
    ALREADY_FRIENDS = "already_friends"
    NOT_AUTHORIZED = "not_authorized"
    NOT_FRIENDS = "not_friends"
    NO_RELATIONSHIP = "no_relationship"
    STALE_STATE = "stale_state"


class RequestDecision(StrEnum):
    """Addressee's answer to a pending request."""

    ACCEPT = "accept"
    DECLINE = "decline"


class RequestDirection(StrEnum):
    """Direction of a pending request from the viewer's perspective."""

    INCOMING = "incoming"
    OUTGOING = "outgoing"


class UserProfile(BaseModel):
    """Display attributes of a user owned by the identity provider."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Opaque user ID")
    username: str | None = Field(default=None, description="Public username")
    email: str | None = Field(default=None, description="Account email")

    @property
    def display_name(self) -> str:
        if self.username:
            return self.username
        if self.email:
            return self.email.split("@")[0]
        return "User"


class Friendship(BaseModel):
    """Relationship record between a requester and an addressee."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Friendship ID (provisional 'local-' IDs before confirmation)")
    requester_id: str = Field(..., description="User who sent the original request")
    addressee_id: str = Field(..., description="User the request was sent to")
    status: FriendshipStatus = Field(default=FriendshipStatus.PENDING, description="Lifecycle status")
    created_at: datetime = Field(..., description="When the request was sent")
    accepted_at: datetime | None = Field(default=None, description="When the request was accepted")

    @property
    def pair_key(self) -> frozenset[str]:
        return frozenset((self.requester_id, self.addressee_id))

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def involves(self, user_id: str) -> bool:
        return user_id in (self.requester_id, self.addressee_id)

    def other_participant(self, user_id: str) -> str:
        """Return the participant that is not ``user_id``."""
        if user_id == self.requester_id:
            return self.addressee_id
        if user_id == self.addressee_id:
            return self.requester_id
        raise ValueError(f"User {user_id} is not a participant of friendship {self.id}")

    def role_of(self, user_id: str) -> ActorRole:
        if user_id == self.requester_id:
            return ActorRole.REQUESTER
        if user_id == self.addressee_id:
            return ActorRole.ADDRESSEE
        return ActorRole.OUTSIDER


class FriendRequest(BaseModel):
    """Pending friendship as seen by one participant."""

    model_config = ConfigDict(frozen=True)

    id: str
    requester_id: str
    addressee_id: str
    direction: RequestDirection
    created_at: datetime
    requester: UserProfile | None = None
    addressee: UserProfile | None = None

    @property
    def other_user_id(self) -> str:
        return self.requester_id if self.direction == RequestDirection.INCOMING else self.addressee_id


class Friend(BaseModel):
    """Accepted friendship as seen by one participant."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    friendship_id: str
    since: datetime | None = None
    profile: UserProfile | None = None


class FriendshipStats(BaseModel):
    """Relationship counts for the viewing user."""

    model_config = ConfigDict(frozen=True)

    total_friends: int = 0
    pending_incoming: int = 0
    pending_outgoing: int = 0


class FriendshipStatusCheck(BaseModel):
    """Relationship state between the viewer and one other user."""

    model_config = ConfigDict(frozen=True)

    status: RelationshipState
    friendship_id: str | None = None
