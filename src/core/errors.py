"""Typed errors for friendship and scoring operations, plus user-facing classification."""

from enum import Enum

from pydantic import BaseModel


class FriendsServiceError(Exception):
    """Base class for every error surfaced by the social core."""

    default_code = "UNKNOWN_ERROR"
    refresh_recommended = False

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class InvalidTransitionError(FriendsServiceError):
    """Illegal relationship change detected before any backend call."""

    default_code = "INVALID_TRANSITION"


class StaleStateError(FriendsServiceError):
    """The relationship is no longer in the state the caller expected."""

    default_code = "STALE_STATE"
    refresh_recommended = True


class NotAuthorizedError(FriendsServiceError):
    """Actor is not a legal participant for the requested action."""

    default_code = "NOT_AUTHORIZED"


class InvalidSubmissionError(FriendsServiceError):
    """Quiz attempt violates the submission bounds."""

    default_code = "INVALID_SUBMISSION"


class OutOfOrderActivityError(InvalidSubmissionError):
    """Activity is dated before the last recorded activity."""

    default_code = "OUT_OF_ORDER_ACTIVITY"


class NetworkError(FriendsServiceError):
    """Transport or timeout failure; the remote outcome is unknown."""

    default_code = "NETWORK_ERROR"
    refresh_recommended = True


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Relationship errors
    ERR_SELF_REQUEST = "ERR_SELF_REQUEST"
    ERR_ALREADY_FRIENDS = "ERR_ALREADY_FRIENDS"
    ERR_ALREADY_PENDING = "ERR_ALREADY_PENDING"
    ERR_INVALID_TRANSITION = "ERR_INVALID_TRANSITION"
    ERR_STALE_STATE = "ERR_STALE_STATE"
    ERR_NOT_AUTHORIZED = "ERR_NOT_AUTHORIZED"

    # Scoring errors
    ERR_INVALID_SUBMISSION = "ERR_INVALID_SUBMISSION"
    ERR_OUT_OF_ORDER_ACTIVITY = "ERR_OUT_OF_ORDER_ACTIVITY"

    # Transport errors
    ERR_NETWORK_ERROR = "ERR_NETWORK_ERROR"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity
    refresh_recommended: bool = False


_TRANSITION_MESSAGES: dict[str, tuple[str, str]] = {
    "SELF_REQUEST": (ErrorCode.ERR_SELF_REQUEST, "You can't send a friend request to yourself."),
    "ALREADY_FRIENDS": (ErrorCode.ERR_ALREADY_FRIENDS, "You are already friends with this user."),
    "ALREADY_PENDING": (ErrorCode.ERR_ALREADY_PENDING, "A friend request with this user is already pending."),
}


def classify_error_with_response(exception: BaseException) -> ErrorResponse:  # noqa: PLR0911
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised by a cache, facade or scoring operation

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    if isinstance(exception, InvalidTransitionError):
        code, message = _TRANSITION_MESSAGES.get(
            exception.code,
            (ErrorCode.ERR_INVALID_TRANSITION, "This action isn't possible for this friendship right now."),
        )
        return ErrorResponse(
            code=code,
            message=message,
            suggestion="Check the friendship status and try a different action.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, StaleStateError):
        return ErrorResponse(
            code=ErrorCode.ERR_STALE_STATE,
            message="This friendship changed since it was last loaded.",
            suggestion="Refresh your friends list and try again.",
            severity=ErrorSeverity.LOW,
            refresh_recommended=True,
        )

    if isinstance(exception, NotAuthorizedError):
        return ErrorResponse(
            code=ErrorCode.ERR_NOT_AUTHORIZED,
            message="You don't have permission for this action.",
            suggestion="Only the recipient can answer a request and only the sender can cancel it.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, OutOfOrderActivityError):
        return ErrorResponse(
            code=ErrorCode.ERR_OUT_OF_ORDER_ACTIVITY,
            message="This activity is older than your last recorded activity.",
            suggestion="Reload your profile before submitting again.",
            severity=ErrorSeverity.LOW,
            refresh_recommended=True,
        )

    if isinstance(exception, InvalidSubmissionError):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_SUBMISSION,
            message="This quiz result could not be accepted.",
            suggestion="Restart the quiz and submit again.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, NetworkError):
        return ErrorResponse(
            code=ErrorCode.ERR_NETWORK_ERROR,
            message="Network error occurred.",
            suggestion="Please check your connection and try again.",
            severity=ErrorSeverity.MEDIUM,
            refresh_recommended=True,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.HIGH,
        refresh_recommended=True,
    )
