"""Backend contract for friendships and scores, plus its HTTP implementation.

Every call is asynchronous. Domain rejections from the backend are mapped to
the typed errors in ``src.core.errors``; transport failures, timeouts and 5xx
responses become ``NetworkError`` because the remote outcome is unknown.
Idempotent reads are retried with exponential backoff, mutations never are.
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from functools import wraps
from typing import Any, Protocol, TypeVar

import httpx
from pydantic import ValidationError

from src.core.config import Constants, settings
from src.core.errors import (
    FriendsServiceError,
    InvalidSubmissionError,
    InvalidTransitionError,
    NetworkError,
    NotAuthorizedError,
    StaleStateError,
)
from src.domain.friendship import (
    Friend,
    FriendRequest,
    Friendship,
    FriendshipStats,
    FriendshipStatusCheck,
    RequestDecision,
    RequestDirection,
    UserProfile,
)
from src.domain.score import FriendsLeaderboard, QuizAttemptResult, UserScoreProfile


logger = logging.getLogger(__name__)

T = TypeVar("T")

HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
HTTP_UNPROCESSABLE = 422

# Backend error code -> (exception type, local code)
_DOMAIN_ERRORS: dict[str, tuple[type[FriendsServiceError], str]] = {
    "ALREADY_FRIENDS": (InvalidTransitionError, "ALREADY_FRIENDS"),
    "ALREADY_PENDING": (InvalidTransitionError, "ALREADY_PENDING"),
    "SELF_REQUEST": (InvalidTransitionError, "SELF_REQUEST"),
    "NOT_FOUND": (StaleStateError, "NOT_FOUND"),
    "WRONG_STATE": (StaleStateError, "WRONG_STATE"),
    "NOT_AUTHORIZED": (NotAuthorizedError, "NOT_AUTHORIZED"),
    "INVALID_SUBMISSION": (InvalidSubmissionError, "INVALID_SUBMISSION"),
}

_STATUS_ERRORS: dict[int, type[FriendsServiceError]] = {
    HTTP_UNAUTHORIZED: NotAuthorizedError,
    HTTP_FORBIDDEN: NotAuthorizedError,
    HTTP_NOT_FOUND: StaleStateError,
    HTTP_CONFLICT: StaleStateError,
    HTTP_UNPROCESSABLE: InvalidSubmissionError,
}


class FriendsBackend(Protocol):
    """Remote source of truth for friendships and scores."""

    async def send_friend_request(self, target_user_id: str) -> Friendship: ...

    async def respond_to_friend_request(self, request_id: str, decision: RequestDecision) -> Friendship: ...

    async def cancel_friend_request(self, request_id: str) -> None: ...

    async def unfriend(self, friend_user_id: str) -> None: ...

    async def get_friendships(self) -> list[Friendship]: ...

    async def get_friends(self) -> list[Friend]: ...

    async def get_pending_incoming(self) -> list[FriendRequest]: ...

    async def get_pending_outgoing(self) -> list[FriendRequest]: ...

    async def get_friendship_stats(self) -> FriendshipStats: ...

    async def get_friends_leaderboard(self, limit: int) -> FriendsLeaderboard: ...

    async def check_friendship_status(self, target_user_id: str) -> FriendshipStatusCheck: ...

    async def submit_quiz_result(self, result: QuizAttemptResult) -> UserScoreProfile: ...

    async def get_score_profiles(self, user_ids: list[str]) -> list[UserScoreProfile]: ...

    async def get_profiles(self, user_ids: list[str]) -> list[UserProfile]: ...


def with_retry(
    max_retries: int | None = None, base_delay: float = Constants.BACKEND_RETRY_BASE_DELAY_SECONDS
) -> Callable[[Callable[..., Coroutine[Any, Any, T]]], Callable[..., Coroutine[Any, Any, T]]]:
    """Decorator to retry idempotent backend reads on NetworkError with exponential backoff.

    Args:
        max_retries: Maximum number of attempts (default: settings.backend_read_retries)
        base_delay: Base delay in seconds for exponential backoff

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: Callable[..., Coroutine[Any, Any, T]]) -> Callable[..., Coroutine[Any, Any, T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:  # noqa: ANN401
            attempts = max(1, max_retries if max_retries is not None else settings.backend_read_retries)
            for attempt in range(attempts):
                try:
                    return await func(*args, **kwargs)
                except NetworkError as e:
                    if attempt == attempts - 1:
                        logger.error("Backend read %s failed after %d attempts: %s", func.__name__, attempts, e)
                        raise
                    delay = base_delay * (2**attempt)
                    logger.warning(
                        "Backend read %s failed (attempt %d/%d): %s. Retrying in %.2fs",
                        func.__name__,
                        attempt + 1,
                        attempts,
                        e,
                        delay,
                    )
                    await asyncio.sleep(delay)
            raise NetworkError(f"Backend read {func.__name__} was not attempted")

        return wrapper

    return decorator


def _error_from_response(response: httpx.Response) -> FriendsServiceError:
    """Translate a non-success backend response into a typed error."""
    status = response.status_code
    if status >= Constants.HTTP_SERVER_ERROR_START:
        return NetworkError(f"Backend server error: {status}")

    try:
        body = response.json()
    except ValueError:
        body = {}
    error = body.get("error") if isinstance(body, dict) else None
    error = error if isinstance(error, dict) else {}
    remote_code = str(error.get("code", "")).upper()
    message = error.get("message") or f"Backend rejected request: {status}"

    if remote_code in _DOMAIN_ERRORS:
        error_type, code = _DOMAIN_ERRORS[remote_code]
        return error_type(message, code=code)

    error_type = _STATUS_ERRORS.get(status, FriendsServiceError)
    return error_type(message)


class HttpFriendsBackend:
    """FriendsBackend over the JSON HTTP API."""

    def __init__(
        self,
        *,
        access_token: str,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.backend_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.backend_timeout_seconds
        self._transport = transport
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        key = api_key if api_key is not None else settings.backend_api_key
        if key:
            self._headers["apikey"] = key

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:  # noqa: ANN401
        """Perform one HTTP call and return the decoded JSON body (None when empty)."""
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Backend call {method} {path} timed out") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Backend call {method} {path} failed: {e!s}") from e

        if not response.is_success:
            error = _error_from_response(response)
            logger.warning("Backend %s %s rejected: %s (%s)", method, path, error.code, response.status_code)
            raise error

        if not response.content:
            return None
        return response.json()

    def _parse(self, model: type[T], payload: Any) -> T:  # noqa: ANN401
        try:
            return model.model_validate(payload)  # type: ignore[attr-defined]
        except ValidationError as e:
            raise FriendsServiceError(f"Malformed backend payload for {model.__name__}: {e}") from e

    def _parse_list(self, model: type[T], payload: Any) -> list[T]:  # noqa: ANN401
        return [self._parse(model, item) for item in payload or []]

    # Mutations: never retried, the outcome of a failed call is unknown

    async def send_friend_request(self, target_user_id: str) -> Friendship:
        payload = await self._request("POST", "/friendships", json={"target_user_id": target_user_id})
        return self._parse(Friendship, payload)

    async def respond_to_friend_request(self, request_id: str, decision: RequestDecision) -> Friendship:
        payload = await self._request(
            "POST", f"/friendships/{request_id}/respond", json={"decision": str(decision)}
        )
        return self._parse(Friendship, payload)

    async def cancel_friend_request(self, request_id: str) -> None:
        await self._request("POST", f"/friendships/{request_id}/cancel")

    async def unfriend(self, friend_user_id: str) -> None:
        await self._request("DELETE", f"/friends/{friend_user_id}")

    async def submit_quiz_result(self, result: QuizAttemptResult) -> UserScoreProfile:
        payload = await self._request("POST", "/quiz-results", json=result.model_dump(mode="json"))
        return self._parse(UserScoreProfile, payload)

    # Reads

    @with_retry()
    async def get_friendships(self) -> list[Friendship]:
        return self._parse_list(Friendship, await self._request("GET", "/friendships"))

    @with_retry()
    async def get_friends(self) -> list[Friend]:
        return self._parse_list(Friend, await self._request("GET", "/friends"))

    @with_retry()
    async def get_pending_incoming(self) -> list[FriendRequest]:
        payload = await self._request("GET", "/friend-requests", params={"direction": RequestDirection.INCOMING.value})
        return self._parse_list(FriendRequest, payload)

    @with_retry()
    async def get_pending_outgoing(self) -> list[FriendRequest]:
        payload = await self._request("GET", "/friend-requests", params={"direction": RequestDirection.OUTGOING.value})
        return self._parse_list(FriendRequest, payload)

    @with_retry()
    async def get_friendship_stats(self) -> FriendshipStats:
        return self._parse(FriendshipStats, await self._request("GET", "/friendships/stats"))

    @with_retry()
    async def get_friends_leaderboard(self, limit: int) -> FriendsLeaderboard:
        payload = await self._request("GET", "/leaderboard/friends", params={"limit": limit})
        return self._parse(FriendsLeaderboard, payload)

    @with_retry()
    async def check_friendship_status(self, target_user_id: str) -> FriendshipStatusCheck:
        payload = await self._request("GET", f"/friendships/status/{target_user_id}")
        return self._parse(FriendshipStatusCheck, payload)

    @with_retry()
    async def get_score_profiles(self, user_ids: list[str]) -> list[UserScoreProfile]:
        if not user_ids:
            return []
        payload = await self._request("GET", "/score-profiles", params={"user_ids": ",".join(user_ids)})
        return self._parse_list(UserScoreProfile, payload)

    @with_retry()
    async def get_profiles(self, user_ids: list[str]) -> list[UserProfile]:
        if not user_ids:
            return []
        payload = await self._request("GET", "/profiles", params={"ids": ",".join(user_ids)})
        return self._parse_list(UserProfile, payload)
