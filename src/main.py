"""Quiz social core - friendships, scoring and friends leaderboard for one signed-in user."""

import logging

import httpx

from src.core.backend_client import HttpFriendsBackend
from src.core.config import settings
from src.core.logging import configure_logfire, instrument_httpx
from src.services.friends_service import FriendsService, load_friends_service


logger = logging.getLogger(__name__)


async def check_backend_connectivity(*, transport: httpx.AsyncBaseTransport | None = None) -> None:
    """Verify the friends/scores backend is reachable.

    Raises:
        ConnectionError: If unable to reach the backend
    """
    headers = {}
    if settings.backend_api_key:
        headers["apikey"] = settings.backend_api_key

    try:
        async with httpx.AsyncClient(timeout=settings.backend_timeout_seconds, transport=transport) as client:
            response = await client.get(f"{settings.backend_url.rstrip('/')}/health", headers=headers)
    except httpx.HTTPError as e:
        logger.error("startup_validation", extra={"service": "backend", "status": "failed", "error": str(e)})
        raise ConnectionError(f"Backend connectivity check failed: {e}") from e

    if not response.is_success:
        logger.error("startup_validation", extra={"service": "backend", "status": response.status_code})
        raise ConnectionError(f"Backend returned status {response.status_code}")
    logger.info("startup_validation", extra={"service": "backend", "status": "ok"})


async def start_session(*, viewer_id: str, access_token: str) -> FriendsService:
    """Configure observability and load the friends service for a signed-in user.

    Args:
        viewer_id: User ID issued by the identity provider
        access_token: Session token issued by the identity provider

    Raises:
        ValueError: If required credentials are missing
        ConnectionError: If the backend is unreachable
    """
    settings.require_credential("backend_api_key", "Backend API")
    configure_logfire()
    instrument_httpx()
    await check_backend_connectivity()

    backend = HttpFriendsBackend(access_token=access_token)
    service = await load_friends_service(viewer_id=viewer_id, backend=backend)
    logger.info("Session started for %s", viewer_id)
    return service
