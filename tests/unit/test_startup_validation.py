"""Tests for session startup validation."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.core.config import settings
from src.main import check_backend_connectivity, start_session


@pytest.mark.asyncio
async def test_check_backend_connectivity_success() -> None:
    """Test successful backend connectivity check."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"status": "ok"})

    await check_backend_connectivity(transport=httpx.MockTransport(handler))

    assert seen[0].url.path == "/health"


@pytest.mark.asyncio
async def test_check_backend_connectivity_bad_status() -> None:
    """Test connectivity check fails on a non-success status."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    with pytest.raises(ConnectionError, match="status 503"):
        await check_backend_connectivity(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_check_backend_connectivity_unreachable() -> None:
    """Test connectivity check fails when the backend cannot be reached."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ConnectionError, match="connectivity check failed"):
        await check_backend_connectivity(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_start_session_requires_api_key(monkeypatch) -> None:
    """Test startup fails before any network call without an API key."""
    monkeypatch.setattr(settings, "backend_api_key", None)

    with (
        patch("src.main.check_backend_connectivity", new_callable=AsyncMock) as mock_check,
        pytest.raises(ValueError, match="BACKEND_API_KEY"),
    ):
        await start_session(viewer_id="alice", access_token="token")

    mock_check.assert_not_called()


@pytest.mark.asyncio
async def test_start_session_loads_service(monkeypatch) -> None:
    """Test startup configures observability and loads the service."""
    monkeypatch.setattr(settings, "backend_api_key", "anon-key")
    service = AsyncMock()

    with (
        patch("src.main.configure_logfire") as mock_configure,
        patch("src.main.instrument_httpx") as mock_instrument,
        patch("src.main.check_backend_connectivity", new_callable=AsyncMock),
        patch("src.main.load_friends_service", new_callable=AsyncMock, return_value=service) as mock_load,
    ):
        result = await start_session(viewer_id="alice", access_token="token")

    assert result is service
    mock_configure.assert_called_once()
    mock_instrument.assert_called_once()
    assert mock_load.await_args.kwargs["viewer_id"] == "alice"
