"""Pytest configuration and fixtures for unit tests."""

import pytest

from src.services.friends_service import FriendsService
from src.services.relationship_cache import RelationshipCache
from tests.unit.mocks import InMemoryFriendsBackend


VIEWER_ID = "alice"


@pytest.fixture
def backend():
    """Provides a fresh InMemoryFriendsBackend for the viewer 'alice'."""
    return InMemoryFriendsBackend(viewer_id=VIEWER_ID)


@pytest.fixture
def cache(backend):
    """RelationshipCache for the viewer, not yet loaded."""
    return RelationshipCache(viewer_id=VIEWER_ID, backend=backend)


@pytest.fixture
def friends_service(backend):
    """FriendsService for the viewer over the in-memory backend."""
    return FriendsService(viewer_id=VIEWER_ID, backend=backend)
