"""Pytest configuration and fixtures for integration tests."""

import logging
from collections.abc import Callable, Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient

from src.core.config import Settings
from src.main import create_app
from src.services.container import Services, build_services
from src.services.identity_service import SignedTokenVerifier
from tests.unit.fakes import FakeCategorizer


logger = logging.getLogger(__name__)


@pytest.fixture
def fake_categorizer() -> FakeCategorizer:
    return FakeCategorizer(
        {
            "Dairy & Eggs": ["milk", "eggs"],
            "Bakery": ["bread"],
        }
    )


@pytest.fixture
def services(test_settings: Settings, fake_categorizer: FakeCategorizer) -> Services:
    """Service graph on a temporary SQLite file with a canned categorizer."""
    return build_services(test_settings, categorizer=fake_categorizer)


@pytest.fixture
def client(services: Services) -> Generator[TestClient]:
    """Test client running the application lifespan (store started and closed)."""
    with TestClient(create_app(services=services)) as test_client:
        yield test_client


@pytest.fixture
def auth(verifier: SignedTokenVerifier) -> Callable[[str], dict[str, str]]:
    """Build Authorization headers for a uid."""

    def _headers(uid: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {verifier.issue(uid)}"}

    return _headers


@pytest.fixture
def seed(client: TestClient, services: Services) -> Callable[[str, Any], None]:
    """Write raw data into the store from synchronous test code."""

    def _seed(path: str, value: Any) -> None:  # noqa: ANN401
        client.portal.call(services.store.write_path, path, value)

    return _seed


@pytest.fixture
def read(client: TestClient, services: Services) -> Callable[[str], Any]:
    """Read raw data from the store from synchronous test code."""

    def _read(path: str) -> Any:  # noqa: ANN401
        return client.portal.call(services.store.read_path, path)

    return _read


@pytest.fixture
def family_group(seed: Callable[[str, Any], None]) -> str:
    """Group ``g1`` owned by alice with bob as a member."""
    seed(
        "groups/g1",
        {"name": "Family", "owner": "alice", "members": {"alice": True, "bob": True}, "createdAt": 1},
    )
    return "g1"
