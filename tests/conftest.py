"""Pytest configuration and shared fixtures."""

import logging
from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from src.core.config import Settings
from src.core.sqlite_store import SQLiteTreeStore
from src.services.identity_service import SignedTokenVerifier


logger = logging.getLogger(__name__)

TEST_SECRET_KEY = "test-secret-key"


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing at a throwaway SQLite file, isolated from any local .env."""
    return Settings(
        _env_file=None,
        store_backend="sqlite",
        sqlite_db_path=str(tmp_path / "grocerease.db"),
        identity_backend="signed",
        secret_key=TEST_SECRET_KEY,
        openrouter_api_key=None,
        logfire_token=None,
        enable_push_notifications=False,
        default_timezone="UTC",
        week_starts_on="sunday",
    )


@pytest.fixture
async def store(tmp_path: Path) -> AsyncIterator[SQLiteTreeStore]:
    """A started SQLite store, closed after the test."""
    tree_store = SQLiteTreeStore(str(tmp_path / "store.db"))
    await tree_store.start()
    yield tree_store
    await tree_store.close()


@pytest.fixture
def verifier() -> SignedTokenVerifier:
    return SignedTokenVerifier(TEST_SECRET_KEY)
