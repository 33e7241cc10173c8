"""Pytest configuration and fixtures for unit tests."""

import pytest

from src.core.cache_client import InMemoryCache
from src.core.config import Settings
from src.core.sqlite_store import SQLiteTreeStore
from src.core.store import join_path
from src.domain.group import Group
from src.services.categorization_service import CategorizationService, CategoryCache
from src.services.group_service import GroupService
from src.services.invitation_service import InvitationService
from src.services.item_service import ItemService
from src.services.list_service import ListService
from src.services.notification_service import NotificationService
from tests.unit.fakes import FakeCategorizer


@pytest.fixture
def fake_categorizer() -> FakeCategorizer:
    return FakeCategorizer()


@pytest.fixture
def category_cache() -> CategoryCache:
    return CategoryCache(InMemoryCache())


@pytest.fixture
def categorization(fake_categorizer: FakeCategorizer, category_cache: CategoryCache) -> CategorizationService:
    return CategorizationService(fake_categorizer, category_cache)


@pytest.fixture
def group_service(store: SQLiteTreeStore) -> GroupService:
    return GroupService(store)


@pytest.fixture
def list_service(store: SQLiteTreeStore) -> ListService:
    return ListService(store)


@pytest.fixture
def item_service(store: SQLiteTreeStore, categorization: CategorizationService) -> ItemService:
    return ItemService(store, categorization)


@pytest.fixture
async def shared_group(store: SQLiteTreeStore) -> Group:
    """Group ``g1`` owned by alice with bob as a member."""
    group = Group(id="g1", name="Family", owner="alice", members=["alice", "bob"], created_at=1)
    await store.write_path(join_path("groups", group.id), group.to_record())
    return group


@pytest.fixture
def notifications(store: SQLiteTreeStore, group_service: GroupService, test_settings: Settings) -> NotificationService:
    return NotificationService(store, group_service, test_settings)


@pytest.fixture
def invitation_service(
    store: SQLiteTreeStore, group_service: GroupService, notifications: NotificationService
) -> InvitationService:
    return InvitationService(store, group_service, notifications)
