"""Construction of the service graph owned by the application entry point."""

import logging
from dataclasses import dataclass

from src.core.cache_client import InMemoryCache
from src.core.config import Settings
from src.core.firebase_store import FirebaseTreeStore
from src.core.sqlite_store import SQLiteTreeStore
from src.core.store import TreeStore
from src.services.categorization_service import (
    CategorizationService,
    Categorizer,
    CategoryCache,
    LLMCategorizer,
)
from src.services.group_service import GroupService
from src.services.identity_service import FirebaseIdentityVerifier, IdentityVerifier, SignedTokenVerifier
from src.services.invitation_service import InvitationService
from src.services.item_service import ItemService
from src.services.list_service import ListService
from src.services.live_sync import ConnectionGate, LiveSyncBroadcaster
from src.services.notification_service import NotificationService


logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Every collaborator a request handler may need."""

    settings: Settings
    store: TreeStore
    identity: IdentityVerifier
    groups: GroupService
    lists: ListService
    items: ItemService
    categorization: CategorizationService
    notifications: NotificationService
    invitations: InvitationService
    gate: ConnectionGate
    broadcaster: LiveSyncBroadcaster

    async def start(self) -> None:
        await self.store.start()

    async def close(self) -> None:
        self.broadcaster.close_all()
        await self.store.close()


def build_store(settings: Settings) -> TreeStore:
    if settings.store_backend == "firebase":
        return FirebaseTreeStore(settings)
    return SQLiteTreeStore(settings.sqlite_db_path, max_retries=settings.transaction_max_retries)


def build_identity(settings: Settings) -> IdentityVerifier:
    if settings.identity_backend == "firebase":
        return FirebaseIdentityVerifier(settings)
    return SignedTokenVerifier(settings.secret_key, max_age_seconds=settings.token_max_age_seconds)


def build_services(
    settings: Settings,
    *,
    store: TreeStore | None = None,
    identity: IdentityVerifier | None = None,
    categorizer: Categorizer | None = None,
) -> Services:
    """Wire the services for ``settings``; explicit collaborators replace the configured ones."""
    store = store or build_store(settings)
    identity = identity or build_identity(settings)
    categorization = CategorizationService(
        categorizer or LLMCategorizer(settings),
        CategoryCache(InMemoryCache(), ttl_seconds=settings.category_cache_ttl_seconds),
    )
    groups = GroupService(store)
    notifications = NotificationService(store, groups, settings)

    logger.info(
        "Services built",
        extra={"store_backend": type(store).__name__, "identity_backend": type(identity).__name__},
    )
    return Services(
        settings=settings,
        store=store,
        identity=identity,
        groups=groups,
        lists=ListService(store, week_starts_on=settings.week_starts_on),
        items=ItemService(store, categorization),
        categorization=categorization,
        notifications=notifications,
        invitations=InvitationService(store, groups, notifications),
        gate=ConnectionGate(identity, groups),
        broadcaster=LiveSyncBroadcaster(store),
    )
