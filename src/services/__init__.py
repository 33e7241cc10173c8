from src.services import (
    categorization_service,
    group_service,
    identity_service,
    item_service,
    list_service,
    live_sync,
    notification_service,
)


__all__ = [
    "categorization_service",
    "group_service",
    "identity_service",
    "item_service",
    "list_service",
    "live_sync",
    "notification_service",
]
