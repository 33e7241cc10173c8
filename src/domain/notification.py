"""Notification domain models."""

from typing import Any

from pydantic import Field

from src.domain.grocery_list import CamelModel


class NotificationType:
    """Known notification types."""

    MEAL_ADDED = "meal_added"
    LIST_CATEGORIZED = "list_categorized"
    GROUP_MEMBERSHIP_CHANGED = "group_membership_changed"
    GROUP_INVITATION = "group_invitation"


class Notification(CamelModel):
    """A notification addressed to one user."""

    id: str
    recipient_uid: str
    type: str
    read: bool = False
    created_at: int = Field(..., description="Creation time in epoch milliseconds")
    data: dict[str, Any] = Field(default_factory=dict)
